"""Public SDK surface for Fleetguard.

This module provides a stable import path for library users.
It re-exports the primary client and typed models.
"""

from __future__ import annotations

from builds.build_types import BuildOutcome, BuildPlan
from builds.strategy import resolve_build_plan
from checks.check_types import AssertionResult, CheckResult, TargetCheckReport
from checks.evaluator import aggregate_verdict, compute_ignore_update, evaluate
from checks.registry import Assertion, CheckCategory, CheckDefinition, CheckRegistry
from checks.standard_checks import build_standard_registry
from core.config import FleetguardConfig
from core.config_model import ABSENT, ConfigurationModel
from core.flake_reference import FlakeReference, parse_flake_reference
from core.types import Target
from deploy.deploy_types import DeploymentOptions, DeploymentOutcome, SystemStatus
from fleet.client import FleetguardClient
from fleet.runner import FleetEntry, FleetReport, run_fleet
from store.ignore_rules import IgnoreRules, parse_ignore_rules
from store.ignore_store import IgnoreEntry, IgnoreStore, load_ignore_store, save_ignore_store

__all__ = [
    "ABSENT",
    "Assertion",
    "AssertionResult",
    "BuildOutcome",
    "BuildPlan",
    "CheckCategory",
    "CheckDefinition",
    "CheckRegistry",
    "CheckResult",
    "ConfigurationModel",
    "DeploymentOptions",
    "DeploymentOutcome",
    "FlakeReference",
    "FleetEntry",
    "FleetReport",
    "FleetguardClient",
    "FleetguardConfig",
    "IgnoreEntry",
    "IgnoreRules",
    "IgnoreStore",
    "SystemStatus",
    "Target",
    "TargetCheckReport",
    "aggregate_verdict",
    "build_standard_registry",
    "compute_ignore_update",
    "evaluate",
    "load_ignore_store",
    "parse_flake_reference",
    "parse_ignore_rules",
    "resolve_build_plan",
    "run_fleet",
    "save_ignore_store",
]
