"""NixOS configuration evaluator.

Targets are evaluated with ``nix eval --json --apply``. The applied
expression exports exactly the option paths that checks and deployment
need, each wrapped so that a missing or throwing option becomes ``null``
instead of failing the whole evaluation.
"""

from __future__ import annotations

import json
from typing import Iterable, Protocol

from core.errors import CommandTimeoutError, EvaluationError
from core.config_model import ConfigurationModel, parse_config_path
from core.flake_reference import FlakeReference
from core.logging_config import get_logger
from core.types import TARGET_PATHS, USERS_PATH, Target
from nixhost.command_runner import CommandRunner

_LOGGER = get_logger(__name__)

_PROJECTIONS = {
    USERS_PATH: (
        "lib.mapAttrs (_: user: {\n"
        "      extraGroups = user.extraGroups or [];\n"
        "      openssh.authorizedKeys.keys = user.openssh.authorizedKeys.keys or [];\n"
        "    }) (lib.filterAttrs (_: user: user.isNormalUser or false) config.users.users)"
    ),
}


class ConfigEvaluator(Protocol):
    """Maps target references onto evaluated targets."""

    def discover(self, flake_url: str) -> tuple[FlakeReference, ...]:
        ...

    def evaluate(self, reference: FlakeReference, paths: Iterable[str]) -> Target:
        ...


class NixEvaluator:
    """ConfigEvaluator backed by the nix command line."""

    def __init__(self, runner: CommandRunner, timeout: float | None = None) -> None:
        self._runner = runner
        self._timeout = timeout

    def discover(self, flake_url: str) -> tuple[FlakeReference, ...]:
        """List every nixosConfigurations output of a flake.

        Args:
            flake_url: Flake to inspect.

        Returns:
            References sorted by attribute name.

        Raises:
            EvaluationError: If the flake cannot be evaluated.
        """
        payload = self._eval_json(
            [
                "nix",
                "eval",
                "--json",
                f"{flake_url}#nixosConfigurations",
                "--apply",
                "builtins.attrNames",
            ],
            context=f"{flake_url}#nixosConfigurations",
        )
        if not isinstance(payload, list) or not all(isinstance(name, str) for name in payload):
            raise EvaluationError(
                f"Unexpected nixosConfigurations listing for {flake_url}: expected a list of names."
            )
        return tuple(FlakeReference(url=flake_url, attribute=name) for name in sorted(payload))

    def evaluate(self, reference: FlakeReference, paths: Iterable[str]) -> Target:
        """Evaluate the requested option paths of one configuration.

        Args:
            reference: Target reference.
            paths: Dotted option paths to export; deployment paths are
                always added.

        Returns:
            Target with its configuration model.

        Raises:
            EvaluationError: If nix fails or returns malformed output.
        """
        expression = build_apply_expression((*TARGET_PATHS, *paths))
        payload = self._eval_json(
            ["nix", "eval", "--json", reference.installable(), "--apply", expression],
            context=str(reference),
        )
        if not isinstance(payload, dict):
            raise EvaluationError(
                f"Unexpected evaluation result for {reference}: expected a JSON object."
            )
        _LOGGER.info("target_evaluated", target=str(reference))
        return Target(reference=reference, config=ConfigurationModel.from_json(payload))

    def _eval_json(self, args: list[str], context: str) -> object:
        try:
            result = self._runner.run(args, timeout=self._timeout)
        except CommandTimeoutError as error:
            raise EvaluationError(f"Evaluation of {context} timed out: {error}") from error
        if not result.ok:
            raise EvaluationError(f"Evaluation of {context} failed: {result.diagnostic()}")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as error:
            raise EvaluationError(
                f"Evaluation of {context} returned invalid JSON: {error}"
            ) from error


def build_apply_expression(paths: Iterable[str]) -> str:
    """Build the ``--apply`` function exporting the given option paths.

    When one path is a prefix of another, the shorter path wins and is
    exported as a whole.
    """
    tree = _path_tree(paths)
    body = _render_tree(tree, (), indent=1)
    return (
        "{ config, pkgs, ... }:\n"
        "let\n"
        "  lib = pkgs.lib;\n"
        "  tryOrNull = x: let r = builtins.tryEval (builtins.deepSeq x x);"
        " in if r.success then r.value else null;\n"
        f"in {body}\n"
    )


def _path_tree(paths: Iterable[str]) -> dict[str, object]:
    tree: dict[str, object] = {}
    for path in sorted(set(paths), key=lambda item: (len(parse_config_path(item)), item)):
        segments = parse_config_path(path)
        if not segments:
            continue
        node = tree
        for segment in segments[:-1]:
            child = node.setdefault(segment, {})
            if child is None:
                break
            node = child  # type: ignore[assignment]
        else:
            node.setdefault(segments[-1], None)
    return tree


def _render_tree(tree: dict[str, object], prefix: tuple[str, ...], indent: int) -> str:
    pad = "  " * indent
    lines = ["{"]
    for key in sorted(tree):
        child = tree[key]
        segments = (*prefix, key)
        if child is None:
            value = _leaf_expression(segments)
        else:
            value = _render_tree(child, segments, indent + 1)  # type: ignore[arg-type]
        lines.append(f'{pad}  "{key}" = {value};')
    lines.append(f"{pad}}}")
    return "\n".join(lines)


def _leaf_expression(segments: tuple[str, ...]) -> str:
    dotted = ".".join(segments)
    if dotted in _PROJECTIONS:
        return f"tryOrNull ({_PROJECTIONS[dotted]})"
    attribute_path = ".".join(f'"{segment}"' for segment in segments)
    return f"tryOrNull (config.{attribute_path} or null)"
