"""Core constants used across Fleetguard modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_FLAKE_URL = "."
DEFAULT_IGNORE_FILE_NAME = ".fleetguard-ignore.yaml"
IGNORE_FILE_VERSION = 1
DEFAULT_COMMAND_TIMEOUT_SECONDS = 600.0
DEFAULT_STATUS_TIMEOUT_SECONDS = 20.0
DEFAULT_REBOOT_TIMEOUT_SECONDS = 300.0
DEFAULT_REBOOT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS = 10
DEFAULT_LOG_LEVEL = "warning"
SSH_CONNECTION_FAILURE_EXIT_CODE = 255
SYSTEM_PROFILE_PATH = "/nix/var/nix/profiles/system"
CURRENT_SYSTEM_PATH = "/run/current-system"
BOOTED_SYSTEM_PATH = "/run/booted-system"
BOOT_ID_PATH = "/proc/sys/kernel/random/boot_id"
REBOOT_COMPONENTS = ("kernel", "initrd", "kernel-modules")
WHEEL_GROUP = "wheel"
MAX_BOOT_GENERATIONS = 10
