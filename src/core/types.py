"""Shared typed models used across Fleetguard modules."""

from __future__ import annotations

from dataclasses import dataclass, field

from core.config_model import ConfigString, ConfigurationModel
from core.flake_reference import FlakeReference

HOST_PATHS = ("networking.fqdnOrHostName", "networking.hostName")
PLATFORM_PATH = "nixpkgs.hostPlatform.system"
TOPLEVEL_OUT_PATH = "system.build.toplevel.outPath"
TOPLEVEL_DRV_PATH = "system.build.toplevel.drvPath"
TARGET_PATHS = (*HOST_PATHS, PLATFORM_PATH, TOPLEVEL_OUT_PATH, TOPLEVEL_DRV_PATH)
USERS_PATH = "users.users"
AUTHORIZED_KEYS_PATH = "openssh.authorizedKeys.keys"


@dataclass(frozen=True)
class Target:
    """One evaluated system configuration.

    Attributes:
        reference: Flake reference the configuration was evaluated from.
        config: Resolved configuration tree.
    """

    reference: FlakeReference
    config: ConfigurationModel

    @property
    def target_id(self) -> str:
        """Stable identity used for ordering and ignore entries."""
        return str(self.reference)

    @property
    def deploy_host(self) -> str | None:
        """Address used to reach the target, if the configuration names one."""
        for path in HOST_PATHS:
            value = self.config.get(path)
            if isinstance(value, ConfigString) and value.value:
                return value.value
        return None

    @property
    def platform(self) -> str | None:
        """Nix system double the target is built for, e.g. x86_64-linux."""
        return _string_or_none(self.config, PLATFORM_PATH)

    @property
    def toplevel_out_path(self) -> str | None:
        """Store path of the evaluated system generation."""
        return _string_or_none(self.config, TOPLEVEL_OUT_PATH)

    @property
    def toplevel_drv_path(self) -> str | None:
        """Derivation path of the evaluated system generation."""
        return _string_or_none(self.config, TOPLEVEL_DRV_PATH)


def _string_or_none(config: ConfigurationModel, path: str) -> str | None:
    value = config.get(path)
    if isinstance(value, ConfigString) and value.value:
        return value.value
    return None


@dataclass(frozen=True)
class SshPublicKey:
    """One OpenSSH public key line; the comment does not affect equality."""

    key_type: str
    key_data: str
    comment: str = field(default="", compare=False)

    @classmethod
    def parse(cls, line: str) -> "SshPublicKey | None":
        """Parse an authorized_keys style line, ignoring options-free garbage."""
        parts = line.split()
        if len(parts) < 2:
            return None
        comment = " ".join(parts[2:])
        return cls(key_type=parts[0], key_data=parts[1], comment=comment)

    def __str__(self) -> str:
        base = f"{self.key_type} {self.key_data}"
        return f"{base} {self.comment}" if self.comment else base


@dataclass(frozen=True)
class OperatorInfo:
    """Identity of the person running Fleetguard."""

    username: str
    ssh_keys: tuple[SshPublicKey, ...] = ()
