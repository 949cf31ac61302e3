"""Target reference parsing.

A target is addressed like ``<flake-url>#<nixosConfigurations attribute>``.
The rendered reference is the stable target identity used for report
ordering and in the ignore store.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.constants import DEFAULT_FLAKE_URL
from core.errors import FlakeReferenceError


@dataclass(frozen=True, order=True)
class FlakeReference:
    """Reference to one nixosConfigurations output of a flake."""

    url: str
    attribute: str

    def __str__(self) -> str:
        return f"{self.url}#{self.attribute}"

    def installable(self, suffix: str = "") -> str:
        """Render a nix installable for this configuration.

        Args:
            suffix: Optional attribute path below the configuration,
                e.g. ``config.system.build.toplevel``.

        Returns:
            Installable string accepted by ``nix build`` and ``nix eval``.
        """
        base = f'{self.url}#nixosConfigurations."{self.attribute}"'
        return f"{base}.{suffix}" if suffix else base


def parse_flake_reference(text: str, default_url: str = DEFAULT_FLAKE_URL) -> FlakeReference:
    """Parse a target reference.

    Args:
        text: Reference like ``.#web1``, ``github:org/infra#db`` or ``web1``.
        default_url: Flake url used when the reference has no ``#``.

    Returns:
        Parsed reference.

    Raises:
        FlakeReferenceError: If the reference is empty or has several ``#``.
    """
    stripped = text.strip()
    parts = stripped.split("#")
    if len(parts) > 2:
        raise FlakeReferenceError(
            f"Invalid target reference '{text}': multiple '#' signs found. "
            "Use the form <flake>#<configuration>."
        )
    if len(parts) == 1:
        url, attribute = default_url, parts[0]
    else:
        url, attribute = parts[0] or default_url, parts[1]
    if not attribute:
        raise FlakeReferenceError(
            f"Invalid target reference '{text}': configuration name is empty. "
            "Use the form <flake>#<configuration>."
        )
    return FlakeReference(url=url, attribute=attribute)
