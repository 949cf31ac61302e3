"""Built-in best-practice checks for NixOS deployment targets."""

from __future__ import annotations

from core.config_model import (
    ABSENT,
    ConfigString,
    ConfigValue,
    expect_int,
    expect_mapping,
    expect_str,
    lookup,
    string_items,
)
from core.constants import MAX_BOOT_GENERATIONS, WHEEL_GROUP
from core.types import OperatorInfo, SshPublicKey
from checks.predicates import (
    NOT_PRESENT_MESSAGE,
    flag,
    require_false,
    require_true,
    when_enabled,
    when_present,
)
from checks.registry import (
    Assertion,
    CheckCategory,
    CheckDefinition,
    CheckRegistry,
    Predicate,
)

CATEGORIES: tuple[CheckCategory, ...] = (
    CheckCategory(
        id="remote_deployment",
        name="Remote Deployment Support",
        description=(
            "Checks if the system has the required configuration to safely perform "
            "remote deployments. This avoids a lock-out after the deployment."
        ),
    ),
    CheckCategory(
        id="system_security",
        name="System Security Settings",
        description="Checks if critical system security settings are properly configured",
    ),
    CheckCategory(
        id="system_maintenance",
        name="System Maintenance Settings",
        description="Checks if system maintenance and cleanup settings are properly configured",
    ),
    CheckCategory(
        id="nix_configuration",
        name="Nix Configuration",
        description="Checks if Nix is configured with recommended settings",
    ),
    CheckCategory(
        id="server_optimization",
        name="Server Optimization Settings",
        description=(
            "Checks if server-specific optimizations are properly configured. "
            "Systems without a configured domain are not treated as servers."
        ),
    ),
    CheckCategory(
        id="hardware_configuration",
        name="Hardware Configuration",
        description="Checks if hardware-specific settings are properly configured",
    ),
)

_DOCUMENTATION_OPTIONS = (
    ("doc_nixos", "documentation.nixos.enable", "NixOS documentation"),
    ("documentation", "documentation.enable", "General documentation"),
    ("doc_dev", "documentation.dev.enable", "Development documentation"),
    ("doc_doc", "documentation.doc.enable", "Doc documentation"),
    ("doc_info", "documentation.info.enable", "Info documentation"),
    ("doc_man", "documentation.man.enable", "Man pages"),
)

_CLOSURE_OPTIONS = (
    ("fontconfig", "fonts.fontconfig.enable", "Font configuration"),
    ("stub_ld", "environment.stub-ld.enable", "Stub-ld"),
    ("command_not_found", "programs.command-not-found.enable", "The command-not-found program"),
)

_NGINX_OPTIONS = (
    ("nginx_brotli", "recommendedBrotliSettings", "Brotli compression"),
    ("nginx_gzip", "recommendedGzipSettings", "Gzip compression"),
    ("nginx_optimisation", "recommendedOptimisation", "Optimisation settings"),
    ("nginx_proxy", "recommendedProxySettings", "Proxy settings"),
    ("nginx_tls", "recommendedTlsSettings", "TLS settings"),
)


def build_standard_registry(operator: OperatorInfo) -> CheckRegistry:
    """Build the fixed check registry.

    Args:
        operator: Identity of the person deploying; user access assertions
            compare it against the target's declared users.

    Returns:
        Validated registry in presentation order.
    """
    checks = (
        *_remote_deployment_checks(operator),
        *_system_security_checks(),
        *_system_maintenance_checks(),
        *_nix_configuration_checks(),
        *_server_optimization_checks(),
        *_hardware_checks(),
    )
    return CheckRegistry(CATEGORIES, checks)


def _remote_deployment_checks(operator: OperatorInfo) -> tuple[CheckDefinition, ...]:
    return (
        CheckDefinition(
            id="ssh_access",
            category="remote_deployment",
            title="SSH access",
            description="The deploying user must be able to log in over SSH",
            assertions=(
                Assertion(
                    id="ssh_enabled",
                    path="services.openssh.enable",
                    predicate=require_true("SSH service is not enabled"),
                    hint="Set services.openssh.enable = true",
                ),
                Assertion(
                    id="user_access",
                    path="users.users",
                    predicate=_user_has_authorized_key(operator),
                    hint=(
                        f"Add one of your SSH public keys to "
                        f"users.users.{operator.username}.openssh.authorizedKeys.keys"
                    ),
                ),
            ),
        ),
        CheckDefinition(
            id="privilege_escalation",
            category="remote_deployment",
            title="Privilege escalation",
            description="The deploying user must be able to switch the system without a password prompt",
            assertions=(
                Assertion(
                    id="sudo_enabled",
                    path="security.sudo.enable",
                    predicate=require_true("Sudo is not enabled"),
                    hint="Set security.sudo.enable = true",
                ),
                Assertion(
                    id="wheel_passwordless",
                    path="security.sudo.wheelNeedsPassword",
                    predicate=require_false("Wheel group members need a password for sudo"),
                    hint="Set security.sudo.wheelNeedsPassword = false",
                ),
                Assertion(
                    id="user_in_wheel",
                    path="users.users",
                    predicate=_user_in_wheel(operator),
                    hint=f'Add "{WHEEL_GROUP}" to users.users.{operator.username}.extraGroups',
                ),
            ),
        ),
        CheckDefinition(
            id="nix_trust",
            category="remote_deployment",
            title="Nix trust",
            description="Wheel group members must be allowed to copy unsigned store paths",
            assertions=(
                Assertion(
                    id="nix_trusts_wheel",
                    path="nix.settings.trusted-users",
                    predicate=_list_contains(f"@{WHEEL_GROUP}", "wheel group is not trusted by nix"),
                    hint=f'Add "@{WHEEL_GROUP}" to nix.settings.trusted-users',
                ),
            ),
        ),
    )


def _system_security_checks() -> tuple[CheckDefinition, ...]:
    return (
        CheckDefinition(
            id="sudo_hardening",
            category="system_security",
            title="Sudo hardening",
            description="Only wheel group members should be allowed to use sudo",
            assertions=(
                Assertion(
                    id="wheel_only",
                    path="security.sudo.execWheelOnly",
                    predicate=require_true("Users outside the wheel group can use sudo"),
                    hint="Set security.sudo.execWheelOnly = true",
                ),
            ),
        ),
        CheckDefinition(
            id="ssh_hardening",
            category="system_security",
            title="SSH hardening",
            description="Password authentication should be disabled for SSH",
            assertions=(
                Assertion(
                    id="ssh_password_authentication",
                    path="services.openssh.settings.PasswordAuthentication",
                    predicate=require_false(
                        "SSH password authentication is enabled; use key-based authentication only"
                    ),
                    hint="Set services.openssh.settings.PasswordAuthentication = false",
                ),
            ),
        ),
        CheckDefinition(
            id="immutable_users",
            category="system_security",
            title="Declarative users",
            description="Users should be managed through the NixOS configuration",
            assertions=(
                Assertion(
                    id="users_immutable",
                    path="users.mutableUsers",
                    predicate=require_false(
                        "Users can be modified outside of the NixOS configuration"
                    ),
                    hint="Set users.mutableUsers = false",
                ),
            ),
        ),
        CheckDefinition(
            id="firewall",
            category="system_security",
            title="Firewall",
            description="The system firewall should be enabled without flooding the logs",
            assertions=(
                Assertion(
                    id="firewall_enabled",
                    path="networking.firewall.enable",
                    predicate=require_true("System firewall is not enabled"),
                    hint="Set networking.firewall.enable = true",
                ),
                Assertion(
                    id="log_refused_connections",
                    path="networking.firewall.logRefusedConnections",
                    predicate=require_false(
                        "Logging of refused connections floods the journal; "
                        "use it only to debug firewall rules"
                    ),
                    hint="Set networking.firewall.logRefusedConnections = false",
                ),
            ),
        ),
    )


def _system_maintenance_checks() -> tuple[CheckDefinition, ...]:
    return (
        CheckDefinition(
            id="boot_generations",
            category="system_maintenance",
            title="Boot generation limit",
            description=(
                "The retention of old system generations should be limited, as these "
                "are protected from garbage collection and consume disk space."
            ),
            assertions=(
                Assertion(
                    id="system_generations_limit",
                    path="boot.loader",
                    predicate=_generations_limited,
                    hint=(
                        f"Set boot.loader.systemd-boot.configurationLimit or "
                        f"boot.loader.grub.configurationLimit to {MAX_BOOT_GENERATIONS} or less"
                    ),
                    reads=(
                        "boot.loader.systemd-boot.enable",
                        "boot.loader.systemd-boot.configurationLimit",
                        "boot.loader.grub.enable",
                        "boot.loader.grub.configurationLimit",
                    ),
                ),
            ),
        ),
        CheckDefinition(
            id="garbage_collection",
            category="system_maintenance",
            title="Garbage collection",
            description="Regular Nix garbage collection should be enabled",
            assertions=(
                Assertion(
                    id="nix_gc",
                    path="nix.gc.automatic",
                    predicate=require_true("Garbage collection is not enabled"),
                    hint="Set nix.gc.automatic = true",
                ),
            ),
        ),
        CheckDefinition(
            id="store_optimisation",
            category="system_maintenance",
            title="Store optimisation",
            description="Nix store optimisation should be enabled outside of containers",
            assertions=(
                Assertion(
                    id="nix_optimise_automatic",
                    path="",
                    predicate=_store_optimised,
                    hint=(
                        "Set either nix.settings.auto-optimise-store = true "
                        "or nix.optimise.automatic = true"
                    ),
                    reads=(
                        "boot.isContainer",
                        "nix.optimise.automatic",
                        "nix.settings.auto-optimise-store",
                    ),
                ),
            ),
        ),
        CheckDefinition(
            id="journald",
            category="system_maintenance",
            title="Journald space management",
            description="Journald should have disk space limits configured",
            assertions=(
                Assertion(
                    id="journald_limits",
                    path="services.journald.extraConfig",
                    predicate=_journald_limited,
                    hint=(
                        "Set SystemKeepFree=, or both SystemMaxUse= and SystemMaxFileSize=, "
                        "in services.journald.extraConfig"
                    ),
                ),
            ),
        ),
    )


def _nix_configuration_checks() -> tuple[CheckDefinition, ...]:
    reads = ("nix.extraOptions", "nix.settings.experimental-features")
    return (
        CheckDefinition(
            id="nix_features",
            category="nix_configuration",
            title="Experimental features",
            description="Nix features should include nix-command and flakes",
            assertions=(
                Assertion(
                    id="nix_command",
                    path="nix",
                    predicate=_feature_enabled("nix-command"),
                    hint='Add "nix-command" to nix.settings.experimental-features',
                    reads=reads,
                ),
                Assertion(
                    id="flakes",
                    path="nix",
                    predicate=_feature_enabled("flakes"),
                    hint='Add "flakes" to nix.settings.experimental-features',
                    reads=reads,
                ),
            ),
        ),
    )


def _server_optimization_checks() -> tuple[CheckDefinition, ...]:
    return (
        CheckDefinition(
            id="documentation",
            category="server_optimization",
            title="Documentation",
            description="Documentation should be disabled on servers to reduce system closure size",
            assertions=tuple(
                _server_option_disabled(assertion_id, path, label)
                for assertion_id, path, label in _DOCUMENTATION_OPTIONS
            ),
        ),
        CheckDefinition(
            id="closure_size",
            category="server_optimization",
            title="Closure size",
            description="Desktop conveniences are typically not needed on servers",
            assertions=tuple(
                _server_option_disabled(assertion_id, path, label)
                for assertion_id, path, label in _CLOSURE_OPTIONS
            ),
        ),
        CheckDefinition(
            id="nginx",
            category="server_optimization",
            title="Nginx recommended settings",
            description="Enabled nginx instances should use the recommended setting bundles",
            assertions=tuple(
                Assertion(
                    id=assertion_id,
                    path="services.nginx",
                    predicate=when_enabled(
                        "enable",
                        require_true(f"{label} not enabled"),
                        option,
                    ),
                    hint=f"Set services.nginx.{option} = true",
                    reads=("services.nginx.enable", f"services.nginx.{option}"),
                )
                for assertion_id, option, label in _NGINX_OPTIONS
            ),
        ),
    )


def _hardware_checks() -> tuple[CheckDefinition, ...]:
    return (
        CheckDefinition(
            id="microcode",
            category="hardware_configuration",
            title="CPU microcode",
            description="CPU microcode updates should be enabled on x86 machines",
            assertions=(
                Assertion(
                    id="cpu_microcode",
                    path="",
                    predicate=_microcode_enabled,
                    hint=(
                        "Set either hardware.cpu.intel.updateMicrocode or "
                        "hardware.cpu.amd.updateMicrocode to true"
                    ),
                    reads=(
                        "nixpkgs.hostPlatform.isx86",
                        "hardware.cpu.intel.updateMicrocode",
                        "hardware.cpu.amd.updateMicrocode",
                    ),
                ),
            ),
        ),
    )


def _server_option_disabled(assertion_id: str, path: str, label: str) -> Assertion:
    return Assertion(
        id=assertion_id,
        path="",
        predicate=when_present(
            "networking.fqdn",
            require_false(f"{label} enabled on a server"),
            path,
        ),
        hint=f"Set {path} = false",
        reads=("networking.fqdn", path),
    )


def _operator_user(users: ConfigValue, username: str) -> tuple[ConfigValue, str | None]:
    if users is ABSENT:
        return ABSENT, NOT_PRESENT_MESSAGE
    user = expect_mapping(users).child(username)
    if user is ABSENT:
        return ABSENT, f"User '{username}' does not exist on target system"
    return user, None


def _user_has_authorized_key(operator: OperatorInfo) -> Predicate:
    local_keys = frozenset(operator.ssh_keys)

    def predicate(users: ConfigValue) -> str | None:
        user, error = _operator_user(users, operator.username)
        if error is not None:
            return error
        declared = lookup(user, "openssh.authorizedKeys.keys")
        remote_keys = {
            key
            for key in (SshPublicKey.parse(line) for line in string_items(declared))
            if key is not None
        }
        if local_keys & remote_keys:
            return None
        return (
            f"User '{operator.username}' exists but none of the local SSH agent keys "
            "are authorized on the target"
        )

    return predicate


def _user_in_wheel(operator: OperatorInfo) -> Predicate:
    def predicate(users: ConfigValue) -> str | None:
        user, error = _operator_user(users, operator.username)
        if error is not None:
            return error
        if WHEEL_GROUP in string_items(lookup(user, "extraGroups")):
            return None
        return f"User '{operator.username}' is not in the {WHEEL_GROUP} group"

    return predicate


def _list_contains(expected: str, failure: str) -> Predicate:
    def predicate(value: ConfigValue) -> str | None:
        if value is ABSENT:
            return NOT_PRESENT_MESSAGE
        return None if expected in string_items(value) else failure

    return predicate


def _generations_limited(loader: ConfigValue) -> str | None:
    for key, label in (("systemd-boot", "systemd-boot"), ("grub", "GRUB")):
        if not flag(loader, f"{key}.enable"):
            continue
        limit = lookup(loader, f"{key}.configurationLimit")
        if limit is ABSENT:
            return (
                f"No {label} generation limit set. This may prevent old generations "
                "from being garbage collected"
            )
        count = expect_int(limit)
        if count > MAX_BOOT_GENERATIONS:
            return (
                f"Too many {label} generations kept ({count}). "
                f"Consider reducing to {MAX_BOOT_GENERATIONS} or less"
            )
    return None


def _store_optimised(root: ConfigValue) -> str | None:
    if flag(root, "boot.isContainer"):
        return None
    if flag(root, "nix.optimise.automatic") or flag(root, "nix.settings.auto-optimise-store"):
        return None
    return "Nix store optimisation is disabled"


def _journald_limited(value: ConfigValue) -> str | None:
    extra_config = "" if value is ABSENT else expect_str(value)
    has_keep_free = "SystemKeepFree=" in extra_config
    has_max_use = "SystemMaxUse=" in extra_config
    has_max_file_size = "SystemMaxFileSize=" in extra_config
    if has_keep_free or (has_max_use and has_max_file_size):
        return None
    return "No journald space limits configured"


def _feature_enabled(feature: str) -> Predicate:
    def predicate(nix: ConfigValue) -> str | None:
        if feature in _experimental_features(nix):
            return None
        return f"Missing required nix feature '{feature}'"

    return predicate


def _experimental_features(nix: ConfigValue) -> frozenset[str]:
    features: set[str] = set()
    settings_value = lookup(nix, "settings.experimental-features")
    if settings_value is not ABSENT:
        if isinstance(settings_value, ConfigString):
            features.update(settings_value.value.split())
        else:
            features.update(string_items(settings_value))
    extra_options = lookup(nix, "extraOptions")
    if extra_options is not ABSENT:
        for line in expect_str(extra_options).splitlines():
            key, _, value = line.partition("=")
            if key.strip() == "experimental-features":
                features.update(value.split())
    return frozenset(features)


def _microcode_enabled(root: ConfigValue) -> str | None:
    if not flag(root, "nixpkgs.hostPlatform.isx86"):
        return None
    if flag(root, "hardware.cpu.intel.updateMicrocode") or flag(
        root, "hardware.cpu.amd.updateMicrocode"
    ):
        return None
    return "No CPU microcode updates enabled"
