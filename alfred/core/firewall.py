"""
Firewall exposure state machine.

Profiles:
- open:   deny incoming by default, allow the management address and every
          installed application profile
- closed: deny incoming by default, allow only the management address and
          make sure knockd is running so a knock sequence can reopen access
- hidden: not supported

Any profile can follow any other. Every transition rebuilds the firewall
from a reset, and the management allow rule is always the first rule after
the default policies, so switching profiles can never lock the operator out.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .config import ConfigStore
from .errors import (
    BaselineNotInstalledError,
    ConfigurationError,
    FirewallValidationError,
    ProfileNotSupportedError,
)
from .models import (
    AllowApp,
    AllowFrom,
    DefaultPolicy,
    Direction,
    ExposureProfile,
    FirewallState,
    FirewallStatus,
    Policy,
    ResetRule,
    Rule,
)
from .settings import Settings
from .state import FirewallStateStore, InstallStateStore

if TYPE_CHECKING:
    from ..plugins.base import FirewallBackend, ServiceManager
    from .writer import ArtifactWriter

logger = logging.getLogger(__name__)

KNOCKD_ACTIONS = ("start", "stop", "reload")


class FirewallStateMachine:
    """Applies exposure profiles and keeps the persisted state in step."""

    def __init__(
        self,
        config: ConfigStore,
        install_state: InstallStateStore,
        firewall_state: FirewallStateStore,
        firewall: "FirewallBackend",
        services: "ServiceManager",
        settings: Settings,
        writer: "ArtifactWriter | None" = None,
    ):
        self.config = config
        self.install_state = install_state
        self.firewall_state = firewall_state
        self.firewall = firewall
        self.services = services
        self.settings = settings
        self.writer = writer

    def _require_baseline(self) -> None:
        if not self.install_state.is_installed(self.settings.baseline_module):
            raise BaselineNotInstalledError(self.settings.baseline_module)
        if not self.settings.ufw_profiles_file.is_file():
            raise ConfigurationError(
                f"Application profile file not found: {self.settings.ufw_profiles_file}. "
                f"Run: alfred firewall reload-profiles"
            )

    def build_rules(self, profile: ExposureProfile, state: FirewallState) -> list[Rule]:
        """Return the ordered rule set for a profile."""
        master_ip = self.config.global_settings().master_ip
        rules: list[Rule] = [
            ResetRule(),
            DefaultPolicy(direction=Direction.INCOMING, policy=Policy.DENY),
            DefaultPolicy(direction=Direction.OUTGOING, policy=Policy.ALLOW),
            AllowFrom(address=master_ip),
        ]
        if profile == ExposureProfile.OPEN:
            rules.extend(AllowApp(app=app) for app in state.installed_apps)
        return rules

    def apply(self, profile: ExposureProfile | str) -> FirewallState:
        """
        Switch to a profile.

        Nothing is changed unless the dry-run accepts the full rule set.
        """
        profile = ExposureProfile(profile)
        self._require_baseline()
        if profile == ExposureProfile.HIDDEN:
            raise ProfileNotSupportedError(profile.value)

        state = self.firewall_state.load()
        if state.current_profile == profile:
            logger.info("Current profile is already %s; reapplying", profile.value)

        rules = self.build_rules(profile, state)
        errors = self.firewall.dry_run(rules)
        if errors:
            raise FirewallValidationError(
                f"Firewall check failed for profile '{profile.value}'; current rules left in place",
                errors,
            )

        knockd_enabled = state.knockd_enabled
        if profile == ExposureProfile.CLOSED:
            self.services.start(self.settings.knockd_service)
            knockd_enabled = True

        logger.info("Setting firewall to %s profile...", profile.value.upper())
        self.firewall.apply(rules)

        return self.firewall_state.update(
            current_profile=profile,
            knockd_enabled=knockd_enabled,
        )

    def status(self) -> FirewallStatus:
        return FirewallStatus(
            state=self.firewall_state.load(),
            baseline_installed=self.install_state.is_installed(self.settings.baseline_module),
            backend_status=self.firewall.status(),
            knockd_active=self.services.is_active(self.settings.knockd_service),
        )

    def reload_profiles(self) -> list[str]:
        """Regenerate the application-profile file from the config document."""
        if self.writer is None:
            raise ConfigurationError("No artifact writer configured")
        return self.writer.write_ufw_profiles()

    def knockd(self, action: str) -> FirewallState:
        """Start, stop or reload (re-render, then restart) knockd."""
        service = self.settings.knockd_service
        if action not in KNOCKD_ACTIONS:
            raise ValueError(f"Invalid knockd action: {action}. Use: {', '.join(KNOCKD_ACTIONS)}")
        if action == "start":
            self.services.start(service)
            return self.firewall_state.update(knockd_enabled=True)
        if action == "stop":
            self.services.stop(service)
            return self.firewall_state.update(knockd_enabled=False)

        if self.writer is None:
            raise ConfigurationError("No artifact writer configured")
        self.writer.write_knockd_config()
        self.services.stop(service)
        self.services.start(service)
        return self.firewall_state.update(knockd_enabled=True)
