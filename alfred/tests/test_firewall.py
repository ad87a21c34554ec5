"""
Tests for the firewall exposure state machine.
"""

import pytest

from conftest import FakeServices, RecordingFirewall
from alfred.core.errors import (
    BaselineNotInstalledError,
    ConfigurationError,
    FirewallValidationError,
    ProfileNotSupportedError,
)
from alfred.core.firewall import FirewallStateMachine
from alfred.core.models import (
    AllowApp,
    AllowFrom,
    DefaultPolicy,
    Direction,
    ExposureProfile,
    Policy,
    ResetRule,
)
from alfred.core.writer import ArtifactWriter


@pytest.fixture
def services():
    return FakeServices()


@pytest.fixture
def backend():
    return RecordingFirewall()


@pytest.fixture
def writer(store, renderer, settings, services, firewall_state):
    return ArtifactWriter(store, renderer, settings, services, firewall_state=firewall_state)


@pytest.fixture
def machine(store, install_state, firewall_state, backend, services, settings, writer):
    return FirewallStateMachine(
        store, install_state, firewall_state, backend, services, settings, writer=writer
    )


@pytest.fixture
def baseline(install_state, writer):
    install_state.mark_installed("ufw")
    writer.write_ufw_profiles()


MANAGEMENT = [
    DefaultPolicy(direction=Direction.INCOMING, policy=Policy.DENY),
    DefaultPolicy(direction=Direction.OUTGOING, policy=Policy.ALLOW),
    AllowFrom(address="203.0.113.7"),
]


class TestBaseline:
    def test_baseline_not_installed(self, machine, backend, firewall_state):
        with pytest.raises(BaselineNotInstalledError):
            machine.apply("open")

        assert backend.checked == []
        assert backend.applied == []
        assert firewall_state.load().current_profile is None

    def test_profiles_file_missing(self, machine, install_state, backend):
        install_state.mark_installed("ufw")

        with pytest.raises(ConfigurationError):
            machine.apply("closed")
        assert backend.applied == []


class TestProfiles:
    def test_closed(self, baseline, machine, backend, services, firewall_state):
        state = machine.apply(ExposureProfile.CLOSED)

        assert backend.applied[0][0] == ResetRule()
        assert backend.last_rules == MANAGEMENT
        assert ("start", "knockd") in services.calls
        assert state.current_profile == ExposureProfile.CLOSED
        assert state.knockd_enabled
        assert firewall_state.load().current_profile == ExposureProfile.CLOSED

    def test_closed_to_open(self, baseline, machine, backend):
        machine.apply("closed")
        state = machine.apply("open")

        assert backend.last_rules == MANAGEMENT + [AllowApp(app="SSH-Open"), AllowApp(app="Web")]
        assert state.current_profile == ExposureProfile.OPEN

    def test_management_rule_first_after_defaults(self, baseline, machine, backend):
        machine.apply("open")
        rules = backend.last_rules
        assert rules.index(AllowFrom(address="203.0.113.7")) == 2
        assert all(isinstance(r, AllowApp) for r in rules[3:])

    def test_reapply_same_profile(self, baseline, machine, backend):
        machine.apply("open")
        machine.apply("open")

        assert len(backend.applied) == 2
        assert backend.applied[0] == backend.applied[1]

    def test_hidden_not_supported(self, baseline, machine, backend):
        with pytest.raises(ProfileNotSupportedError):
            machine.apply("hidden")
        assert backend.applied == []

    def test_unknown_profile(self, baseline, machine):
        with pytest.raises(ValueError):
            machine.apply("stealth")

    def test_dry_run_failure_leaves_everything(self, baseline, machine, backend, services, firewall_state):
        machine.apply("open")
        backend.dry_run_errors = ["ERROR: Could not find a profile matching 'Web'"]

        with pytest.raises(FirewallValidationError) as exc:
            machine.apply("closed")

        assert exc.value.errors == ["ERROR: Could not find a profile matching 'Web'"]
        assert len(backend.applied) == 1
        assert ("start", "knockd") not in services.calls
        assert firewall_state.load().current_profile == ExposureProfile.OPEN


class TestKnockdAndStatus:
    def test_status(self, baseline, machine, services):
        machine.apply("closed")
        report = machine.status()

        assert report.baseline_installed
        assert report.state.current_profile == ExposureProfile.CLOSED
        assert report.knockd_active
        assert report.backend_status == "Status: active"

    def test_knockd_stop_start(self, machine, services, firewall_state):
        machine.knockd("start")
        assert firewall_state.load().knockd_enabled

        machine.knockd("stop")
        assert not firewall_state.load().knockd_enabled
        assert services.calls == [("start", "knockd"), ("stop", "knockd")]

    def test_knockd_reload_rewrites_config(self, machine, services, settings):
        machine.knockd("reload")

        assert settings.knockd_conf.is_file()
        assert services.calls[-2:] == [("stop", "knockd"), ("start", "knockd")]

    def test_knockd_invalid_action(self, machine):
        with pytest.raises(ValueError):
            machine.knockd("restart")

    def test_reload_profiles(self, machine, firewall_state):
        assert machine.reload_profiles() == ["SSH-Open", "Web"]
        assert firewall_state.load().installed_apps == ["SSH-Open", "Web"]
