"""
Tests for the system primitive plugins, with subprocess calls recorded.
"""

import subprocess

import pytest

from alfred.core.errors import ExecutionError
from alfred.core.models import AllowApp, AllowFrom, DefaultPolicy, Direction, Policy, ResetRule
from alfred.plugins import base, systemd, ufw
from alfred.plugins.systemd import SystemdManager
from alfred.plugins.ufw import UfwBackend


class CommandLog:
    """Stands in for run_command; return codes are looked up by argv prefix."""

    def __init__(self, failures=None):
        self.calls = []
        self.failures = failures or {}

    def __call__(self, argv, check=False, env=None, capture=True):
        argv = list(argv)
        self.calls.append(argv)
        code = 0
        for prefix, status in self.failures.items():
            if tuple(argv[:len(prefix)]) == prefix:
                code = status
        if check and code:
            raise ExecutionError(" ".join(argv), code)
        return subprocess.CompletedProcess(argv, code, stdout="", stderr="bad rule" if code else "")


RULES = [
    ResetRule(),
    DefaultPolicy(direction=Direction.INCOMING, policy=Policy.DENY),
    AllowFrom(address="10.0.0.1"),
    AllowApp(app="Web"),
]


class TestUfwBackend:
    def test_command(self):
        backend = UfwBackend()

        assert [backend.command(r) for r in RULES] == [
            ["--force", "reset"],
            ["default", "deny", "incoming"],
            ["allow", "from", "10.0.0.1"],
            ["allow", "Web"],
        ]

    def test_dry_run_skips_reset(self, monkeypatch):
        log = CommandLog()
        monkeypatch.setattr(ufw, "run_command", log)

        assert UfwBackend().dry_run(RULES) == []
        assert log.calls == [
            ["ufw", "--dry-run", "default", "deny", "incoming"],
            ["ufw", "--dry-run", "allow", "from", "10.0.0.1"],
            ["ufw", "--dry-run", "allow", "Web"],
            ["ufw", "--dry-run", "enable"],
        ]

    def test_dry_run_collects_errors(self, monkeypatch):
        monkeypatch.setattr(ufw, "run_command", CommandLog({("ufw", "--dry-run", "allow", "Web"): 1}))

        assert UfwBackend().dry_run(RULES) == ["ufw allow Web: bad rule"]

    def test_apply_then_enable(self, monkeypatch):
        log = CommandLog()
        monkeypatch.setattr(ufw, "run_command", log)

        UfwBackend().apply(RULES)

        assert log.calls[0] == ["ufw", "--force", "reset"]
        assert log.calls[-1] == ["ufw", "--force", "enable"]

    def test_apply_stops_on_error(self, monkeypatch):
        log = CommandLog({("ufw", "allow", "from"): 1})
        monkeypatch.setattr(ufw, "run_command", log)

        with pytest.raises(ExecutionError):
            UfwBackend().apply(RULES)
        assert ["ufw", "--force", "enable"] not in log.calls


class TestSystemdManager:
    def test_start_inactive(self, monkeypatch):
        log = CommandLog({("systemctl", "is-active"): 3})
        monkeypatch.setattr(systemd, "run_command", log)

        SystemdManager().start("knockd")

        assert log.calls[1:] == [["systemctl", "enable", "knockd"], ["systemctl", "start", "knockd"]]

    def test_reload_falls_back_to_restart(self, monkeypatch):
        log = CommandLog({("systemctl", "reload"): 1})
        monkeypatch.setattr(systemd, "run_command", log)

        SystemdManager().reload("ssh")

        assert log.calls[-1] == ["systemctl", "restart", "ssh"]

    def test_validate_ssh(self, monkeypatch):
        monkeypatch.setattr(systemd, "run_command", CommandLog({("sshd", "-t"): 255}))

        assert SystemdManager().validate_config("ssh") == ["bad rule"]
        assert SystemdManager().validate_config("knockd") == []


class TestRunCommand:
    def test_missing_binary(self):
        with pytest.raises(ExecutionError) as exc:
            base.run_command(["alfred-no-such-binary-xyz"])
        assert exc.value.exit_status == 127
