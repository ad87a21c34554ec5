"""
Shared fixtures: a sample configuration document, a module tree builder and
recording fakes for every system primitive.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from alfred.core.config import ConfigStore
from alfred.core.models import ResetRule
from alfred.core.renderer import RenderContext, TemplateRenderer
from alfred.core.settings import Settings
from alfred.core.state import FirewallStateStore, InstallStateStore
from alfred.plugins.base import FirewallBackend, PackageManager, ProcedureRunner, ServiceManager


SAMPLE_CONFIG = """\
# alfred server configuration
[ global ]
SSH_PORT_BOOTSTRAP = 42
SSH_PORT_FINAL = 2222     # final port
MASTER_IP = "203.0.113.7"

[ssh.bootstrap]
Port {{SSH_PORT_BOOTSTRAP}}
PermitRootLogin yes
PasswordAuthentication yes

[ssh.secure]
Port {{SSH_PORT_FINAL}}
PermitRootLogin no
PasswordAuthentication no

[ufw.profile.SSH-Open]
title=SSH on the final port
description=Secure shell
ports={{SSH_PORT_FINAL}}/tcp

[ufw.profile.Web]
title=Web
description=HTTP and HTTPS
ports=80,443/tcp

[knockd.profile.options]
UseSyslog

[knockd.profile.openSSH]
sequence = 7000,8000,9000
seq_timeout = 5
command = /usr/sbin/ufw allow from %IP% to any port {{SSH_PORT_FINAL}}
tcpflags = syn
"""


class FakeRunner(ProcedureRunner):
    """Records which procedures ran; exit codes come from a mapping."""

    def __init__(self, exit_codes=None):
        self.exit_codes = dict(exit_codes or {})
        self.calls = []
        self.envs = {}

    def run(self, name, entrypoint, env):
        self.calls.append(name)
        self.envs[name] = dict(env)
        return self.exit_codes.get(name, 0)


class FakePackages(PackageManager):

    def __init__(self, installed=()):
        self.installed = set(installed)
        self.install_calls = []

    def is_installed(self, package):
        return package in self.installed

    def install(self, packages):
        self.install_calls.append(list(packages))
        self.installed.update(packages)


class FakeServices(ServiceManager):
    """
    Records service actions. ``invalid`` maps a service to validator
    messages; ``raises`` maps (action, service) to an exception to raise.
    """

    def __init__(self, active=(), invalid=None, raises=None):
        self.active = set(active)
        self.invalid = dict(invalid or {})
        self.raises = dict(raises or {})
        self.calls = []

    def _record(self, action, service):
        self.calls.append((action, service))
        if (action, service) in self.raises:
            raise self.raises[(action, service)]

    def is_active(self, service):
        return service in self.active

    def start(self, service):
        self._record("start", service)
        self.active.add(service)

    def stop(self, service):
        self._record("stop", service)
        self.active.discard(service)

    def reload(self, service):
        self._record("reload", service)
        self.active.add(service)

    def validate_config(self, service):
        self._record("validate", service)
        return list(self.invalid.get(service, []))


class RecordingWriter:
    """Stands in for ArtifactWriter.apply; ``failures`` maps kind -> exception."""

    def __init__(self, failures=None):
        self.failures = dict(failures or {})
        self.applied = []

    def apply(self, kind):
        if kind in self.failures:
            raise self.failures[kind]
        self.applied.append(kind)


class RecordingFirewall(FirewallBackend):
    """Keeps every rule set it was asked to check or apply."""

    name = "recording"

    def __init__(self, dry_run_errors=None):
        self.dry_run_errors = list(dry_run_errors or [])
        self.checked = []
        self.applied = []

    def dry_run(self, rules):
        self.checked.append(list(rules))
        return list(self.dry_run_errors)

    def apply(self, rules):
        self.applied.append(list(rules))

    def status(self):
        return "Status: active" if self.applied else "Status: inactive"

    @property
    def last_rules(self):
        return [r for r in self.applied[-1] if not isinstance(r, ResetRule)]


def stepping_clock(start=None, step=timedelta(seconds=1)):
    """A clock that moves forward on every call."""
    current = [start or datetime(2024, 1, 1, tzinfo=timezone.utc)]

    def clock():
        value = current[0]
        current[0] = value + step
        return value

    return clock


@pytest.fixture
def config_text():
    return SAMPLE_CONFIG


@pytest.fixture
def config_file(tmp_path, config_text):
    path = tmp_path / "server.conf"
    path.write_text(config_text)
    return path


@pytest.fixture
def store(config_text):
    return ConfigStore.from_text(config_text)


@pytest.fixture
def renderer(store):
    return TemplateRenderer(RenderContext.from_config(store))


@pytest.fixture
def settings(tmp_path, config_file):
    return Settings(
        config_file=config_file,
        modules_dir=tmp_path / "modules",
        state_dir=tmp_path / "state",
        backup_dir=tmp_path / "backups",
        ssh_dropin_dir=tmp_path / "etc" / "ssh" / "sshd_config.d",
        ufw_apps_dir=tmp_path / "etc" / "ufw" / "applications.d",
        knockd_conf=tmp_path / "etc" / "knockd.conf",
    )


@pytest.fixture
def install_state(settings):
    return InstallStateStore(settings.state_dir, clock=stepping_clock())


@pytest.fixture
def firewall_state(settings):
    return FirewallStateStore(settings.state_dir)


@pytest.fixture
def make_module(settings):
    """Create modules/<name>/ with a setup.sh and optional metadata files."""

    def _make(name, requires=(), description=None, packages=(), artifacts=(), version=None):
        module_dir = Path(settings.modules_dir) / name
        module_dir.mkdir(parents=True, exist_ok=True)
        (module_dir / "setup.sh").write_text("#!/usr/bin/env bash\nexit 0\n")
        if requires:
            (module_dir / "requirements.txt").write_text("\n".join(requires) + "\n")
        if description is not None:
            (module_dir / "description.txt").write_text(description + "\n")
        if packages:
            (module_dir / "packages.txt").write_text("\n".join(packages) + "\n")
        if artifacts:
            (module_dir / "artifacts.txt").write_text("\n".join(artifacts) + "\n")
        if version is not None:
            (module_dir / "VERSION").write_text(version + "\n")
        return module_dir

    return _make
