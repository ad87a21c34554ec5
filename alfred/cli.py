"""
Command-line interface for alfred.

Usage:
    alfred list
    alfred install ufw --yes
    alfred all --yes
    alfred firewall profile closed
"""

from __future__ import annotations

import functools
import logging
import sys
from functools import cached_property
from typing import Optional

import click

from . import __version__
from .core.config import ConfigStore
from .core.engine import Orchestrator
from .core.errors import AlfredError, DependencyDeclinedError, ExecutionError
from .core.firewall import KNOCKD_ACTIONS, FirewallStateMachine
from .core.models import ExposureProfile, InstallStatus
from .core.registry import ModuleRegistry, validate_name
from .core.renderer import RenderContext, TemplateRenderer
from .core.resolver import Mode, RunOutcome
from .core.settings import Settings, load_settings
from .core.state import FirewallStateStore, InstallStateStore
from .core.validator import Validator
from .core.writer import SSH_VARIANTS, ArtifactWriter
from .plugins import AptManager, BashRunner, SystemdManager, UfwBackend

logger = logging.getLogger(__name__)

# Operator declined a prompt (EX_TEMPFAIL in sysexits.h). A procedure exiting
# with this status is reported as 1 so the two never mix.
EXIT_DECLINED = 75


class ClickPrompt:
    """Asks the operator on the terminal."""

    def confirm(self, message: str) -> bool:
        return click.confirm(message, default=False)


class App:
    """Wires settings to the core components, building each on first use."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.prompt = ClickPrompt()

    @cached_property
    def config(self) -> ConfigStore:
        return ConfigStore.load(self.settings.config_file)

    @cached_property
    def context(self) -> RenderContext:
        return RenderContext.from_config(self.config)

    @cached_property
    def registry(self) -> ModuleRegistry:
        return ModuleRegistry(self.settings.modules_dir)

    @cached_property
    def install_state(self) -> InstallStateStore:
        return InstallStateStore(self.settings.state_dir)

    @cached_property
    def firewall_state(self) -> FirewallStateStore:
        return FirewallStateStore(self.settings.state_dir)

    @cached_property
    def services(self) -> SystemdManager:
        return SystemdManager()

    @cached_property
    def writer(self) -> ArtifactWriter:
        return ArtifactWriter(
            self.config,
            TemplateRenderer(self.context),
            self.settings,
            self.services,
            firewall_state=self.firewall_state,
        )

    def procedure_env(self) -> dict[str, str]:
        """
        Environment handed to module procedures.

        Template values are added only when the configuration document
        exists, so modules that never read it can run without one.
        """
        env = {
            "ALFRED_CONFIG": str(self.settings.config_file),
            "ALFRED_STATE_DIR": str(self.settings.state_dir),
        }
        if self.settings.config_file.is_file():
            env.update(self.context.tokens())
        else:
            logger.warning("Configuration document %s not found; procedures get no template values",
                           self.settings.config_file)
        return env

    @cached_property
    def orchestrator(self) -> Orchestrator:
        return Orchestrator(
            self.registry,
            self.install_state,
            BashRunner(),
            packages=AptManager(),
            writer=lambda: self.writer,
            prompt=self.prompt,
            env=self.procedure_env,
            baseline_module=self.settings.baseline_module,
            isolated_module=self.settings.isolated_module,
        )

    @cached_property
    def firewall(self) -> FirewallStateMachine:
        return FirewallStateMachine(
            self.config,
            self.install_state,
            self.firewall_state,
            UfwBackend(),
            self.services,
            self.settings,
            writer=self.writer,
        )


pass_app = click.make_pass_decorator(App)


def failure_status(status: int) -> int:
    """Exit status for a failed procedure; never 0 and never EXIT_DECLINED."""
    if not status or status == EXIT_DECLINED:
        return 1
    return status


def exit_status_for(error: AlfredError) -> int:
    if isinstance(error, ExecutionError):
        return failure_status(error.exit_status)
    if isinstance(error, DependencyDeclinedError):
        return EXIT_DECLINED
    return 1


def handle_errors(func):
    """Report AlfredError as a red message and exit with its status."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DependencyDeclinedError as e:
            click.echo(click.style(f"Skipped: {e}", fg="yellow"))
            sys.exit(EXIT_DECLINED)
        except AlfredError as e:
            click.echo(click.style(f"Error: {e}", fg="red"), err=True)
            for detail in getattr(e, "errors", []) or []:
                click.echo(f"  - {detail}", err=True)
            sys.exit(exit_status_for(e))

    return wrapper


def _status_label(status: InstallStatus) -> str:
    colors = {
        InstallStatus.INSTALLED: "green",
        InstallStatus.FAILED: "red",
        InstallStatus.NOT_INSTALLED: "yellow",
    }
    return click.style(f"[{status.value.replace('_', ' ')}]", fg=colors[status])


def _report_outcome(name: str, outcome: RunOutcome) -> None:
    if outcome == RunOutcome.INSTALLED:
        click.echo(click.style(f"{name} installed successfully.", fg="green"))
    elif outcome == RunOutcome.SKIPPED:
        click.echo(click.style(f"{name} already installed, nothing to do.", fg="yellow"))
    else:
        click.echo(click.style(f"Skipped {name}.", fg="yellow"))


def _setup_logging(verbose: bool, quiet: bool, log_file: Optional[str]) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(message)s"))
    handlers: list[logging.Handler] = [console]
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        handlers.append(file_handler)
    logging.basicConfig(level=level, handlers=handlers, force=True)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--settings",
    "settings_path",
    envvar="ALFRED_SETTINGS",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file overriding alfred's paths",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    envvar="ALFRED_CONFIG",
    help="Path to the server configuration document",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also append log output to this file")
@click.pass_context
def cli(ctx, settings_path: str, config_path: str, verbose: bool, quiet: bool, log_file: str):
    """Host configuration orchestrator."""
    _setup_logging(verbose, quiet, log_file)
    try:
        settings = load_settings(settings_path, config_path)
    except AlfredError as e:
        raise click.ClickException(str(e))
    if ctx.obj is None:
        ctx.obj = App(settings)


# =============================================================================
# Modules
# =============================================================================

@cli.command("list")
@pass_app
@handle_errors
def list_modules(app: App):
    """List available modules."""
    click.echo("Available modules:")
    for name in app.registry.discover():
        status = app.install_state.status(name)
        click.echo(f"  {name:<12} - {app.registry.description(name)} {_status_label(status)}")


@cli.command()
@click.argument("module")
@pass_app
@handle_errors
def info(app: App, module: str):
    """Show a module's description, requirements and status."""
    mod = app.registry.get(module)
    record = app.install_state.get(module)

    click.echo(f"Module: {mod.name}")
    click.echo(f"Description: {mod.description}")
    click.echo(f"Requires: {' '.join(mod.requirements) or 'none'}")
    click.echo(f"Packages: {' '.join(mod.packages) or 'none'}")
    click.echo(f"Artifacts: {' '.join(mod.artifacts) or 'none'}")
    click.echo(f"Version: {mod.version}")
    status = record.status if record else InstallStatus.NOT_INSTALLED
    line = f"Status: {_status_label(status)}"
    if record:
        line += f" since {record.installed_at}"
    click.echo(line)


@cli.command()
@click.argument("module")
@click.option("--yes", "-y", is_flag=True, help="Do not ask; skip if already installed")
@pass_app
@handle_errors
def install(app: App, module: str, yes: bool):
    """Install a module and its dependencies."""
    mode = Mode.FORCE if yes else Mode.ASK
    _report_outcome(module, app.orchestrator.run(module, mode))


@cli.command()
@click.argument("module")
@pass_app
@handle_errors
def reinstall(app: App, module: str):
    """Clear a module's record and install it again."""
    _report_outcome(module, app.orchestrator.run(module, Mode.REINSTALL))


@cli.command()
@click.argument("module")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_app
@handle_errors
def remove(app: App, module: str, yes: bool):
    """Forget a module's install record."""
    validate_name(module)
    if not yes and not click.confirm(f"Remove the install record for {module}?", default=False):
        click.echo("Removal cancelled")
        return
    app.orchestrator.remove(module)
    click.echo(click.style(f"{module} marked as not installed.", fg="green"))


@cli.command()
@pass_app
@handle_errors
def user(app: App):
    """Run the isolated user bootstrap module."""
    name = app.settings.isolated_module
    click.echo(f"Running {name} module...")
    _report_outcome(name, app.orchestrator.run_isolated(Mode.ASK))


@cli.command("all")
@click.option("--yes", "-y", is_flag=True, help="Install everything without prompting")
@click.option("--continue-on-failure", is_flag=True, help="Keep going after a module fails")
@pass_app
@handle_errors
def install_all(app: App, yes: bool, continue_on_failure: bool):
    """Install every module, firewall baseline first."""
    mode = Mode.FORCE if yes else Mode.ASK
    report = app.orchestrator.run_all(mode, continue_on_failure=continue_on_failure)

    for name in report.installed:
        click.echo(click.style(f"  + {name}", fg="green"))
    for name in report.skipped + report.declined:
        click.echo(click.style(f"  = {name} (skipped)", fg="yellow"))
    for name, error in report.failed.items():
        click.echo(click.style(f"  - {name}: {error}", fg="red"))
    for name, reason in report.not_attempted.items():
        click.echo(f"  ? {name} (not attempted: {reason})")

    if not report.ok:
        click.echo(click.style("\nInstallation stopped with failures.", fg="red"))
        sys.exit(failure_status(report.exit_status))
    click.echo(click.style("\nAll modules processed.", fg="green"))


@cli.command()
@pass_app
@handle_errors
def status(app: App):
    """Show module install records and the firewall profile."""
    click.echo("Modules:")
    for name in app.registry.discover():
        record = app.install_state.get(name)
        status = record.status if record else InstallStatus.NOT_INSTALLED
        since = f" ({record.version}, {record.installed_at})" if record else ""
        click.echo(f"  {name:<12} {_status_label(status)}{since}")

    state = app.firewall_state.load()
    profile = state.current_profile.value.upper() if state.current_profile else "UNSET"
    click.echo(f"\nFirewall profile: {profile}")
    click.echo(f"Knockd enabled: {'yes' if state.knockd_enabled else 'no'}")


@cli.command()
@pass_app
def validate(app: App):
    """Validate the configuration document."""
    path = app.settings.config_file
    click.echo(f"Validating {path}...")
    errors = Validator().validate_document(path)

    if errors:
        click.echo(click.style("\nValidation errors found:", fg="red"))
        for error in errors:
            click.echo(f"  - {error}")
        sys.exit(1)
    click.echo(click.style("\nAll validations passed!", fg="green"))


# =============================================================================
# Firewall
# =============================================================================

@cli.group()
def firewall():
    """Firewall exposure profiles and port knocking."""
    pass


@firewall.command("profile")
@click.argument("profile", type=click.Choice([p.value for p in ExposureProfile]))
@pass_app
@handle_errors
def firewall_profile(app: App, profile: str):
    """Switch the firewall exposure profile."""
    state = app.firewall.apply(profile)
    click.echo(click.style(f"Firewall {state.current_profile.value.upper()} profile activated", fg="green"))
    if state.current_profile == ExposureProfile.CLOSED:
        click.echo("knockd is running; use your knock sequence to open access")


@firewall.command("status")
@pass_app
@handle_errors
def firewall_status(app: App):
    """Show firewall, profile and knockd status."""
    report = app.firewall.status()
    baseline = app.settings.baseline_module
    click.echo(f"Module {baseline}: {_status_label(app.install_state.status(baseline))}")
    profile = report.state.current_profile
    click.echo(f"Current profile: {profile.value.upper() if profile else 'UNSET'}")
    if report.state.installed_apps:
        click.echo("Installed applications:")
        for app_name in report.state.installed_apps:
            click.echo(f"  - {app_name}")
    else:
        click.echo("No applications installed")
    click.echo(f"knockd: {'ACTIVE' if report.knockd_active else 'INACTIVE'}")
    if report.backend_status:
        click.echo("")
        click.echo(report.backend_status)


@firewall.command("reload-profiles")
@pass_app
@handle_errors
def firewall_reload_profiles(app: App):
    """Regenerate the firewall application profiles."""
    names = app.firewall.reload_profiles()
    click.echo(click.style(f"Loaded {len(names)} application profiles to {app.settings.ufw_profiles_file}", fg="green"))


@firewall.command("knockd")
@click.argument("action", type=click.Choice(KNOCKD_ACTIONS))
@pass_app
@handle_errors
def firewall_knockd(app: App, action: str):
    """Start, stop or reload the port-knock daemon."""
    app.firewall.knockd(action)
    click.echo(click.style(f"knockd {action} complete", fg="green"))


# =============================================================================
# SSH
# =============================================================================

@cli.group()
def ssh():
    """SSH daemon drop-ins."""
    pass


@ssh.command("apply")
@click.argument("variant", type=click.Choice(SSH_VARIANTS))
@pass_app
@handle_errors
def ssh_apply(app: App, variant: str):
    """Render and install an SSH drop-in, then reload sshd."""
    path = app.writer.write_ssh_dropin(variant)
    click.echo(click.style(f"SSH {variant} configuration installed: {path}", fg="green"))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
