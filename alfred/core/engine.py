"""
Module orchestration engine.

The engine is the main entry point for installing modules. It validates the
dependency graph of the requested module, installs dependencies first
(post-order), runs the module's procedure, renders the artifacts the module
declares and records the outcome in the install-state store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Mapping, Optional, Union

from pydantic import BaseModel, Field

from .errors import (
    AlfredError,
    ConfigurationError,
    CyclicDependencyError,
    DependencyDeclinedError,
    DependencyError,
    ExecutionError,
    FailedDependencyError,
    IsolatedModuleError,
    ValidationError,
)
from .registry import ModuleRegistry, validate_name
from .resolver import (
    Decision,
    Mode,
    PromptSource,
    RunOutcome,
    ScriptedPrompt,
    decide_dependency,
    decide_target,
    dependency_mode,
)
from .state import InstallStateStore

if TYPE_CHECKING:
    from ..plugins.base import PackageManager, ProcedureRunner
    from .writer import ArtifactWriter

logger = logging.getLogger(__name__)

# Either the value itself or a zero-argument callable that builds it on first use
EnvSource = Union[Mapping[str, str], Callable[[], Mapping[str, str]]]
WriterSource = Union["ArtifactWriter", Callable[[], "ArtifactWriter"]]


class BatchReport(BaseModel):
    """Result of an install-everything run."""
    installed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    declined: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    exit_status: int = 0
    # module -> why it was not attempted
    not_attempted: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def record(self, name: str, outcome: RunOutcome) -> None:
        if outcome == RunOutcome.INSTALLED:
            self.installed.append(name)
        elif outcome == RunOutcome.SKIPPED:
            self.skipped.append(name)
        else:
            self.declined.append(name)

    def record_failure(self, name: str, error: AlfredError) -> None:
        self.failed[name] = str(error)
        if self.exit_status == 0:
            self.exit_status = getattr(error, "exit_status", 1) or 1


class Orchestrator:
    """
    Installs modules in dependency order.

    Interactive questions go through the PromptSource; with the default
    ScriptedPrompt every question is answered "yes".

    env and writer may be given as callables so that nothing touching the
    configuration document is built until a procedure actually runs.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        state: InstallStateStore,
        runner: "ProcedureRunner",
        packages: Optional["PackageManager"] = None,
        writer: Optional[WriterSource] = None,
        prompt: Optional[PromptSource] = None,
        env: Optional[EnvSource] = None,
        baseline_module: str = "ufw",
        isolated_module: str = "user",
    ):
        self.registry = registry
        self.state = state
        self.runner = runner
        self.packages = packages
        self._writer = writer
        self.prompt = prompt or ScriptedPrompt(True)
        self._env = env
        self.baseline_module = baseline_module
        self.isolated_module = isolated_module
        # modules whose install failed during the current run
        self._failed: set[str] = set()

    @property
    def writer(self) -> Optional["ArtifactWriter"]:
        if callable(self._writer):
            self._writer = self._writer()
        return self._writer

    @property
    def env(self) -> dict[str, str]:
        if callable(self._env):
            self._env = self._env()
        return dict(self._env or {})

    # =========================================================================
    # Planning
    # =========================================================================

    def plan(self, name: str) -> list[str]:
        """
        Return the module and its transitive dependencies in install order.

        Raises a DependencyError for unknown modules, dependencies on the
        isolated module and cycles, before anything is installed.
        """
        self.registry.require(name)
        order: list[str] = []
        self._visit(name, [], order, set())
        return order

    def _visit(self, name: str, stack: list[str], order: list[str], done: set[str]) -> None:
        if name in stack:
            raise CyclicDependencyError(stack[stack.index(name):] + [name])
        if name in done:
            return
        stack.append(name)
        for dep in self.registry.requirements(name):
            self._check_dependency(dep, name)
            self._visit(dep, stack, order, done)
        stack.pop()
        done.add(name)
        order.append(name)

    def _check_dependency(self, dep: str, required_by: str) -> None:
        if dep == self.isolated_module:
            raise IsolatedModuleError(dep, required_by)
        self.registry.require(dep, required_by)

    # =========================================================================
    # Single module
    # =========================================================================

    def run(self, name: str, mode: Mode | str = Mode.ASK) -> RunOutcome:
        """Install one module (and whatever it needs) under the given mode."""
        mode = Mode(mode)
        validate_name(name)
        if name == self.isolated_module:
            raise IsolatedModuleError(name)
        self.plan(name)
        self._failed = set()
        return self._run(name, mode, [])

    def run_isolated(self, mode: Mode | str = Mode.ASK) -> RunOutcome:
        """Run the isolated bootstrap module through its own entry point."""
        mode = Mode(mode)
        self.plan(self.isolated_module)
        self._failed = set()
        return self._run(self.isolated_module, mode, [])

    def _run(self, name: str, mode: Mode, stack: list[str]) -> RunOutcome:
        if name in stack:
            raise CyclicDependencyError(stack[stack.index(name):] + [name])

        if mode == Mode.REINSTALL:
            logger.info("Reinstalling %s...", name)
            self.state.clear(name)

        decision = decide_target(mode, self.state.is_installed(name))
        if decision == Decision.SKIP:
            logger.info("%s already installed, skipping", name)
            return RunOutcome.SKIPPED
        if decision == Decision.CONFIRM:
            if not self.prompt.confirm(f"{name} already installed. Reinstall with defaults?"):
                logger.info("Skipping %s", name)
                return RunOutcome.DECLINED
            self.state.clear(name)

        stack = stack + [name]
        self._resolve_dependencies(name, mode, stack)
        self._install(name, mode)
        return RunOutcome.INSTALLED

    def _resolve_dependencies(self, name: str, mode: Mode, stack: list[str]) -> None:
        for dep in self.registry.requirements(name):
            self._check_dependency(dep, name)
            if dep in stack:
                raise CyclicDependencyError(stack[stack.index(dep):] + [dep])
            # never retried within one run
            if dep in self._failed:
                raise FailedDependencyError(name, dep)

            decision = decide_dependency(mode, self.state.is_installed(dep))
            if decision == Decision.SKIP:
                continue
            if decision == Decision.CONFIRM:
                logger.info("Dependency '%s' is not installed for module '%s'", dep, name)
                if not self.prompt.confirm(f"Install '{dep}' now?"):
                    raise DependencyDeclinedError(name, dep)

            self._run(dep, dependency_mode(mode), stack)

    def _install(self, name: str, mode: Mode) -> None:
        info = self.registry.get(name)
        if info.artifacts and self.writer is None:
            raise ExecutionError(f"{name} declares artifacts but no artifact writer is configured")

        try:
            self._install_packages(name, info.packages, mode)

            logger.info("Installing %s...", name)
            env = dict(self.env, ALFRED_MODULE=name)
            status = self.runner.run(name, self.registry.entrypoint(name), env)
            if status != 0:
                raise ExecutionError(f"{name} failed with exit code {status}", status)

            for kind in info.artifacts:
                logger.info("Rendering %s for %s", kind, name)
                self.writer.apply(kind)
        except (ExecutionError, ValidationError, ConfigurationError):
            self._failed.add(name)
            self.state.mark_failed(name, info.version)
            logger.error("%s NOT marked as installed; fix errors and rerun", name)
            raise

        self.state.mark_installed(name, info.version)
        logger.info("%s installed successfully", name)

    def _install_packages(self, name: str, packages: list[str], mode: Mode) -> None:
        if not packages:
            return
        if self.packages is None:
            raise ExecutionError(f"{name} needs packages but no package manager is configured")
        missing = self.packages.missing(packages)
        if not missing:
            return
        if mode == Mode.ASK:
            question = f"The {name} module needs the following packages: {', '.join(missing)}. Install them now?"
            if not self.prompt.confirm(question):
                raise DependencyDeclinedError(name, ", ".join(missing))
        self.packages.install(missing)

    # =========================================================================
    # Batch
    # =========================================================================

    def batch_order(self) -> list[str]:
        """Baseline module first, then discovery order; never the isolated one."""
        names = [
            m for m in self.registry.discover()
            if m not in (self.baseline_module, self.isolated_module)
        ]
        if self.registry.exists(self.baseline_module):
            names.insert(0, self.baseline_module)
        return names

    def run_all(self, mode: Mode | str = Mode.FORCE, continue_on_failure: bool = False) -> BatchReport:
        """
        Install every module in one deterministic pass.

        Stops at the first failure unless continue_on_failure is set. With
        continue_on_failure, modules that depend on a failed module are not
        attempted, and no failed procedure is run twice.
        """
        mode = Mode(mode)
        report = BatchReport()
        self._failed = set()

        for name in self.batch_order():
            if report.failed and not continue_on_failure:
                first = next(iter(report.failed))
                report.not_attempted[name] = f"batch stopped after {first} failed"
                continue

            try:
                order = self.plan(name)
            except DependencyError as e:
                logger.error("Module %s cannot be installed: %s", name, e)
                report.record_failure(name, e)
                continue

            blocked = [m for m in order if m in report.failed or m in self._failed]
            if blocked:
                if blocked[0] == name:
                    reason = "already failed earlier in this run"
                else:
                    reason = f"requires {blocked[0]}, which failed"
                logger.warning("Not attempting %s: %s", name, reason)
                report.not_attempted[name] = reason
                continue

            if mode == Mode.ASK and not self.state.is_installed(name):
                if not self.prompt.confirm(f"Install the {name} module?"):
                    logger.info("Skipping %s", name)
                    report.declined.append(name)
                    continue

            try:
                outcome = self._run(name, mode, [])
            except DependencyDeclinedError as e:
                logger.info("%s", e)
                report.declined.append(name)
                continue
            except (ExecutionError, DependencyError, ValidationError, ConfigurationError) as e:
                logger.error("Module %s installation failed: %s", name, e)
                report.record_failure(name, e)
                continue
            report.record(name, outcome)

        return report

    def remove(self, name: str) -> None:
        """Forget a module's install record."""
        validate_name(name)
        self.state.clear(name)
        logger.info("Cleared install record for %s", name)
