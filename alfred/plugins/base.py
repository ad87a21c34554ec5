"""
Base interfaces for system primitives.

The core never shells out directly. Firewall control, service control,
package installation and module procedures all go through these classes,
so tests can swap in recording fakes.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from ..core.errors import ExecutionError

if TYPE_CHECKING:
    from ..core.models import Rule

logger = logging.getLogger(__name__)


def run_command(
    argv: Sequence[str],
    check: bool = False,
    env: Optional[Mapping[str, str]] = None,
    capture: bool = True,
) -> subprocess.CompletedProcess:
    """
    Run an external command and log the outcome.

    Args:
        argv: Command and arguments (never passed through a shell)
        check: Raise ExecutionError on a non-zero exit status
        env: Full environment for the child, or None to inherit
        capture: Capture stdout/stderr instead of passing them through
    """
    logger.debug("Running: %s", " ".join(argv))
    try:
        result = subprocess.run(
            list(argv),
            capture_output=capture,
            text=True,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise ExecutionError(f"Command not found: {argv[0]}", 127) from e
    logger.debug("Exit status %d: %s", result.returncode, argv[0])
    if check and result.returncode != 0:
        detail = (result.stderr or "").strip() if capture else ""
        raise ExecutionError(
            f"{' '.join(argv)} failed with exit status {result.returncode}"
            + (f": {detail}" if detail else ""),
            result.returncode,
        )
    return result


class FirewallBackend(ABC):
    """
    Translates typed rules into firewall commands.

    A rule set always starts from a reset so applying it twice yields the
    same firewall.
    """

    name: str = ""

    @abstractmethod
    def dry_run(self, rules: list["Rule"]) -> list[str]:
        """
        Check a rule set without changing the live firewall.

        Returns a list of error messages (empty if the rule set is valid).
        """
        pass

    @abstractmethod
    def apply(self, rules: list["Rule"]) -> None:
        """Apply a rule set in order, then enable the firewall."""
        pass

    @abstractmethod
    def status(self) -> str:
        """Human-readable status text."""
        pass


class ServiceManager(ABC):
    """Controls system daemons."""

    @abstractmethod
    def is_active(self, service: str) -> bool:
        pass

    @abstractmethod
    def start(self, service: str) -> None:
        """Enable and start a service; no-op if it is already running."""
        pass

    @abstractmethod
    def stop(self, service: str) -> None:
        """Stop and disable a service."""
        pass

    @abstractmethod
    def reload(self, service: str) -> None:
        """Reload (or restart, or start) a service to pick up new config."""
        pass

    def validate_config(self, service: str) -> list[str]:
        """
        Run the daemon's own configuration check.

        Returns a list of error messages. Services without a validator are
        always valid.
        """
        return []


class PackageManager(ABC):
    """Installs OS packages by name."""

    @abstractmethod
    def is_installed(self, package: str) -> bool:
        pass

    @abstractmethod
    def install(self, packages: list[str]) -> None:
        pass

    def missing(self, packages: list[str]) -> list[str]:
        return [p for p in packages if not self.is_installed(p)]


class ProcedureRunner(ABC):
    """Runs a module's install entrypoint as a black box."""

    @abstractmethod
    def run(self, name: str, entrypoint: Path, env: Mapping[str, str]) -> int:
        """Run the procedure and return its exit status."""
        pass
