"""
UFW firewall backend.

Translates typed rules into ufw invocations:
- ResetRule      -> ufw --force reset
- DefaultPolicy  -> ufw default <policy> <direction>
- AllowFrom      -> ufw allow from <address>
- AllowApp       -> ufw allow <app>
"""

from __future__ import annotations

import logging

from ..core.errors import ExecutionError
from ..core.models import AllowApp, AllowFrom, DefaultPolicy, ResetRule, Rule
from .base import FirewallBackend, run_command

logger = logging.getLogger(__name__)


class UfwBackend(FirewallBackend):
    """Backend for the Uncomplicated Firewall."""

    name = "ufw"

    def __init__(self, binary: str = "ufw"):
        self.binary = binary

    def command(self, rule: Rule) -> list[str]:
        """Return the ufw arguments for a single rule."""
        if isinstance(rule, ResetRule):
            return ["--force", "reset"]
        if isinstance(rule, DefaultPolicy):
            return ["default", rule.policy.value, rule.direction.value]
        if isinstance(rule, AllowFrom):
            return ["allow", "from", rule.address]
        if isinstance(rule, AllowApp):
            return ["allow", rule.app]
        raise ValueError(f"Unsupported rule: {rule!r}")

    def dry_run(self, rules: list[Rule]) -> list[str]:
        errors = []
        for rule in rules:
            # reset cannot be dry-run and does not depend on input
            if isinstance(rule, ResetRule):
                continue
            args = self.command(rule)
            result = run_command([self.binary, "--dry-run", *args])
            if result.returncode != 0:
                errors.append(f"ufw {' '.join(args)}: {(result.stderr or result.stdout).strip()}")
        result = run_command([self.binary, "--dry-run", "enable"])
        if result.returncode != 0:
            errors.append(f"ufw enable: {(result.stderr or result.stdout).strip()}")
        return errors

    def apply(self, rules: list[Rule]) -> None:
        for rule in rules:
            run_command([self.binary, *self.command(rule)], check=True)
        run_command([self.binary, "--force", "enable"], check=True)
        logger.info("Applied %d firewall rules", len(rules))

    def status(self) -> str:
        try:
            result = run_command([self.binary, "status", "verbose"])
        except ExecutionError as e:
            return str(e)
        return (result.stdout or result.stderr).strip()
