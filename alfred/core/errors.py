"""
Exception hierarchy for alfred.

Every error raised by the core derives from AlfredError so the CLI can map
it to an exit status in one place.
"""

from __future__ import annotations

from typing import Optional


class AlfredError(Exception):
    """Base class for all alfred errors."""
    pass


# ============================================================================
# Configuration errors (fatal, raised before any mutation)
# ============================================================================

class ConfigurationError(AlfredError):
    """Raised when the configuration document or settings are unusable."""
    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when the configuration document does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Configuration file not found: {path}")
        self.path = path


class MissingSectionError(ConfigurationError):
    """Raised when a requested section is absent."""

    def __init__(self, section: str):
        super().__init__(f"Missing section: [{section}]")
        self.section = section


class MissingKeyError(ConfigurationError):
    """Raised when a requested key is absent from an existing section."""

    def __init__(self, section: str, key: str):
        super().__init__(f"Missing key '{key}' in section [{section}]")
        self.section = section
        self.key = key


class DuplicateSectionError(ConfigurationError):
    """Raised when a section name appears twice in one document."""

    def __init__(self, section: str, line: int):
        super().__init__(f"Duplicate section [{section}] at line {line}")
        self.section = section
        self.line = line


class EmptyBlockError(ConfigurationError):
    """Raised when a required block section has no content."""

    def __init__(self, section: str):
        super().__init__(f"Section [{section}] is empty")
        self.section = section


class BaselineNotInstalledError(ConfigurationError):
    """Raised when the firewall is driven before its baseline module exists."""

    def __init__(self, module: str):
        super().__init__(
            f"The '{module}' module is not installed; install it before "
            f"switching firewall profiles"
        )
        self.module = module


# ============================================================================
# Validation errors (the live configuration is left untouched)
# ============================================================================

class ValidationError(AlfredError):
    """Raised when generated configuration fails validation."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class UnresolvedTokenError(ValidationError):
    """Raised when rendered text still contains {{TOKEN}} placeholders."""

    def __init__(self, what: str, tokens: list[str]):
        super().__init__(
            f"Unresolved placeholders in {what}: {', '.join(tokens)}", tokens
        )
        self.what = what
        self.tokens = tokens


class ArtifactValidationError(ValidationError):
    """Raised when a daemon rejects a generated configuration file."""
    pass


class FirewallValidationError(ValidationError):
    """Raised when the firewall dry-run rejects a rule set."""
    pass


# ============================================================================
# Dependency errors
# ============================================================================

class DependencyError(AlfredError):
    """Raised when a module's dependency chain cannot be satisfied."""
    pass


class InvalidModuleNameError(DependencyError):
    """Raised when a module name does not match [a-z0-9_-]+."""

    def __init__(self, name: str):
        super().__init__(f"Invalid module name: {name!r}")
        self.name = name


class UnknownModuleError(DependencyError):
    """Raised when a module has no install entrypoint."""

    def __init__(self, name: str, required_by: Optional[str] = None):
        if required_by:
            message = f"Module not found: {name} (required by {required_by})"
        else:
            message = f"Module not found: {name}"
        super().__init__(message)
        self.name = name
        self.required_by = required_by


class CyclicDependencyError(DependencyError):
    """Raised when module requirements loop back on themselves."""

    def __init__(self, path: list[str]):
        super().__init__(f"Cyclic dependency: {' -> '.join(path)}")
        self.path = path


class IsolatedModuleError(DependencyError):
    """Raised when the isolated bootstrap module is reached indirectly."""

    def __init__(self, name: str, required_by: Optional[str] = None):
        if required_by:
            message = f"'{name}' cannot be a dependency (required by {required_by})"
        else:
            message = f"'{name}' can only be run through its own command"
        super().__init__(message)
        self.name = name
        self.required_by = required_by


class FailedDependencyError(DependencyError):
    """Raised when a dependency already failed earlier in the same run."""

    def __init__(self, module: str, dependency: str):
        super().__init__(f"Cannot install '{module}': dependency '{dependency}' failed earlier in this run")
        self.module = module
        self.dependency = dependency


class DependencyDeclinedError(DependencyError):
    """Raised when the operator declines a dependency in ask mode."""

    def __init__(self, module: str, dependency: str):
        super().__init__(f"Cannot continue installing '{module}' without '{dependency}'")
        self.module = module
        self.dependency = dependency


# ============================================================================
# Execution errors
# ============================================================================

class ExecutionError(AlfredError):
    """Raised when an external procedure or system primitive fails."""

    def __init__(self, message: str, exit_status: int = 1):
        super().__init__(message)
        self.exit_status = exit_status


class ProfileNotSupportedError(AlfredError):
    """Raised for exposure profiles that have no implementation."""

    def __init__(self, profile: str):
        super().__init__(f"Exposure profile '{profile}' is not supported")
        self.profile = profile
