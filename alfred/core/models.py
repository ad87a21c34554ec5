"""
Core data models for alfred.

These Pydantic models represent modules, install records, the persisted
firewall state and the typed firewall rules the state machine builds.
"""

from __future__ import annotations

import ipaddress
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InstallStatus(str, Enum):
    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    FAILED = "failed"


class ExposureProfile(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    HIDDEN = "hidden"


class Direction(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class Policy(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    REJECT = "reject"


# ============================================================================
# Module Models
# ============================================================================

class ModuleInfo(BaseModel):
    """Everything the registry knows about one module directory."""
    name: str
    description: str
    requirements: list[str] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)
    version: str = "unknown"


class InstallRecord(BaseModel):
    name: str
    version: str = "unknown"
    installed_at: str
    status: InstallStatus = InstallStatus.INSTALLED


# ============================================================================
# Configuration Models
# ============================================================================

class GlobalSettings(BaseModel):
    """Scalars from the [global] section of the configuration document."""
    model_config = ConfigDict(frozen=True)

    ssh_port_bootstrap: int = Field(ge=1, le=65535)
    ssh_port_final: int = Field(ge=1, le=65535)
    master_ip: str

    @field_validator("master_ip")
    @classmethod
    def validate_master_ip(cls, v: str) -> str:
        try:
            ipaddress.ip_network(v, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid management address: {v}") from e
        return v


class Block(BaseModel):
    """A raw block section, e.g. [ufw.profile.ssh] -> suffix 'ssh'."""
    model_config = ConfigDict(frozen=True)

    name: str
    suffix: str
    text: str


# ============================================================================
# Firewall Models
# ============================================================================

class ResetRule(BaseModel):
    kind: str = "reset"


class DefaultPolicy(BaseModel):
    kind: str = "default"
    direction: Direction
    policy: Policy


class AllowFrom(BaseModel):
    """Allow all traffic from an address (the management rule)."""
    kind: str = "allow_from"
    address: str


class AllowApp(BaseModel):
    """Allow an application profile by name."""
    kind: str = "allow_app"
    app: str


Rule = Union[ResetRule, DefaultPolicy, AllowFrom, AllowApp]


class FirewallState(BaseModel):
    current_profile: Optional[ExposureProfile] = None
    knockd_enabled: bool = False
    installed_apps: list[str] = Field(default_factory=list)
    updated_at: Optional[str] = None


class FirewallStatus(BaseModel):
    """Snapshot reported by `alfred firewall status`."""
    state: FirewallState
    baseline_installed: bool
    backend_status: str = ""
    knockd_active: bool = False
