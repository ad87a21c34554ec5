"""
System primitive plugins.

Each plugin wraps one family of host commands behind an interface from
base.py.
"""

from .base import (
    FirewallBackend,
    PackageManager,
    ProcedureRunner,
    ServiceManager,
    run_command,
)
from .ufw import UfwBackend
from .systemd import SystemdManager
from .apt import AptManager
from .shell import BashRunner

__all__ = [
    "FirewallBackend",
    "PackageManager",
    "ProcedureRunner",
    "ServiceManager",
    "run_command",
    "UfwBackend",
    "SystemdManager",
    "AptManager",
    "BashRunner",
]
