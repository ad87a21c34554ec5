"""
systemd service manager.
"""

from __future__ import annotations

import logging

from .base import ServiceManager, run_command

logger = logging.getLogger(__name__)

# Daemons that can check their own configuration before a reload.
VALIDATORS = {
    "ssh": ["sshd", "-t"],
    "sshd": ["sshd", "-t"],
}


class SystemdManager(ServiceManager):

    def __init__(self, systemctl: str = "systemctl"):
        self.systemctl = systemctl

    def is_active(self, service: str) -> bool:
        result = run_command([self.systemctl, "is-active", "--quiet", service])
        return result.returncode == 0

    def start(self, service: str) -> None:
        if self.is_active(service):
            logger.debug("%s is already running", service)
            return
        run_command([self.systemctl, "enable", service], check=True)
        run_command([self.systemctl, "start", service], check=True)

    def stop(self, service: str) -> None:
        run_command([self.systemctl, "stop", service], check=True)
        run_command([self.systemctl, "disable", service], check=True)

    def reload(self, service: str) -> None:
        if not self.is_active(service):
            run_command([self.systemctl, "start", service], check=True)
            return
        result = run_command([self.systemctl, "reload", service])
        if result.returncode != 0:
            logger.info("Reload of %s failed, restarting", service)
            run_command([self.systemctl, "restart", service], check=True)

    def validate_config(self, service: str) -> list[str]:
        argv = VALIDATORS.get(service)
        if not argv:
            return []
        result = run_command(argv)
        if result.returncode != 0:
            return [(result.stderr or result.stdout).strip() or f"{argv[0]} exited {result.returncode}"]
        return []
