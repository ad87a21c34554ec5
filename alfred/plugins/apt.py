"""
APT package manager (Debian/Ubuntu).
"""

from __future__ import annotations

import logging
import os

from .base import PackageManager, run_command

logger = logging.getLogger(__name__)


class AptManager(PackageManager):

    def is_installed(self, package: str) -> bool:
        return run_command(["dpkg", "-s", package]).returncode == 0

    def install(self, packages: list[str]) -> None:
        missing = self.missing(packages)
        if not missing:
            logger.debug("All packages already installed: %s", ", ".join(packages))
            return
        env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
        run_command(["apt-get", "-qq", "update"], check=True, env=env)
        run_command(["apt-get", "-qq", "install", "-y", *missing], check=True, env=env)
        logger.info("Installed packages: %s", ", ".join(missing))
