"""
Registry of installable modules.

Modules live one per directory under the modules directory:

    modules/<name>/setup.sh          install entrypoint (required)
    modules/<name>/description.txt   one-line description
    modules/<name>/requirements.txt  module dependencies, one per line
    modules/<name>/packages.txt      OS packages installed first
    modules/<name>/artifacts.txt     artifacts rendered after install
    modules/<name>/VERSION           free-text version
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterator

from .errors import InvalidModuleNameError, UnknownModuleError
from .models import ModuleInfo

MODULE_NAME_RE = re.compile(r"^[a-z0-9_-]+$")
ENTRYPOINT = "setup.sh"


def valid_module_name(name: str) -> bool:
    return bool(MODULE_NAME_RE.match(name or ""))


def validate_name(name: str) -> str:
    if not valid_module_name(name):
        raise InvalidModuleNameError(name)
    return name


def _read_list(path: Path) -> list[str]:
    """Read a list file, ignoring blank lines and '#' comments."""
    if not path.is_file():
        return []
    items: list[str] = []
    for line in path.read_text().splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            items.extend(line.split())
    return items


class ModuleRegistry:
    """
    Discovers modules by directory convention.

    Nothing is cached: the directory is the source of truth and is read at
    query time.
    """

    def __init__(self, modules_dir: str | Path):
        self.modules_dir = Path(modules_dir)

    def _dir(self, name: str) -> Path:
        return self.modules_dir / name

    def discover(self) -> Iterator[str]:
        """Yield module names in lexicographic order."""
        if not self.modules_dir.is_dir():
            return
        for path in sorted(self.modules_dir.iterdir(), key=lambda p: p.name):
            if path.is_dir() and valid_module_name(path.name) and self.exists(path.name):
                yield path.name

    def exists(self, name: str) -> bool:
        if not valid_module_name(name):
            return False
        return self.entrypoint(name).is_file()

    def require(self, name: str, required_by: str | None = None) -> str:
        validate_name(name)
        if not self.exists(name):
            raise UnknownModuleError(name, required_by)
        return name

    def entrypoint(self, name: str) -> Path:
        return self._dir(name) / ENTRYPOINT

    def description(self, name: str) -> str:
        path = self._dir(name) / "description.txt"
        if path.is_file():
            text = path.read_text().strip()
            if text:
                return text
        return name

    def requirements(self, name: str) -> list[str]:
        return _read_list(self._dir(name) / "requirements.txt")

    def packages(self, name: str) -> list[str]:
        return _read_list(self._dir(name) / "packages.txt")

    def artifacts(self, name: str) -> list[str]:
        return _read_list(self._dir(name) / "artifacts.txt")

    def version(self, name: str) -> str:
        path = self._dir(name) / "VERSION"
        if path.is_file():
            text = path.read_text().strip()
            if text:
                return text
        return "unknown"

    def get(self, name: str) -> ModuleInfo:
        self.require(name)
        return ModuleInfo(
            name=name,
            description=self.description(name),
            requirements=self.requirements(name),
            packages=self.packages(name),
            artifacts=self.artifacts(name),
            version=self.version(name),
        )

    def all_modules(self) -> Iterator[ModuleInfo]:
        for name in self.discover():
            yield self.get(name)
