"""
Persistent install and firewall state.

Install records are one JSON file per module; the firewall state is a single
JSON file. Every write goes to a temporary file in the target directory and
is then moved into place with os.replace, so a reader never sees a partial
record.

There is no locking. alfred assumes one operator drives one process at a
time; concurrent invocations are unsupported.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError
from .models import FirewallState, InstallRecord, InstallStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def atomic_write_text(path: Path, content: str, mode: int = 0o644) -> None:
    """Write content to path via a temporary sibling and an atomic replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class InstallStateStore:
    """
    Maps module name -> InstallRecord.

    Only ``installed`` counts as installed; a ``failed`` record is kept so
    status reporting can show what broke.
    """

    def __init__(self, state_dir: str | Path, clock: Optional[Clock] = None):
        self.state_dir = Path(state_dir)
        self.records_dir = self.state_dir / "modules"
        self._clock = clock or _utcnow

    def _path(self, name: str) -> Path:
        return self.records_dir / f"{name}.json"

    def get(self, name: str) -> Optional[InstallRecord]:
        path = self._path(name)
        if not path.is_file():
            return None
        try:
            return InstallRecord(**json.loads(path.read_text()))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise ConfigurationError(f"Corrupt install record {path}: {e}") from e

    def status(self, name: str) -> InstallStatus:
        record = self.get(name)
        return record.status if record else InstallStatus.NOT_INSTALLED

    def is_installed(self, name: str) -> bool:
        return self.status(name) == InstallStatus.INSTALLED

    def _write(self, name: str, version: str, status: InstallStatus) -> InstallRecord:
        record = InstallRecord(
            name=name,
            version=version or "unknown",
            installed_at=self._clock().isoformat(),
            status=status,
        )
        atomic_write_text(self._path(name), record.model_dump_json(indent=2) + "\n")
        logger.debug("Recorded %s as %s", name, status.value)
        return record

    def mark_installed(self, name: str, version: str = "unknown") -> InstallRecord:
        return self._write(name, version, InstallStatus.INSTALLED)

    def mark_failed(self, name: str, version: str = "unknown") -> InstallRecord:
        return self._write(name, version, InstallStatus.FAILED)

    def clear(self, name: str) -> None:
        try:
            self._path(name).unlink()
            logger.debug("Cleared install record for %s", name)
        except FileNotFoundError:
            pass

    def records(self) -> Iterator[InstallRecord]:
        if not self.records_dir.is_dir():
            return
        for path in sorted(self.records_dir.glob("*.json")):
            record = self.get(path.stem)
            if record is not None:
                yield record


class FirewallStateStore:
    """Holds the current exposure profile and related firewall facts."""

    def __init__(self, state_dir: str | Path, clock: Optional[Clock] = None):
        self.path = Path(state_dir) / "firewall.json"
        self._clock = clock or _utcnow

    def load(self) -> FirewallState:
        if not self.path.is_file():
            return FirewallState()
        try:
            return FirewallState(**json.loads(self.path.read_text()))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise ConfigurationError(f"Corrupt firewall state {self.path}: {e}") from e

    def save(self, state: FirewallState) -> FirewallState:
        state = state.model_copy(update={"updated_at": self._clock().isoformat()})
        atomic_write_text(self.path, state.model_dump_json(indent=2) + "\n")
        return state

    def update(self, **changes) -> FirewallState:
        return self.save(self.load().model_copy(update=changes))

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
