"""
Config store for the INI-like configuration document.

The document is parsed once into an immutable set of sections. Sections are
either scalar sections (``key = value`` pairs, e.g. [global]) or raw block
sections whose body is copied into a generated artifact
(e.g. [ssh.secure], [ufw.profile.ssh]). The file is never executed.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from pydantic import ValidationError as PydanticValidationError

from .errors import (
    ConfigFileNotFoundError,
    ConfigurationError,
    DuplicateSectionError,
    MissingKeyError,
    MissingSectionError,
)
from .models import Block, GlobalSettings

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^\s*\[([^\]]+)\]\s*$")
_MISSING = object()

GLOBAL_SECTION = "global"
GLOBAL_KEYS = {
    "ssh_port_bootstrap": "SSH_PORT_BOOTSTRAP",
    "ssh_port_final": "SSH_PORT_FINAL",
    "master_ip": "MASTER_IP",
}


def _is_comment_or_blank(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped[0] in "#;"


def _split_key_value(line: str) -> tuple[str, str] | None:
    """Split on the first '=' that is not escaped with a backslash."""
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\" and i + 1 < len(line):
            i += 2
            continue
        if ch == "=":
            key = line[:i].replace("\\=", "=").strip()
            return key, line[i + 1:].strip()
        i += 1
    return None


def _strip_inline_comment(value: str) -> str:
    """
    Drop a trailing '#' or ';' comment.

    Only a quote at the very start of the value opens a quoted string, so an
    apostrophe inside plain text does not hide the comment that follows it.
    """
    start = 0
    if value[:1] in ("'", '"'):
        end = value.find(value[0], 1)
        if end != -1:
            start = end + 1
    for i in range(start, len(value)):
        if value[i] in "#;":
            return value[:i].rstrip()
    return value


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_value(raw: str) -> str:
    """Normalize a raw scalar value: comment stripping, then unquoting."""
    return _unquote(_strip_inline_comment(raw.strip()))


class ConfigStore:
    """
    Immutable view of a parsed configuration document.

    Lookups are by exact section name; [a] never matches [ab].
    """

    def __init__(self, sections: Mapping[str, tuple[str, ...]], source: str = "<memory>"):
        self._sections = MappingProxyType(dict(sections))
        self.source = source

    @classmethod
    def from_text(cls, text: str, source: str = "<memory>") -> ConfigStore:
        sections: dict[str, list[str]] = {}
        current: list[str] | None = None

        for lineno, line in enumerate(text.splitlines(), start=1):
            match = _HEADER_RE.match(line)
            if match:
                name = re.sub(r"\s+", "", match.group(1))
                if name in sections:
                    raise DuplicateSectionError(name, lineno)
                current = sections[name] = []
                continue
            if current is not None:
                current.append(line.rstrip("\r"))

        logger.debug("Parsed %d sections from %s", len(sections), source)
        return cls({k: tuple(v) for k, v in sections.items()}, source)

    @classmethod
    def load(cls, path: str | Path) -> ConfigStore:
        path = Path(path)
        if not path.is_file():
            raise ConfigFileNotFoundError(str(path))
        return cls.from_text(path.read_text(), source=str(path))

    # =========================================================================
    # Lookup
    # =========================================================================

    def sections(self) -> list[str]:
        return list(self._sections)

    def has_section(self, section: str) -> bool:
        return section in self._sections

    def _lines(self, section: str) -> tuple[str, ...]:
        if section not in self._sections:
            raise MissingSectionError(section)
        return self._sections[section]

    def get_scalars(self, section: str) -> Mapping[str, str]:
        """Return every key/value pair of a scalar section."""
        values: dict[str, str] = {}
        for line in self._lines(section):
            if _is_comment_or_blank(line):
                continue
            pair = _split_key_value(line)
            if pair is None:
                continue
            key, raw = pair
            # first occurrence wins
            values.setdefault(key, parse_value(raw))
        return MappingProxyType(values)

    def get_scalar(self, section: str, key: str, default: Any = _MISSING) -> str:
        try:
            values = self.get_scalars(section)
        except MissingSectionError:
            if default is not _MISSING:
                return default
            raise
        if key not in values:
            if default is not _MISSING:
                return default
            raise MissingKeyError(section, key)
        return values[key]

    def get_block(self, section: str, strip_comments: bool = False) -> str:
        """
        Return the raw body of a block section.

        Blank lines inside the block are kept; trailing blank lines are
        trimmed. With strip_comments, whole-line comments are dropped.
        """
        lines = list(self._lines(section))
        if strip_comments:
            lines = [l for l in lines if not (l.strip() and l.strip()[0] in "#;")]
        while lines and not lines[-1].strip():
            lines.pop()
        while lines and not lines[0].strip():
            lines.pop(0)
        return "\n".join(lines)

    def get_blocks(self, prefix: str, strip_comments: bool = False) -> list[Block]:
        """Return every [prefix.<suffix>] section in document order."""
        head = prefix.rstrip(".") + "."
        return [
            Block(
                name=name,
                suffix=name[len(head):],
                text=self.get_block(name, strip_comments=strip_comments),
            )
            for name in self._sections
            if name.startswith(head) and len(name) > len(head)
        ]

    def iter_sections(self) -> Iterator[tuple[str, str]]:
        for name in self._sections:
            yield name, self.get_block(name)

    def global_settings(self) -> GlobalSettings:
        """Read and validate the required [global] scalars."""
        data = {
            field: self.get_scalar(GLOBAL_SECTION, key)
            for field, key in GLOBAL_KEYS.items()
        }
        try:
            return GlobalSettings(**data)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid [global] section in {self.source}: {e}") from e
