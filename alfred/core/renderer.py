"""
Template rendering for configuration blocks.

Placeholders are literal ``{{NAME}}`` tokens. Unknown tokens are left in
place by ``render``; callers that are about to touch the live system use
``render_strict`` so a half-rendered artifact never gets applied.
"""

from __future__ import annotations

import re
from typing import Mapping

from pydantic import BaseModel, Field

from .config import ConfigStore
from .errors import UnresolvedTokenError

_TOKEN_RE = re.compile(r"\{\{[^{}]*\}\}")


def render(text: str, values: Mapping[str, object]) -> str:
    """Replace every {{NAME}} whose NAME is in values."""
    for name, value in values.items():
        text = text.replace("{{" + name + "}}", str(value))
    return text


def find_unresolved(text: str) -> list[str]:
    """Return the distinct placeholder tokens still present in text."""
    seen: list[str] = []
    for token in _TOKEN_RE.findall(text):
        if token not in seen:
            seen.append(token)
    return seen


class RenderContext(BaseModel):
    """Runtime values available to templates, resolved once per invocation."""
    ssh_port_bootstrap: int
    ssh_port_final: int
    master_ip: str
    extra: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_config(cls, config: ConfigStore, **extra: object) -> RenderContext:
        settings = config.global_settings()
        return cls(
            ssh_port_bootstrap=settings.ssh_port_bootstrap,
            ssh_port_final=settings.ssh_port_final,
            master_ip=settings.master_ip,
            extra={k: str(v) for k, v in extra.items()},
        )

    def tokens(self) -> dict[str, str]:
        tokens = {
            "SSH_PORT_BOOTSTRAP": str(self.ssh_port_bootstrap),
            "SSH_PORT_FINAL": str(self.ssh_port_final),
            "MASTER_IP": self.master_ip,
        }
        tokens.update(self.extra)
        return tokens


class TemplateRenderer:
    """Renders text against a fixed RenderContext."""

    def __init__(self, context: RenderContext):
        self.context = context
        self._tokens = context.tokens()

    def render(self, text: str, **extra: object) -> str:
        values = dict(self._tokens)
        values.update({k: str(v) for k, v in extra.items()})
        return render(text, values)

    def render_strict(self, text: str, what: str, **extra: object) -> str:
        """Render and refuse any leftover placeholder."""
        rendered = self.render(text, **extra)
        leftover = find_unresolved(rendered)
        if leftover:
            raise UnresolvedTokenError(what, leftover)
        return rendered
