"""
Artifact writer: turns rendered blocks into system configuration files.

Artifacts are regenerated wholesale from the configuration document on
every call. Content is assembled from validated fragments first, so an
empty block or a leftover {{TOKEN}} is rejected before anything reaches
disk. Files are replaced atomically; when a daemon rejects the new file the
previous content is put back.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel

from .config import ConfigStore
from .errors import (
    ArtifactValidationError,
    ConfigurationError,
    EmptyBlockError,
    UnresolvedTokenError,
)
from .renderer import TemplateRenderer, find_unresolved
from .settings import Settings
from .state import FirewallStateStore, atomic_write_text

if TYPE_CHECKING:
    from ..plugins.base import ServiceManager

logger = logging.getLogger(__name__)

SSH_VARIANTS = ("bootstrap", "secure")
ARTIFACT_KINDS = ("ssh.bootstrap", "ssh.secure", "ufw.profiles", "knockd")

UFW_PROFILE_PREFIX = "ufw.profile"
KNOCKD_PROFILE_PREFIX = "knockd.profile"


class Fragment(BaseModel):
    header: Optional[str] = None
    body: str
    source: str


class ArtifactBuilder:
    """
    Accumulates fragments and serializes them once.

    Each fragment is checked when it is added; serialize() therefore only
    ever sees complete, fully rendered text.
    """

    def __init__(self, what: str):
        self.what = what
        self._fragments: list[Fragment] = []

    def add(self, body: str, source: str, header: Optional[str] = None) -> Fragment:
        if not body.strip():
            raise EmptyBlockError(source)
        leftover = find_unresolved(body)
        if leftover:
            raise UnresolvedTokenError(source, leftover)
        fragment = Fragment(header=header, body=body.strip("\n"), source=source)
        self._fragments.append(fragment)
        return fragment

    @property
    def headers(self) -> list[str]:
        return [f.header for f in self._fragments if f.header]

    def __len__(self) -> int:
        return len(self._fragments)

    def serialize(self) -> str:
        parts = []
        for fragment in self._fragments:
            if fragment.header:
                parts.append(f"[{fragment.header}]\n{fragment.body}")
            else:
                parts.append(fragment.body)
        return "\n\n".join(parts) + "\n" if parts else ""


class ArtifactWriter:
    """Renders configuration blocks and installs them as live files."""

    def __init__(
        self,
        config: ConfigStore,
        renderer: TemplateRenderer,
        settings: Settings,
        services: "ServiceManager",
        firewall_state: Optional[FirewallStateStore] = None,
    ):
        self.config = config
        self.renderer = renderer
        self.settings = settings
        self.services = services
        self.firewall_state = firewall_state

    # =========================================================================
    # File handling
    # =========================================================================

    def backup(self, path: Path) -> Optional[Path]:
        """Copy an existing file into the backup directory with a timestamp."""
        if not path.is_file():
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")
        target = self.settings.backup_dir / f"{path.name}.{stamp}"
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, target)
        logger.debug("Backed up %s -> %s", path, target)
        return target

    def _restore(self, touched: dict[Path, Optional[str]]) -> None:
        for p, previous in touched.items():
            if previous is None:
                if p.exists():
                    p.unlink()
            else:
                atomic_write_text(p, previous)

    def _install(
        self,
        path: Path,
        content: str,
        service: Optional[str] = None,
        remove: tuple[Path, ...] = (),
        reload: bool = False,
    ) -> None:
        """
        Replace path with content, drop the files in remove, run the
        service's config validator and optionally reload the service.

        If any step fails, including a validator or reload that raises,
        every touched file is put back before the error propagates. A
        validator that reports problems raises ArtifactValidationError.
        """
        touched = {p: (p.read_text() if p.is_file() else None) for p in (path, *remove)}
        for p in touched:
            self.backup(p)

        try:
            atomic_write_text(path, content)
            for p in remove:
                if p.exists():
                    p.unlink()

            if service is None:
                return
            errors = self.services.validate_config(service)
            if errors:
                raise ArtifactValidationError(f"{service} rejected {path}; previous configuration restored", errors)
            if reload:
                self.services.reload(service)
        except BaseException:
            self._restore(touched)
            logger.error("Restored previous content of %s", ", ".join(str(p) for p in touched))
            raise

    # =========================================================================
    # Artifacts
    # =========================================================================

    def render_ssh_dropin(self, variant: str) -> str:
        if variant not in SSH_VARIANTS:
            raise ValueError(f"Unknown SSH drop-in: {variant}")
        section = f"ssh.{variant}"
        builder = ArtifactBuilder(section)
        builder.add(self.renderer.render(self.config.get_block(section)), source=section)
        return builder.serialize()

    def ssh_dropin_path(self, variant: str) -> Path:
        return self.settings.ssh_dropin_dir / f"99-{variant}.conf"

    def write_ssh_dropin(self, variant: str) -> Path:
        """
        Install the bootstrap or secure SSH drop-in and reload sshd.

        The secure drop-in replaces the bootstrap one.
        """
        content = self.render_ssh_dropin(variant)
        path = self.ssh_dropin_path(variant)
        remove: tuple[Path, ...] = ()
        if variant == "secure":
            remove = (self.ssh_dropin_path("bootstrap"),)

        self._install(path, content, service=self.settings.ssh_service, remove=remove, reload=True)
        logger.info("Installed SSH %s drop-in: %s", variant, path)
        return path

    def _profile_builder(self, prefix: str) -> ArtifactBuilder:
        builder = ArtifactBuilder(prefix)
        for block in self.config.get_blocks(prefix):
            builder.add(self.renderer.render(block.text), source=block.name, header=block.suffix)
        return builder

    def render_ufw_profiles(self) -> ArtifactBuilder:
        return self._profile_builder(UFW_PROFILE_PREFIX)

    def write_ufw_profiles(self) -> list[str]:
        """Write the UFW application-profile file; return the profile names."""
        builder = self.render_ufw_profiles()
        path = self.settings.ufw_profiles_file
        if not len(builder):
            logger.warning("No [%s.*] sections found; writing an empty profile file", UFW_PROFILE_PREFIX)
        self._install(path, builder.serialize())
        logger.info("Wrote %d UFW profiles to %s", len(builder), path)
        if self.firewall_state is not None:
            self.firewall_state.update(installed_apps=builder.headers)
        return builder.headers

    def render_knockd_config(self) -> ArtifactBuilder:
        return self._profile_builder(KNOCKD_PROFILE_PREFIX)

    def write_knockd_config(self) -> Optional[Path]:
        """Write the knockd configuration; remove it when no profiles exist."""
        builder = self.render_knockd_config()
        path = self.settings.knockd_conf
        if not len(builder):
            logger.warning("No [%s.*] sections found; removing %s", KNOCKD_PROFILE_PREFIX, path)
            if path.exists():
                self.backup(path)
                path.unlink()
            return None
        self._install(path, builder.serialize(), service=self.settings.knockd_service)
        logger.info("Wrote %d knockd sections to %s", len(builder), path)
        return path

    def apply(self, kind: str) -> None:
        """Render and install one artifact by kind name."""
        if kind == "ssh.bootstrap":
            self.write_ssh_dropin("bootstrap")
        elif kind == "ssh.secure":
            self.write_ssh_dropin("secure")
        elif kind == "ufw.profiles":
            self.write_ufw_profiles()
        elif kind == "knockd":
            self.write_knockd_config()
        else:
            raise ConfigurationError(f"Unknown artifact kind: {kind} (expected one of {', '.join(ARTIFACT_KINDS)})")
