"""
Tool settings: where alfred reads and writes things on the host.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError as PydanticValidationError

from .errors import ConfigurationError


class Settings(BaseModel):
    config_file: Path = Path("/etc/alfred/server.conf")
    modules_dir: Path = Path("/usr/local/lib/alfred/modules")
    state_dir: Path = Path("/var/lib/alfred/state")
    backup_dir: Path = Path("/var/lib/alfred/backups")
    ssh_dropin_dir: Path = Path("/etc/ssh/sshd_config.d")
    ufw_apps_dir: Path = Path("/etc/ufw/applications.d")
    ufw_profiles_name: str = "alfred_profiles"
    knockd_conf: Path = Path("/etc/knockd.conf")
    ssh_service: str = "ssh"
    knockd_service: str = "knockd"
    baseline_module: str = "ufw"
    isolated_module: str = "user"

    @property
    def ufw_profiles_file(self) -> Path:
        return self.ufw_apps_dir / self.ufw_profiles_name

    @classmethod
    def from_yaml(cls, path: Path | str) -> Settings:
        path = Path(path)
        if not path.is_file():
            raise ConfigurationError(f"Settings file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Settings file {path} is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")
        try:
            return cls(**data)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid settings in {path}: {e}") from e


def load_settings(path: Optional[Path | str] = None, config_file: Optional[Path | str] = None) -> Settings:
    """Build Settings from an optional YAML file plus a config-file override."""
    settings = Settings.from_yaml(path) if path else Settings()
    if config_file:
        settings = settings.model_copy(update={"config_file": Path(config_file)})
    return settings
