"""
Validation of the configuration document.

Checks the [global] scalars against a JSON schema, makes sure the required
blocks exist and that every block renders without leftover placeholders.
Problems are collected and returned as messages so an operator sees all of
them at once.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import jsonschema

from .config import GLOBAL_SECTION, ConfigStore
from .errors import AlfredError, ConfigurationError
from .renderer import RenderContext, TemplateRenderer, find_unresolved
from .writer import KNOCKD_PROFILE_PREFIX, UFW_PROFILE_PREFIX

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"

REQUIRED_BLOCKS = ("ssh.bootstrap", "ssh.secure")
RENDERED_PREFIXES = ("ssh", UFW_PROFILE_PREFIX, KNOCKD_PROFILE_PREFIX)


class Validator:
    """Validates a configuration document before anything is applied."""

    def __init__(self, schemas_path: Optional[str | Path] = None):
        self.schemas_path = Path(schemas_path) if schemas_path else SCHEMAS_DIR
        self._schemas: dict[str, dict] = {}
        self._load_schemas()

    def _load_schemas(self) -> None:
        schema_files = {
            "global": "global.schema.json",
        }
        for name, filename in schema_files.items():
            schema_path = self.schemas_path / filename
            if schema_path.exists():
                with open(schema_path) as f:
                    self._schemas[name] = json.load(f)

    def validate_global(self, store: ConfigStore) -> list[str]:
        """Validate the [global] section against its schema and value ranges."""
        try:
            data = dict(store.get_scalars(GLOBAL_SECTION))
        except ConfigurationError as e:
            return [str(e)]

        if "global" not in self._schemas:
            return ["Unknown schema: global"]

        try:
            jsonschema.validate(data, self._schemas["global"])
        except jsonschema.ValidationError as e:
            return [f"Schema validation error at {e.json_path}: {e.message}"]
        except jsonschema.SchemaError as e:
            return [f"Schema error: {e.message}"]

        try:
            store.global_settings()
        except ConfigurationError as e:
            return [str(e)]
        return []

    def validate_blocks(self, store: ConfigStore, renderer: TemplateRenderer) -> list[str]:
        """Check required blocks exist and every block renders completely."""
        errors = []
        for section in REQUIRED_BLOCKS:
            if not store.has_section(section):
                errors.append(f"Missing section: [{section}]")

        for name in store.sections():
            if not any(name.startswith(prefix + ".") for prefix in RENDERED_PREFIXES):
                continue
            text = store.get_block(name)
            if not text.strip():
                errors.append(f"Section [{name}] is empty")
                continue
            leftover = find_unresolved(renderer.render(text))
            if leftover:
                errors.append(f"Unresolved placeholders in [{name}]: {', '.join(leftover)}")
        return errors

    def validate_document(self, path: str | Path) -> list[str]:
        """Load and validate a configuration document."""
        try:
            store = ConfigStore.load(path)
        except AlfredError as e:
            return [str(e)]

        errors = self.validate_global(store)
        if errors:
            return errors

        renderer = TemplateRenderer(RenderContext.from_config(store))
        return self.validate_blocks(store, renderer)
