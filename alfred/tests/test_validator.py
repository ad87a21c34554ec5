"""
Tests for configuration document validation.
"""

import pytest

from alfred.core.config import ConfigStore
from alfred.core.renderer import RenderContext, TemplateRenderer
from alfred.core.validator import Validator


@pytest.fixture
def validator():
    return Validator()


def write(tmp_path, text):
    path = tmp_path / "server.conf"
    path.write_text(text)
    return path


class TestValidator:
    def test_sample_document_is_valid(self, validator, config_file):
        assert validator.validate_document(config_file) == []

    def test_missing_document(self, validator, tmp_path):
        errors = validator.validate_document(tmp_path / "absent.conf")
        assert errors == [f"Configuration file not found: {tmp_path / 'absent.conf'}"]

    def test_missing_global_key(self, validator, tmp_path):
        path = write(tmp_path, "[global]\nSSH_PORT_BOOTSTRAP = 42\nSSH_PORT_FINAL = 22\n")

        errors = validator.validate_document(path)

        assert len(errors) == 1
        assert "MASTER_IP" in errors[0]

    def test_non_numeric_port(self, validator, tmp_path):
        path = write(tmp_path, "[global]\nSSH_PORT_BOOTSTRAP = ssh\nSSH_PORT_FINAL = 22\nMASTER_IP = 10.0.0.1\n")

        errors = validator.validate_document(path)

        assert errors[0].startswith("Schema validation error at $.SSH_PORT_BOOTSTRAP")

    def test_port_out_of_range(self, validator, tmp_path):
        path = write(tmp_path, "[global]\nSSH_PORT_BOOTSTRAP = 99999\nSSH_PORT_FINAL = 22\nMASTER_IP = 10.0.0.1\n")

        errors = validator.validate_document(path)

        assert len(errors) == 1
        assert "Invalid [global] section" in errors[0]

    def test_blocks(self, validator):
        store = ConfigStore.from_text(
            "[global]\nSSH_PORT_BOOTSTRAP = 42\nSSH_PORT_FINAL = 22\nMASTER_IP = 10.0.0.1\n"
            "[ssh.secure]\nPort {{SSH_PORT}}\n"
            "[ufw.profile.web]\n\n"
        )
        renderer = TemplateRenderer(RenderContext.from_config(store))

        errors = validator.validate_blocks(store, renderer)

        assert errors == [
            "Missing section: [ssh.bootstrap]",
            "Unresolved placeholders in [ssh.secure]: {{SSH_PORT}}",
            "Section [ufw.profile.web] is empty",
        ]

    def test_unknown_schema_dir(self, tmp_path, store):
        assert Validator(tmp_path).validate_global(store) == ["Unknown schema: global"]
