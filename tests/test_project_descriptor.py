"""Unit tests for reading the integration identity."""

import pytest

from opconfig.errors import ClientInitError
from opconfig.util.project_descriptor import IntegrationIdentity, read_integration_identity


class TestReadIntegrationIdentity:

    def test_project_table(self, tmp_path):
        descriptor = tmp_path / "pyproject.toml"
        descriptor.write_text('[project]\nname = "billing-api"\nversion = "2.4.0"\n')

        assert read_integration_identity(descriptor) == IntegrationIdentity("billing-api", "v2.4.0")

    def test_poetry_table(self, tmp_path):
        descriptor = tmp_path / "pyproject.toml"
        descriptor.write_text('[tool.poetry]\nname = "worker"\nversion = "0.3.1"\n')

        assert read_integration_identity(descriptor) == IntegrationIdentity("worker", "v0.3.1")

    def test_version_prefix_not_doubled(self, tmp_path):
        descriptor = tmp_path / "pyproject.toml"
        descriptor.write_text('[project]\nname = "svc"\nversion = "v1.0.0"\n')

        assert read_integration_identity(descriptor).version == "v1.0.0"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ClientInitError, match="not found"):
            read_integration_identity(tmp_path / "pyproject.toml")

    def test_missing_version(self, tmp_path):
        descriptor = tmp_path / "pyproject.toml"
        descriptor.write_text('[project]\nname = "svc"\ndynamic = ["version"]\n')

        with pytest.raises(ClientInitError, match="name and a version"):
            read_integration_identity(descriptor)

    def test_malformed_descriptor(self, tmp_path):
        descriptor = tmp_path / "pyproject.toml"
        descriptor.write_text("[project\n")

        with pytest.raises(ClientInitError):
            read_integration_identity(descriptor)
