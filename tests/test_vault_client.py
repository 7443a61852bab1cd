"""Unit tests for the Vault secret client."""

from unittest.mock import MagicMock, patch

import pytest
from hvac.exceptions import Forbidden, InvalidPath

from opconfig.errors import ClientInitError, SecretFetchError
from opconfig.vault.vault_client import VaultSecretClient

SECRET_PATH = "kv/data/prod/commons/kafka_username"


@pytest.fixture
def mock_hvac():
    with patch("opconfig.vault.vault_client.hvac.Client") as client_cls:
        client = client_cls.return_value
        client.is_authenticated.return_value = True
        client.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": {"kafka_username": "svc_kafka"}}
        }
        yield client


@pytest.fixture
def vault(tmp_path):
    return VaultSecretClient(
        "https://vault.example.com",
        vault_token="s.token",
        k8s_token_path=str(tmp_path / "missing-token"),
    )


class TestParsePath:

    def test_kv_v2_path(self):
        assert VaultSecretClient.parse_path(SECRET_PATH) == ("kv", "prod/commons", "kafka_username")

    def test_vault_scheme(self):
        assert VaultSecretClient.parse_path("vault://secret/data/app/db/password") == ("secret", "app/db", "password")

    @pytest.mark.parametrize("path", ["kv/data/key", "kv/prod/commons/key", "vault://kv"])
    def test_invalid_paths(self, path):
        with pytest.raises(SecretFetchError, match="Invalid Vault secret reference"):
            VaultSecretClient.parse_path(path)


class TestVaultSecretClient:
    """Unit tests for VaultSecretClient."""

    def test_requires_address(self):
        with pytest.raises(ClientInitError, match="VAULT_ADDR"):
            VaultSecretClient("")

    def test_from_env(self, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR", raising=False)

        with pytest.raises(ClientInitError):
            VaultSecretClient.from_env()

    def test_get_secret(self, vault, mock_hvac):
        assert vault.get_secret(SECRET_PATH) == "svc_kafka"

        mock_hvac.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="prod/commons",
            mount_point="kv",
        )

    def test_missing_key(self, vault, mock_hvac):
        with pytest.raises(SecretFetchError, match="not present"):
            vault.get_secret("kv/data/prod/commons/other_key")

    def test_invalid_path(self, vault, mock_hvac):
        mock_hvac.secrets.kv.v2.read_secret_version.side_effect = InvalidPath("no such path")

        with pytest.raises(SecretFetchError, match="not found"):
            vault.get_secret(SECRET_PATH)
        mock_hvac.secrets.kv.v2.read_secret_version.assert_called_once()

    def test_forbidden(self, vault, mock_hvac):
        mock_hvac.secrets.kv.v2.read_secret_version.side_effect = Forbidden("denied")

        with pytest.raises(SecretFetchError, match="denied"):
            vault.get_secret(SECRET_PATH)

    def test_authentication_failure(self, vault, mock_hvac):
        mock_hvac.is_authenticated.return_value = False

        with pytest.raises(SecretFetchError, match="authenticate"):
            vault.get_secret(SECRET_PATH)

    def test_kubernetes_auth_fallback(self, tmp_path, mock_hvac):
        token_file = tmp_path / "token"
        token_file.write_text("k8s-jwt\n")
        mock_hvac.is_authenticated.side_effect = [True, True]
        vault = VaultSecretClient("https://vault.example.com", vault_role="config", k8s_token_path=str(token_file))

        assert vault.connect() is True
        mock_hvac.auth.kubernetes.login.assert_called_once_with(role="config", jwt="k8s-jwt")

    @pytest.mark.asyncio
    async def test_resolve_runs_in_thread(self, vault, mock_hvac):
        assert await vault.resolve(SECRET_PATH) == "svc_kafka"

    def test_close(self, vault, mock_hvac):
        vault.connect()
        vault.close()

        mock_hvac.adapter.close.assert_called_once()
