"""Shared fixtures for configuration loader tests."""

from unittest.mock import AsyncMock

import pytest

from opconfig.config_loader import ConfigLoader
from opconfig.crypto.crypto_box import CryptoBox
from opconfig.errors import SecretFetchError

TEST_IV = "00112233445566778899aabbccddeeff"
TEST_TOKEN = "ops_test-service-account-token"


class StubSecretClient:
    """In-memory secret client that records every remote lookup."""

    def __init__(self, secrets=None):
        self.secrets = dict(secrets or {})
        self.calls = []
        self.closed = False

    async def resolve(self, path):
        self.calls.append(path)
        if path not in self.secrets:
            raise SecretFetchError(f"unknown path {path}", path=path)
        return self.secrets[path]

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def reset_loader():
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


@pytest.fixture
def op_env(monkeypatch, tmp_path):
    """Minimal OP_* environment with the working directory set to tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OP_CACHE_IV", TEST_IV)
    monkeypatch.setenv("OP_SERVICE_ACCOUNT_TOKEN", TEST_TOKEN)
    for name in ("OP_CONFIG_PATH", "OP_CONFIG_CACHE", "OP_CONFIG_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def crypto_box():
    return CryptoBox.from_hex(TEST_IV)


@pytest.fixture
def stub_client():
    return StubSecretClient()


@pytest.fixture
def op_factory(stub_client):
    """Client factory for the op backend returning stub_client."""
    return AsyncMock(return_value=stub_client)


@pytest.fixture
def make_stub():
    """Build (client, factory) pairs for tests that need several backends."""

    def _make(secrets=None):
        client = StubSecretClient(secrets)
        return client, AsyncMock(return_value=client)

    return _make
