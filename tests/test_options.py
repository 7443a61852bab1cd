"""Unit tests for environment settings."""

from unittest.mock import patch

import pytest

from opconfig.crypto.crypto_box import CryptoBox
from opconfig.errors import ConfigurationError, OpCacheIVMissing, ServiceTokenMissing
from opconfig.options import LoaderOptions, LoaderSettings


class TestLoaderSettings:

    def test_from_env(self):
        settings = LoaderSettings.from_env({
            "OP_SERVICE_ACCOUNT_TOKEN": "ops_token",
            "OP_CONFIG_PATH": "op://vault/app/config",
            "OP_CONFIG_CACHE": "600",
            "OP_CACHE_IV": "00112233445566778899aabbccddeeff",
            "OP_CONFIG_DEBUG": "yes",
        })

        assert settings.service_token == "ops_token"
        assert settings.config_path == "op://vault/app/config"
        assert settings.cache_ttl_seconds == 600
        assert settings.debug_dump is True
        assert settings.require_cache_iv() == bytes.fromhex("00112233445566778899aabbccddeeff")

    def test_defaults(self):
        settings = LoaderSettings.from_env({})

        assert settings.config_path is None
        assert settings.cache_ttl_seconds is None
        assert settings.debug_dump is False

    @pytest.mark.parametrize("value", ["0", "-5", ""])
    def test_non_positive_ttl_disables_cache(self, value):
        assert LoaderSettings.from_env({"OP_CONFIG_CACHE": value}).cache_ttl_seconds is None

    def test_invalid_ttl(self):
        with pytest.raises(ConfigurationError):
            LoaderSettings.from_env({"OP_CONFIG_CACHE": "ten"})

    def test_missing_iv(self):
        with patch.object(CryptoBox, "generate_iv_hex", return_value="ab" * 16):
            with pytest.raises(OpCacheIVMissing, match=f"OP_CACHE_IV={'ab' * 16}"):
                LoaderSettings().require_cache_iv()

    @pytest.mark.parametrize("value", ["zz" * 16, "0011", "00" * 32])
    def test_malformed_iv(self, value):
        with pytest.raises(OpCacheIVMissing):
            LoaderSettings(cache_iv=value).require_cache_iv()

    def test_missing_token(self):
        with pytest.raises(ServiceTokenMissing):
            LoaderSettings().require_service_token()


class TestLoaderOptions:

    def test_defaults(self):
        options = LoaderOptions()

        assert options.override_file_path == "./config.toml"
        assert options.cache_file_path == "./config.cache"
        assert options.timeout_seconds == 30
        assert options.slow_warning_seconds == 10

    def test_resolve_path_uses_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert LoaderOptions().resolve_path("./config.cache") == (tmp_path / "config.cache").resolve()
