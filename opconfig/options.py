"""
Loader options and environment-sourced settings.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from opconfig.crypto.crypto_box import CryptoBox
from opconfig.errors import ConfigurationError, OpCacheIVMissing, ServiceTokenMissing

TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class LoaderOptions:
    """
    Options recognized by the configuration loader.

    Relative paths are resolved against the working directory at load time.
    """

    # Local plaintext document that preempts cache and secret store
    override_file_path: str = "./config.toml"
    # Encrypted secret-path cache, written only when a TTL is configured
    cache_file_path: str = "./config.cache"
    # Supplies the integration name/version for the 1Password client
    descriptor_path: str = "./pyproject.toml"
    # Template bindings layered over the process environment
    extra_bindings: Dict[str, str] = field(default_factory=dict)
    slow_warning_seconds: float = 10.0
    timeout_seconds: float = 30.0

    def resolve_path(self, value: str) -> Path:
        return Path(os.getcwd(), value).resolve()


@dataclass(frozen=True)
class LoaderSettings:
    """Snapshot of the OP_* environment variables."""

    service_token: Optional[str] = None
    config_path: Optional[str] = None
    cache_ttl_seconds: Optional[float] = None
    cache_iv: Optional[str] = None
    debug_dump: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "LoaderSettings":
        env = os.environ if environ is None else environ

        raw_ttl = env.get("OP_CONFIG_CACHE", "").strip()
        ttl = None
        if raw_ttl:
            try:
                ttl = float(raw_ttl)
            except ValueError:
                raise ConfigurationError(
                    f"OP_CONFIG_CACHE must be a number of seconds, got {raw_ttl!r}"
                )
            if ttl <= 0:
                ttl = None

        return cls(
            service_token=env.get("OP_SERVICE_ACCOUNT_TOKEN") or None,
            config_path=env.get("OP_CONFIG_PATH") or None,
            cache_ttl_seconds=ttl,
            cache_iv=env.get("OP_CACHE_IV") or None,
            debug_dump=env.get("OP_CONFIG_DEBUG", "").strip().lower() in TRUTHY,
        )

    def require_cache_iv(self) -> bytes:
        """
        Return the cache IV as bytes.

        Raises:
            OpCacheIVMissing: If the IV is unset or malformed. The message
                carries a freshly generated value the operator can use.
        """
        suggestion = f"OP_CACHE_IV={CryptoBox.generate_iv_hex()}"
        if not self.cache_iv:
            raise OpCacheIVMissing(
                f"OP_CACHE_IV environment variable is not set, here is a new IV: {suggestion}"
            )
        try:
            iv = bytes.fromhex(self.cache_iv)
        except ValueError:
            iv = b""
        if len(iv) != 16:
            raise OpCacheIVMissing(
                f"OP_CACHE_IV must be 16 bytes of hex, here is a new IV: {suggestion}"
            )
        return iv

    def require_service_token(self) -> str:
        if not self.service_token:
            raise ServiceTokenMissing("OP_SERVICE_ACCOUNT_TOKEN environment variable is not set")
        return self.service_token
