"""
Exception hierarchy for configuration loading.
Configuration errors are fatal; cache corruption is recovered as a cache miss.
"""


class ConfigError(Exception):
    """Base class for all configuration loading errors."""


class ConfigurationError(ConfigError):
    """Environment or project setup is wrong. Fix and restart; never retried."""


class OpCacheIVMissing(ConfigurationError):
    """OP_CACHE_IV is unset or not a 16-byte hex value."""


class ServiceTokenMissing(ConfigurationError):
    """OP_SERVICE_ACCOUNT_TOKEN is unset."""


class ConfigPathMissing(ConfigurationError):
    """OP_CONFIG_PATH is unset and no override file exists."""


class ClientInitError(ConfigurationError):
    """The remote secret client could not be constructed."""


class SecretFetchError(ConfigError):
    """A secret could not be fetched from the remote store."""

    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path


class CacheCorrupt(ConfigError):
    """The encrypted cache file could not be decoded or decrypted."""


class TemplateError(ConfigError):
    """The configuration template could not be rendered."""


class ConfigParseError(ConfigError):
    """The rendered document is not valid TOML."""


class LoadTimeout(ConfigError, TimeoutError):
    """No configuration was produced within the load timeout."""


class NotLoadedYet(ConfigError):
    """The configuration was read before any successful load."""
