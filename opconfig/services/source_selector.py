"""
Chooses where the raw configuration template comes from.
Order: local override file, then the secret store. The cache only seeds
secret values, the document itself is always fetched.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from opconfig.errors import ConfigParseError, ConfigPathMissing
from opconfig.logging_config import ConfigLogger
from opconfig.storage.cache_store import CacheStore
from opconfig.vault.secret_resolver import SecretResolver

ORIGIN_OVERRIDE = "override"
ORIGIN_REMOTE = "remote"


@dataclass(frozen=True)
class RawDocument:
    text: str
    origin: str


class SourceSelector:
    """Obtains the templated configuration document for one load."""

    def __init__(
        self,
        override_file_path,
        config_path: Optional[str],
        resolver: SecretResolver,
        cache_store: CacheStore,
    ):
        self._override_path = Path(override_file_path)
        self._config_path = config_path
        self._resolver = resolver
        self._cache_store = cache_store
        self._logger = ConfigLogger.get_instance()

    async def _read_override(self) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._override_path.read_text, encoding="utf-8")
        except OSError:
            self._logger.log_debug(f"{self._override_path} not found", source="Source")
            return None
        except UnicodeDecodeError as e:
            raise ConfigParseError(f"{self._override_path} is not valid UTF-8: {e}") from e

    async def obtain_raw_document(self) -> RawDocument:
        """
        Return the raw document from the first source that has it.

        Raises:
            ConfigPathMissing: If there is no override file and OP_CONFIG_PATH is unset
            ConfigParseError: If the override file is not UTF-8 text
            SecretFetchError: If the document cannot be fetched from the store
        """
        text = await self._read_override()
        if text is not None:
            self._logger.log_info(f"{self._override_path} found, using it", source="Source")
            self._resolver.disable_remote()
            return RawDocument(text=text, origin=ORIGIN_OVERRIDE)

        if not self._config_path:
            raise ConfigPathMissing(
                "OP_CONFIG_PATH environment variable is not set, "
                "OP_CONFIG_PATH=op://<vault-name>/<item-name>/<field-name>"
            )

        path_cache = await self._cache_store.read_path_cache()
        if path_cache:
            # Older cache files may hold the document; it is never served from there
            path_cache.pop(self._config_path, None)
            self._resolver.seed(path_cache)

        self._logger.log_debug(f"Fetching: {self._config_path}", source="Source")
        text = await self._resolver.resolve(self._config_path)
        return RawDocument(text=text, origin=ORIGIN_REMOTE)
