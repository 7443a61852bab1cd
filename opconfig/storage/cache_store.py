"""
Encrypted on-disk cache of resolved secret paths.
File format: <ciphertext hex>:<salt hex>
"""

import asyncio
import json
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from opconfig.crypto.crypto_box import CryptoBox
from opconfig.errors import CacheCorrupt
from opconfig.logging_config import ConfigLogger


@dataclass(frozen=True)
class EncryptedCacheEntry:
    ciphertext: str
    salt: str

    @classmethod
    def parse(cls, contents: str) -> "EncryptedCacheEntry":
        ciphertext, sep, salt = contents.strip().rpartition(":")
        if not sep or not ciphertext or not salt:
            raise CacheCorrupt("Cache file is not in <ciphertext>:<salt> form")
        return cls(ciphertext=ciphertext, salt=salt)

    def serialize(self) -> str:
        return f"{self.ciphertext}:{self.salt}"


class CacheStore:
    """
    Reads and writes the encrypted secret-path cache.

    Reading never raises: missing, expired, unreadable or corrupt files are
    all cache misses. Without a TTL any existing file is deleted on read and
    nothing is written. Write failures are logged, never propagated.
    """

    def __init__(
        self,
        cache_file_path,
        crypto_box: CryptoBox,
        token: str,
        ttl_seconds: Optional[float] = None,
    ):
        self._path = Path(cache_file_path)
        self._crypto_box = crypto_box
        self._token = token
        self._ttl_seconds = ttl_seconds
        self._logger = ConfigLogger.get_instance()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def enabled(self) -> bool:
        return bool(self._ttl_seconds)

    def _is_expired(self) -> bool:
        age = time.time() - self._path.stat().st_mtime
        return age > self._ttl_seconds

    async def read_path_cache(self) -> Optional[Dict[str, str]]:
        """Return the decrypted path cache, or None on any kind of miss."""
        try:
            if not self._path.is_file():
                self._logger.log_debug(f"{self._path} not found", source="Cache")
                return None

            if not self.enabled:
                self._logger.log_info(f"No cache TTL configured, discarding {self._path}", source="Cache")
                self._path.unlink(missing_ok=True)
                return None

            if self._is_expired():
                self._logger.log_info(f"{self._path} is older than {self._ttl_seconds}s, discarding", source="Cache")
                self._path.unlink(missing_ok=True)
                return None

            contents = await asyncio.to_thread(self._path.read_text, encoding="utf-8", errors="replace")
        except OSError as e:
            self._logger.log_debug(f"Unable to read {self._path}: {e}", source="Cache")
            return None

        try:
            path_cache = await self._decrypt(contents)
        except CacheCorrupt as e:
            self._logger.log_debug(f"Error reading encrypted contents of {self._path}: {e}", source="Cache")
            return None

        self._logger.log_info(f"Encrypted secret cache found with {len(path_cache)} entries", source="Cache")
        return path_cache

    async def _decrypt(self, contents: str) -> Dict[str, str]:
        entry = EncryptedCacheEntry.parse(contents)
        key = await asyncio.to_thread(CryptoBox.derive_key, self._token, entry.salt)
        payload = self._crypto_box.decrypt(entry.ciphertext, key)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise CacheCorrupt(f"Cache payload is not JSON: {e}") from e

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise CacheCorrupt("Cache payload is not a mapping of secret paths to values")
        return data

    async def persist(self, path_cache: Mapping[str, str]) -> None:
        """Encrypt and write the path cache, then schedule its deletion."""
        if not self.enabled:
            self._logger.log_debug("No cache TTL configured, skipping cache write", source="Cache")
            return

        try:
            salt = CryptoBox.generate_salt()
            key = await asyncio.to_thread(CryptoBox.derive_key, self._token, salt)
            ciphertext = self._crypto_box.encrypt(json.dumps(dict(path_cache), sort_keys=True), key)
            entry = EncryptedCacheEntry(ciphertext=ciphertext, salt=salt)

            await asyncio.to_thread(self._write, entry.serialize())
        except (OSError, ValueError) as e:
            self._logger.log_warning(f"Failed to write secret cache {self._path}: {e}", source="Cache")
            return

        self._logger.log_debug(
            f"Cached {len(path_cache)} secrets to {self._path} for {self._ttl_seconds} seconds",
            source="Cache",
        )
        self._schedule_expiry(salt)

    def _write(self, contents: str):
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(contents)

    def _schedule_expiry(self, salt: str) -> threading.Timer:
        timer = threading.Timer(self._ttl_seconds, self.expire, args=(salt,))
        timer.daemon = True
        timer.start()
        return timer

    def expire(self, salt: str) -> bool:
        """Delete the cache file if it still holds the entry written with salt."""
        try:
            contents = self._path.read_text(encoding="utf-8", errors="replace")
            if not contents.strip().endswith(f":{salt}"):
                return False
            self._path.unlink()
        except OSError:
            return False

        self._logger.log_debug(f"Expired secret cache {self._path}", source="Cache")
        return True
