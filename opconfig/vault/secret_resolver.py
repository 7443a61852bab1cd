"""
Secret resolution with per-load memoization.
Routes op:// references to 1Password and kv/ or vault:// references to Vault.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Protocol

from opconfig.errors import SecretFetchError
from opconfig.logging_config import ConfigLogger
from opconfig.util.project_descriptor import read_integration_identity
from opconfig.vault.onepassword_client import OP_SCHEME, OnePasswordSecretClient
from opconfig.vault.vault_client import VAULT_SCHEME, VaultSecretClient

ONEPASSWORD_BACKEND = "op"
VAULT_BACKEND = "vault"


class SecretClient(Protocol):
    async def resolve(self, path: str) -> str:
        ...

    def close(self) -> None:
        ...


ClientFactory = Callable[[], Awaitable[SecretClient]]


def backend_for(path: str) -> str:
    """Return the backend name responsible for a secret reference."""
    if path.startswith(OP_SCHEME):
        return ONEPASSWORD_BACKEND
    if path.startswith(VAULT_SCHEME) or path.startswith("kv/"):
        return VAULT_BACKEND
    raise SecretFetchError(f"Unsupported secret reference: {path!r}", path=path)


class SecretResolver:
    """
    Resolves secret references for one configuration load.

    Every distinct path is fetched at most once; repeated and concurrent
    lookups reuse the memoized value. Backend clients are created lazily,
    once per resolver.
    """

    def __init__(
        self,
        token: str,
        descriptor_path: str = "./pyproject.toml",
        client_factories: Optional[Mapping[str, ClientFactory]] = None,
        path_cache: Optional[Mapping[str, str]] = None,
    ):
        self._token = token
        self._descriptor_path = descriptor_path
        self._logger = ConfigLogger.get_instance()

        self._factories: Dict[str, ClientFactory] = {
            ONEPASSWORD_BACKEND: self._connect_onepassword,
            VAULT_BACKEND: self._connect_vault,
        }
        if client_factories:
            self._factories.update(client_factories)

        self._clients: Dict[str, SecretClient] = {}
        self._client_lock = asyncio.Lock()

        self._cache: Dict[str, str] = dict(path_cache or {})
        self._pending: Dict[str, asyncio.Future] = {}
        self._fetched: List[str] = []
        self._remote_enabled = True

    @property
    def path_cache(self) -> Dict[str, str]:
        return dict(self._cache)

    @property
    def fetched_paths(self) -> List[str]:
        """Paths fetched remotely during this load, in first-encounter order."""
        return list(self._fetched)

    def seed(self, path_cache: Mapping[str, str]):
        """Load previously resolved values without contacting the store."""
        for path, value in path_cache.items():
            self._cache.setdefault(path, value)

    def disable_remote(self):
        self._remote_enabled = False

    def is_cached(self, path: str) -> bool:
        return path in self._cache

    async def resolve(self, path: str) -> str:
        """
        Resolve a secret reference.

        Raises:
            SecretFetchError: On authentication or network failure, unknown
                path, or when remote access is disabled
            ClientInitError: If the backend client cannot be constructed
        """
        if path in self._cache:
            return self._cache[path]

        pending = self._pending.get(path)
        if pending is None:
            if not self._remote_enabled:
                raise SecretFetchError(
                    f"Secret store access is disabled for this load, cannot resolve {path}",
                    path=path,
                )
            pending = asyncio.ensure_future(self._fetch(path))
            self._pending[path] = pending
            pending.add_done_callback(lambda _: self._pending.pop(path, None))

        return await asyncio.shield(pending)

    async def _fetch(self, path: str) -> str:
        client = await self._client_for(backend_for(path))
        value = await client.resolve(path)
        if not isinstance(value, str):
            raise SecretFetchError(f"Secret store returned a non-string value for {path}", path=path)

        self._cache[path] = value
        self._fetched.append(path)
        return value

    async def _client_for(self, backend: str) -> SecretClient:
        async with self._client_lock:
            if backend not in self._clients:
                self._logger.log_debug(f"Creating {backend} secret client", source="Secrets")
                self._clients[backend] = await self._factories[backend]()
            return self._clients[backend]

    def close(self):
        """Close every backend client created by this resolver."""
        clients, self._clients = self._clients, {}
        for backend, client in clients.items():
            self._logger.log_debug(f"Closing {backend} secret client", source="Secrets")
            client.close()

    async def _connect_onepassword(self) -> SecretClient:
        identity = read_integration_identity(self._descriptor_path)
        return await OnePasswordSecretClient.connect(self._token, identity)

    async def _connect_vault(self) -> SecretClient:
        return VaultSecretClient.from_env()
