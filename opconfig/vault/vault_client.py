"""
HashiCorp Vault client for retrieving secrets.
Supports token and Kubernetes authentication.
"""

import asyncio
import os
from typing import Any, Dict, Optional, Tuple

import hvac
import requests
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized, VaultDown, VaultError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from opconfig.errors import ClientInitError, SecretFetchError
from opconfig.logging_config import ConfigLogger

VAULT_SCHEME = "vault://"


class VaultSecretClient:
    """Client for reading KV v2 secrets from HashiCorp Vault."""

    def __init__(
        self,
        vault_addr: str,
        vault_token: Optional[str] = None,
        vault_role: str = "vault-auth",
        k8s_token_path: str = "/var/run/secrets/kubernetes.io/serviceaccount/token",
    ):
        if not vault_addr:
            raise ClientInitError("VAULT_ADDR must be set to resolve Vault secret references")

        self._vault_addr = vault_addr
        self._vault_token = vault_token
        self._vault_role = vault_role
        self._k8s_token_path = k8s_token_path
        self._logger = ConfigLogger.get_instance()

        self._client: Optional[hvac.Client] = None

    @classmethod
    def from_env(cls) -> "VaultSecretClient":
        return cls(
            vault_addr=os.getenv("VAULT_ADDR", ""),
            vault_token=os.getenv("VAULT_TOKEN"),
            vault_role=os.getenv("VAULT_ROLE", "vault-auth"),
        )

    def _get_k8s_token(self) -> Optional[str]:
        """Read Kubernetes service account token."""
        try:
            with open(self._k8s_token_path, 'r') as f:
                return f.read().strip()
        except OSError:
            return None

    def connect(self) -> bool:
        """
        Connect to Vault using available authentication method.
        Priority: Token auth > Kubernetes auth
        """
        try:
            self._client = hvac.Client(url=self._vault_addr)

            # Token auth first (local development)
            if self._vault_token:
                self._client.token = self._vault_token
                if self._client.is_authenticated():
                    return True

            k8s_token = self._get_k8s_token()
            if k8s_token:
                self._client.auth.kubernetes.login(
                    role=self._vault_role,
                    jwt=k8s_token
                )
                if self._client.is_authenticated():
                    return True

            return False

        except (VaultError, requests.exceptions.RequestException) as e:
            self._logger.log_warning(f"Failed to connect to Vault: {e}", source="Vault")
            return False

    @staticmethod
    def parse_path(path: str) -> Tuple[str, str, str]:
        """
        Split a secret reference into mount point, secret path and key.

        Expected format: kv/data/prod/commons/kafka_username, optionally
        prefixed with vault://.
        """
        if path.startswith(VAULT_SCHEME):
            path = path[len(VAULT_SCHEME):]

        parts = [part for part in path.split('/') if part]
        if len(parts) < 4 or parts[1] != "data":
            raise SecretFetchError(
                f"Invalid Vault secret reference {path!r}, expected <mount>/data/<path>/<key>",
                path=path,
            )

        # Skip "data" in path for v2 KV engine
        return parts[0], '/'.join(parts[2:-1]), parts[-1]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((requests.exceptions.ConnectionError, VaultDown)),
        reraise=True,
    )
    def _read_secret_data(self, mount_point: str, secret_path: str) -> Dict[str, Any]:
        response = self._client.secrets.kv.v2.read_secret_version(
            path=secret_path,
            mount_point=mount_point
        )
        if response and 'data' in response and 'data' in response['data']:
            return response['data']['data']
        return {}

    def get_secret(self, path: str) -> str:
        """
        Get a secret from Vault KV engine.

        Args:
            path: Secret path (e.g., "kv/data/prod/commons/kafka_username")

        Returns:
            Secret value

        Raises:
            SecretFetchError: On authentication failure, network failure,
                or when the path or key does not exist
        """
        mount_point, secret_path, key = self.parse_path(path)

        if not self._client or not self._client.is_authenticated():
            if not self.connect():
                raise SecretFetchError("Unable to authenticate with Vault", path=path)

        try:
            data = self._read_secret_data(mount_point, secret_path)
        except InvalidPath as e:
            raise SecretFetchError(f"Vault secret not found: {path}", path=path) from e
        except (Forbidden, Unauthorized) as e:
            raise SecretFetchError(f"Access to Vault secret {path} denied", path=path) from e
        except (VaultError, requests.exceptions.RequestException) as e:
            raise SecretFetchError(f"Failed to read Vault secret {path}: {e}", path=path) from e

        if key not in data:
            raise SecretFetchError(f"Key {key!r} not present in Vault secret {path}", path=path)
        return str(data[key])

    async def resolve(self, path: str) -> str:
        return await asyncio.to_thread(self.get_secret, path)

    def close(self):
        """Close Vault client connection."""
        if self._client:
            self._client.adapter.close()
            self._client = None
