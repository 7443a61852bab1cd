"""
1Password service-account client for op:// secret references.
"""

from onepassword.client import Client

from opconfig.errors import SecretFetchError
from opconfig.logging_config import ConfigLogger
from opconfig.util.project_descriptor import IntegrationIdentity

OP_SCHEME = "op://"


class OnePasswordSecretClient:
    """Thin async wrapper around the 1Password SDK client."""

    def __init__(self, client):
        self._client = client
        self._logger = ConfigLogger.get_instance()

    @classmethod
    async def connect(cls, token: str, identity: IntegrationIdentity) -> "OnePasswordSecretClient":
        """
        Authenticate against 1Password with a service account token.

        Raises:
            SecretFetchError: If authentication fails
        """
        try:
            client = await Client.authenticate(
                auth=token,
                integration_name=identity.name,
                integration_version=identity.version,
            )
        except Exception as e:
            # The SDK raises plain exceptions for auth and transport failures
            raise SecretFetchError(f"Unable to authenticate with 1Password: {e}") from e

        return cls(client)

    async def resolve(self, path: str) -> str:
        """Resolve an op://vault/item/field reference."""
        self._logger.log_debug(f"Fetching: {path}", source="1Password")
        try:
            return await self._client.secrets.resolve(path)
        except Exception as e:
            raise SecretFetchError(f"Failed to resolve {path}: {e}", path=path) from e

    def close(self):
        """Drop the SDK client; it is not reused after the load."""
        self._client = None
