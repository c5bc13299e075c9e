from typing import Dict, Optional, Tuple

from social.graze.paymcp.common.types import AccessToken, ClientCredentials, PKCEValues
from social.graze.paymcp.store.base import CredentialStore


class MemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._client_credentials: Dict[str, ClientCredentials] = {}
        self._pkce_values: Dict[Tuple[str, str], PKCEValues] = {}
        self._access_tokens: Dict[Tuple[str, str], AccessToken] = {}

    async def get_client_credentials(self, issuer: str) -> Optional[ClientCredentials]:
        return self._client_credentials.get(issuer)

    async def save_client_credentials(
        self, issuer: str, credentials: ClientCredentials
    ) -> None:
        self._client_credentials[issuer] = credentials.model_copy()

    async def get_pkce_values(self, user_id: str, state: str) -> Optional[PKCEValues]:
        return self._pkce_values.get((user_id, state))

    async def save_pkce_values(
        self, user_id: str, state: str, values: PKCEValues
    ) -> None:
        self._pkce_values[(user_id, state)] = values.model_copy()

    async def pop_pkce_values(self, user_id: str, state: str) -> Optional[PKCEValues]:
        return self._pkce_values.pop((user_id, state), None)

    async def get_access_token(self, user_id: str, url: str) -> Optional[AccessToken]:
        return self._access_tokens.get((user_id, url))

    async def save_access_token(
        self, user_id: str, url: str, token: AccessToken
    ) -> None:
        self._access_tokens[(user_id, url)] = token.model_copy()
