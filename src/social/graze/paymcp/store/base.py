from abc import ABC, abstractmethod
from typing import Optional

from social.graze.paymcp.common.types import AccessToken, ClientCredentials, PKCEValues


class CredentialStore(ABC):
    """Async key-value storage for OAuth client credentials, PKCE state and access tokens."""

    @abstractmethod
    async def get_client_credentials(self, issuer: str) -> Optional[ClientCredentials]:
        pass

    @abstractmethod
    async def save_client_credentials(
        self, issuer: str, credentials: ClientCredentials
    ) -> None:
        pass

    @abstractmethod
    async def get_pkce_values(self, user_id: str, state: str) -> Optional[PKCEValues]:
        pass

    @abstractmethod
    async def save_pkce_values(
        self, user_id: str, state: str, values: PKCEValues
    ) -> None:
        pass

    @abstractmethod
    async def pop_pkce_values(self, user_id: str, state: str) -> Optional[PKCEValues]:
        """Remove and return the PKCE values for state. Only one caller ever receives them."""
        pass

    @abstractmethod
    async def get_access_token(self, user_id: str, url: str) -> Optional[AccessToken]:
        """Return the token stored for exactly url. Parent paths are never consulted."""
        pass

    @abstractmethod
    async def save_access_token(
        self, user_id: str, url: str, token: AccessToken
    ) -> None:
        pass

    async def close(self) -> None:
        pass
