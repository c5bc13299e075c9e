"""Redis-backed credential store.

Records are stored as JSON strings. When a Fernet key is supplied every record is encrypted at
rest. PKCE values expire, since an authorization attempt that was never completed is useless.
"""

import logging
from typing import Final, Optional, Type, TypeVar, Union

from cryptography.fernet import Fernet
from pydantic import BaseModel
from redis import asyncio as redis

from social.graze.paymcp.common.types import AccessToken, ClientCredentials, PKCEValues
from social.graze.paymcp.store.base import CredentialStore

logger = logging.getLogger(__name__)

KEY_PREFIX: Final = "paymcp"
PKCE_VALUES_TTL_SECONDS: Final = 600

RecordType = TypeVar("RecordType", bound=BaseModel)


class RedisCredentialStore(CredentialStore):
    def __init__(
        self,
        redis_client: redis.Redis,
        encryption_key: Optional[Fernet] = None,
        prefix: str = KEY_PREFIX,
    ):
        self.redis_client = redis_client
        self.encryption_key = encryption_key
        self.prefix = prefix

    def _key(self, *parts: str) -> str:
        return ":".join([self.prefix, *parts])

    def _encode(self, record: BaseModel) -> bytes:
        payload = record.model_dump_json().encode("utf-8")
        if self.encryption_key is not None:
            return self.encryption_key.encrypt(payload)
        return payload

    def _decode(
        self, raw: Union[bytes, str, None], record_type: Type[RecordType]
    ) -> Optional[RecordType]:
        if raw is None:
            return None
        payload = raw.encode("utf-8") if isinstance(raw, str) else raw
        if self.encryption_key is not None:
            payload = self.encryption_key.decrypt(payload)
        return record_type.model_validate_json(payload)

    async def get_client_credentials(self, issuer: str) -> Optional[ClientCredentials]:
        raw = await self.redis_client.get(self._key("client_credentials", issuer))
        return self._decode(raw, ClientCredentials)

    async def save_client_credentials(
        self, issuer: str, credentials: ClientCredentials
    ) -> None:
        await self.redis_client.set(
            self._key("client_credentials", issuer), self._encode(credentials)
        )

    async def get_pkce_values(self, user_id: str, state: str) -> Optional[PKCEValues]:
        raw = await self.redis_client.get(self._key("pkce", user_id, state))
        return self._decode(raw, PKCEValues)

    async def save_pkce_values(
        self, user_id: str, state: str, values: PKCEValues
    ) -> None:
        await self.redis_client.set(
            self._key("pkce", user_id, state),
            self._encode(values),
            ex=PKCE_VALUES_TTL_SECONDS,
        )

    async def pop_pkce_values(self, user_id: str, state: str) -> Optional[PKCEValues]:
        raw = await self.redis_client.getdel(self._key("pkce", user_id, state))
        return self._decode(raw, PKCEValues)

    async def get_access_token(self, user_id: str, url: str) -> Optional[AccessToken]:
        raw = await self.redis_client.get(self._key("access_token", user_id, url))
        return self._decode(raw, AccessToken)

    async def save_access_token(
        self, user_id: str, url: str, token: AccessToken
    ) -> None:
        await self.redis_client.set(
            self._key("access_token", user_id, url), self._encode(token)
        )

    async def close(self) -> None:
        await self.redis_client.aclose()
