"""SQLAlchemy-backed credential store.

Records are upserted with Session.merge so a save always replaces the whole row.
"""

from datetime import datetime, timezone
from typing import Optional

from cryptography.fernet import Fernet
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from social.graze.paymcp.common.types import AccessToken, ClientCredentials, PKCEValues
from social.graze.paymcp.model.credentials import (
    ClientRegistration,
    PKCERecord,
    StoredAccessToken,
)
from social.graze.paymcp.store.base import CredentialStore


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlCredentialStore(CredentialStore):
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        encryption_key: Optional[Fernet] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.session_maker = session_maker
        self.encryption_key = encryption_key
        self.engine = engine

    def _seal(self, value: Optional[str]) -> Optional[str]:
        if value is None or self.encryption_key is None:
            return value
        return self.encryption_key.encrypt(value.encode("utf-8")).decode("ascii")

    def _unseal(self, value: Optional[str]) -> Optional[str]:
        if value is None or self.encryption_key is None:
            return value
        return self.encryption_key.decrypt(value.encode("ascii")).decode("utf-8")

    async def get_client_credentials(self, issuer: str) -> Optional[ClientCredentials]:
        async with self.session_maker() as session:
            record = await session.get(ClientRegistration, issuer)
            if record is None:
                return None
            return ClientCredentials(
                client_id=record.client_id,
                client_secret=self._unseal(record.client_secret) or "",
                redirect_uri=record.redirect_uri,
            )

    async def save_client_credentials(
        self, issuer: str, credentials: ClientCredentials
    ) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.merge(
                    ClientRegistration(
                        issuer=issuer,
                        client_id=credentials.client_id,
                        client_secret=self._seal(credentials.client_secret),
                        redirect_uri=credentials.redirect_uri,
                        updated_at=datetime.now(timezone.utc),
                    )
                )

    def _pkce_values(self, record: PKCERecord) -> PKCEValues:
        return PKCEValues(
            url=record.url,
            code_verifier=self._unseal(record.code_verifier) or "",
            code_challenge=record.code_challenge,
            resource_url=record.resource_url,
        )

    async def get_pkce_values(self, user_id: str, state: str) -> Optional[PKCEValues]:
        async with self.session_maker() as session:
            record = await session.get(PKCERecord, (user_id, state))
            if record is None:
                return None
            return self._pkce_values(record)

    async def pop_pkce_values(self, user_id: str, state: str) -> Optional[PKCEValues]:
        async with self.session_maker() as session:
            async with session.begin():
                record = await session.get(PKCERecord, (user_id, state))
                if record is None:
                    return None
                values = self._pkce_values(record)
                result = await session.execute(
                    delete(PKCERecord)
                    .where(PKCERecord.user_id == user_id, PKCERecord.state == state)
                    .execution_options(synchronize_session=False)
                )
                # Another consumer deleted the row between our read and delete.
                if result.rowcount == 0:
                    return None
                return values

    async def save_pkce_values(
        self, user_id: str, state: str, values: PKCEValues
    ) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.merge(
                    PKCERecord(
                        user_id=user_id,
                        state=state,
                        url=values.url,
                        resource_url=values.resource_url,
                        code_verifier=self._seal(values.code_verifier),
                        code_challenge=values.code_challenge,
                        created_at=datetime.now(timezone.utc),
                    )
                )

    async def get_access_token(self, user_id: str, url: str) -> Optional[AccessToken]:
        async with self.session_maker() as session:
            record = await session.get(StoredAccessToken, (user_id, url))
            if record is None:
                return None
            return AccessToken(
                access_token=self._unseal(record.access_token) or "",
                refresh_token=self._unseal(record.refresh_token),
                expires_at=_as_utc(record.expires_at),
                resource_url=record.resource_url,
            )

    async def save_access_token(
        self, user_id: str, url: str, token: AccessToken
    ) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.merge(
                    StoredAccessToken(
                        user_id=user_id,
                        url=url,
                        resource_url=token.resource_url,
                        access_token=self._seal(token.access_token),
                        refresh_token=self._seal(token.refresh_token),
                        expires_at=token.expires_at,
                        updated_at=datetime.now(timezone.utc),
                    )
                )

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
