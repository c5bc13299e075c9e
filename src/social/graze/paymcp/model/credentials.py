"""Credential models for dynamically registered clients, PKCE state and access tokens."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import Mapped, mapped_column

from social.graze.paymcp.model.base import Base, str512, str1024


class ClientRegistration(Base):
    """OAuth client registered with an authorization server, keyed by issuer."""

    __tablename__ = "client_credentials"

    issuer: Mapped[str] = mapped_column(String(1024), primary_key=True)
    client_id: Mapped[str512]
    client_secret: Mapped[str] = mapped_column(Text, nullable=False)
    redirect_uri: Mapped[str1024]
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class PKCERecord(Base):
    """In-flight authorization attempt, consumed by the matching callback."""

    __tablename__ = "pkce_values"

    user_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    state: Mapped[str] = mapped_column(String(128), primary_key=True)
    url: Mapped[str1024]
    resource_url: Mapped[str1024]
    code_verifier: Mapped[str] = mapped_column(Text, nullable=False)
    code_challenge: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class StoredAccessToken(Base):
    """Bearer credential for a user at one exact resource URL."""

    __tablename__ = "access_tokens"

    user_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    url: Mapped[str] = mapped_column(String(1024), primary_key=True)
    resource_url: Mapped[str1024]
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
