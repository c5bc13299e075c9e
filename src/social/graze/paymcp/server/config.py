"""
Configuration Module for PayMcp Servers

Settings load from PAYMCP_* environment variables through pydantic-settings. build_config()
turns them, plus the collaborators the embedding application injects, into the immutable
PayMcpConfig the request pipeline reads. Collaborators that are not injected are built
explicitly from the settings; nothing is a module-level default.

Application components reach the config and shared resources through typed AppKeys.
"""

from dataclasses import dataclass
import logging
from typing import Any, Final, Optional

from aiohttp import ClientSession, web
from cryptography.fernet import Fernet
from pydantic import Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from social.graze.paymcp.common.http import Fetch
from social.graze.paymcp.common.oauth_resource import ResourceOAuthClient
from social.graze.paymcp.common.types import DEFAULT_AUTHORIZATION_SERVER
from social.graze.paymcp.server.charge import Price, as_price
from social.graze.paymcp.server.metrics import MetricsClient
from social.graze.paymcp.server.payment_server import PaymentServer, PayMcpPaymentServer
from social.graze.paymcp.store.base import CredentialStore
from social.graze.paymcp.store.memory import MemoryCredentialStore

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Settings for a PayMcp-protected MCP server.

    Environment variables use the PAYMCP_ prefix, e.g. PAYMCP_DESTINATION, except for the
    Telegraf host and port which share the TELEGRAF_HOST and TELEGRAF_PORT names used by the
    rest of the deployment.
    """

    model_config = SettingsConfigDict(
        env_prefix="PAYMCP_", arbitrary_types_allowed=True, populate_by_name=True
    )

    destination: str
    """
    Account that receives payments for this server (required, no default).
    """

    mount_path: str = "/"
    """
    Path the MCP endpoint is mounted at. Protected resource metadata is served for this path
    and for {mount_path}/message.
    """

    currency: str = "USDC"
    """Currency charges are made in."""

    network: str = "solana"
    """Payment network charges are made on."""

    server: str = DEFAULT_AUTHORIZATION_SERVER
    """
    PayMcp authorization server: introspects tokens, hosts payment requests and charges.
    """

    payee_name: str = "A PayMcp Server"
    """Name shown to payers, and the client_name used when registering with the server."""

    resource: Optional[str] = None
    """
    Canonical resource URL of this server. When not set it is inferred from each request URL.
    """

    allow_http: bool = False
    """Permit plain HTTP requests to the authorization server. For development only."""

    debug: bool = False
    """Enable debug logging in the metrics client."""

    sentry_dsn: Optional[str] = None
    """Sentry DSN for error reporting. Optional, no error reporting if not set."""

    metrics_backend: str = "telegraf"
    """Metrics backend, 'telegraf' or 'none'."""

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """StatsD/Telegraf host for metrics collection."""

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """StatsD/Telegraf port for metrics collection."""

    redis_dsn: Optional[RedisDsn] = None
    """
    Redis connection string for the credential store. Takes precedence over database_url.
    """

    database_url: Optional[str] = None
    """
    SQLAlchemy async URL for the credential store, e.g. sqlite+aiosqlite:///paymcp.db.
    With neither redis_dsn nor database_url set, credentials are kept in memory.
    """

    encryption_key: Optional[Fernet] = None
    """
    Fernet key encrypting stored secrets at rest, as generated by Fernet.generate_key().
    """

    @field_validator("encryption_key", mode="before")
    @classmethod
    def decode_encryption_key(cls, v) -> Optional[Fernet]:
        """
        Accept a Fernet object or a Fernet key string.

        Raises:
            ValueError: If the input is neither a Fernet object nor a valid key string
        """
        if v is None or isinstance(v, Fernet):
            return v
        elif isinstance(v, str):
            if len(v) == 0:
                return None
            return Fernet(v.encode("ascii"))
        raise ValueError(
            "encryption_key must be a Fernet object or a Fernet key string"
        )


@dataclass(frozen=True)
class PayMcpConfig:
    destination: str
    mount_path: str
    currency: str
    network: str
    server: str
    payee_name: str
    resource: Optional[str]
    allow_http: bool
    price: Optional[Price]
    store: CredentialStore
    oauth_client: ResourceOAuthClient
    payment_server: PaymentServer


def build_config(
    settings: Settings,
    fetch: Fetch,
    price: Any = None,
    store: Optional[CredentialStore] = None,
    oauth_client: Optional[ResourceOAuthClient] = None,
    payment_server: Optional[PaymentServer] = None,
) -> PayMcpConfig:
    if store is None:
        store = MemoryCredentialStore()
    if oauth_client is None:
        oauth_client = ResourceOAuthClient(
            store=store,
            fetch=fetch,
            allow_insecure_requests=settings.allow_http,
            client_name=settings.payee_name,
        )
    if payment_server is None:
        payment_server = PayMcpPaymentServer(settings.server, store, fetch)

    return PayMcpConfig(
        destination=settings.destination,
        mount_path=settings.mount_path,
        currency=settings.currency,
        network=settings.network,
        server=settings.server,
        payee_name=settings.payee_name,
        resource=settings.resource,
        allow_http=settings.allow_http,
        price=as_price(price) if price is not None else None,
        store=store,
        oauth_client=oauth_client,
        payment_server=payment_server,
    )


# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

PayMcpConfigAppKey: Final = web.AppKey("paymcp_config", PayMcpConfig)
"""AppKey for accessing the built PayMcp configuration"""

PriceAppKey: Final = web.AppKey("paymcp_price", object)
"""AppKey for the price the application was created with"""

SessionAppKey: Final = web.AppKey("http_session", ClientSession)
"""AppKey for accessing the shared aiohttp client session"""

CredentialStoreAppKey: Final = web.AppKey("credential_store", CredentialStore)
"""AppKey for accessing the credential store"""

MetricsClientAppKey: Final = web.AppKey("metrics_client", MetricsClient)
"""AppKey for the metrics client"""
