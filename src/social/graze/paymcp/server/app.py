import logging
from typing import Any, Optional

import aiohttp
from aiohttp import web
import redis.asyncio as redis
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from social.graze.paymcp.common.http import SessionFetch
from social.graze.paymcp.model.credentials import create_tables
from social.graze.paymcp.server.config import (
    CredentialStoreAppKey,
    MetricsClientAppKey,
    PayMcpConfigAppKey,
    PriceAppKey,
    SessionAppKey,
    Settings,
    SettingsAppKey,
    build_config,
)
from social.graze.paymcp.server.metrics import create_metrics_client
from social.graze.paymcp.server.middleware import (
    paymcp_middleware,
    sentry_middleware,
    statsd_middleware,
)
from social.graze.paymcp.store.base import CredentialStore
from social.graze.paymcp.store.cache import RedisCredentialStore
from social.graze.paymcp.store.database import SqlCredentialStore
from social.graze.paymcp.store.memory import MemoryCredentialStore

logger = logging.getLogger(__name__)


async def create_store(settings: Settings) -> CredentialStore:
    if settings.redis_dsn is not None:
        logger.info("Using Redis credential store")
        return RedisCredentialStore(
            redis.Redis.from_url(str(settings.redis_dsn)),
            encryption_key=settings.encryption_key,
        )

    if settings.database_url:
        logger.info("Using SQL credential store")
        engine = create_async_engine(settings.database_url)
        await create_tables(engine)
        return SqlCredentialStore(
            async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
            encryption_key=settings.encryption_key,
            engine=engine,
        )

    logger.info("Using in-memory credential store")
    return MemoryCredentialStore()


async def paymcp_lifecycle(app: web.Application):
    logger.info("Starting up")
    settings: Settings = app[SettingsAppKey]

    session = aiohttp.ClientSession()
    app[SessionAppKey] = session

    if CredentialStoreAppKey not in app:
        app[CredentialStoreAppKey] = await create_store(settings)

    metrics_client = create_metrics_client(
        settings.metrics_backend,
        host=settings.statsd_host,
        port=settings.statsd_port,
        debug=settings.debug,
    )
    await metrics_client.connect()
    app[MetricsClientAppKey] = metrics_client

    app[PayMcpConfigAppKey] = build_config(
        settings,
        SessionFetch(session),
        price=app[PriceAppKey],
        store=app[CredentialStoreAppKey],
    )

    logger.info("Startup complete")

    yield

    logger.info("Shutting down")

    await session.close()
    await app[CredentialStoreAppKey].close()
    await metrics_client.close()


def create_paymcp_app(
    settings: Optional[Settings] = None,
    price: Any = None,
    store: Optional[CredentialStore] = None,
) -> web.Application:
    """
    Create an aiohttp application protected by PayMcp.

    Add the MCP endpoint route at settings.mount_path to the returned application. Handlers
    behind it may call require_payment() and read the request context.

    Args:
        settings: Server settings, loaded from the environment when not given
        price: Price for operations, as a number, a mapping of operation to amount, or a callable
        store: Credential store; built from settings when not given
    """
    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=True,
            integrations=[AioHttpIntegration()],
        )

    app = web.Application(
        middlewares=[statsd_middleware, sentry_middleware, paymcp_middleware]
    )
    app[SettingsAppKey] = settings
    app[PriceAppKey] = price
    if store is not None:
        app[CredentialStoreAppKey] = store

    app.cleanup_ctx.append(paymcp_lifecycle)

    return app
