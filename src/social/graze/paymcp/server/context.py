"""
Request Context

Handlers behind the middleware read the current request's config, resource and authenticated
user through these accessors instead of having them passed down every call. The context lives in
a ContextVar, so asyncio tasks and loop callbacks scheduled while handling a request see the
request's context too.

Outside a request every accessor returns None.
"""

from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import logging
from typing import AsyncIterator, Optional

from social.graze.paymcp.common.types import AccessToken, TokenData
from social.graze.paymcp.server.config import PayMcpConfig
from social.graze.paymcp.server.token import TokenCheck

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayMcpContext:
    config: PayMcpConfig
    resource: str
    token_data: Optional[TokenData] = None


_paymcp_context: ContextVar[Optional[PayMcpContext]] = ContextVar(
    "paymcp_context", default=None
)


def current_context() -> Optional[PayMcpContext]:
    return _paymcp_context.get()


def paymcp_config() -> Optional[PayMcpConfig]:
    context = _paymcp_context.get()
    return context.config if context is not None else None


def paymcp_resource() -> Optional[str]:
    context = _paymcp_context.get()
    return context.resource if context is not None else None


def paymcp_user() -> Optional[str]:
    """The authenticated user (introspected token subject) of the current request."""
    context = _paymcp_context.get()
    if context is None or context.token_data is None:
        return None
    return context.token_data.sub


async def save_pass_through_token(config: PayMcpConfig, token_check: TokenCheck) -> None:
    """
    Store the inbound token for the user under the "" resource.

    A PayMcpFetcher without payment makers, sharing this store, forwards it to downstream
    PayMcp servers.
    """
    data = token_check.data
    if data is None or not data.sub:
        return
    if not token_check.token:
        logger.warning(
            "Setting user context with token data, but no token was provided"
        )
        logger.debug("Token data: %s", data.model_dump_json())
        return
    await config.store.save_access_token(
        data.sub, "", AccessToken(access_token=token_check.token, resource_url="")
    )


@asynccontextmanager
async def paymcp_context(
    config: PayMcpConfig, resource: str, token_data: Optional[TokenData] = None
) -> AsyncIterator[PayMcpContext]:
    logger.debug(
        "Setting user context to %s", token_data.sub if token_data is not None else None
    )
    context = PayMcpContext(config=config, resource=resource, token_data=token_data)
    reset_token = _paymcp_context.set(context)
    try:
        yield context
    finally:
        _paymcp_context.reset(reset_token)
