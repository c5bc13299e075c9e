"""
Bearer Token Checks

check_token() decides whether an inbound MCP request carries an acceptable bearer token. The
token is introspected at the configured authorization server; when the server is priced, the
resolved charge travels with the introspection request so the authorization server can refuse
tokens whose holder cannot pay.

A failing check carries a TokenProblem, which challenge.py turns into an RFC 6750 challenge.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
import logging
from typing import Dict, List, Optional

from aiohttp import web

from social.graze.paymcp.common.oauth_resource import PROTECTED_RESOURCE_WELL_KNOWN
from social.graze.paymcp.common.types import TokenData
from social.graze.paymcp.server.config import PayMcpConfig

logger = logging.getLogger(__name__)


class TokenProblem(str, Enum):
    NO_TOKEN = "NO-TOKEN"
    NON_BEARER_AUTH_HEADER = "NON-BEARER-AUTH-HEADER"
    INVALID_TOKEN = "INVALID-TOKEN"
    INVALID_AUDIENCE = "INVALID-AUDIENCE"
    NON_SUFFICIENT_FUNDS = "NON-SUFFICIENT-FUNDS"
    INTROSPECT_ERROR = "INTROSPECT-ERROR"


@dataclass
class TokenCheck:
    passes: bool
    token: Optional[str] = None
    data: Optional[TokenData] = None
    problem: Optional[TokenProblem] = None
    resource_metadata_url: Optional[str] = None

    @property
    def user(self) -> Optional[str]:
        return self.data.sub if self.data is not None else None


def resource_metadata_url(request: web.Request) -> str:
    """The protected resource metadata URL for the resource a request addressed."""
    return f"{request.scheme}://{request.host}{PROTECTED_RESOURCE_WELL_KNOWN}{request.path}"


def _audiences(data: TokenData) -> List[str]:
    if data.aud is None:
        return []
    if isinstance(data.aud, str):
        return [data.aud]
    return list(data.aud)


def _failed(
    request: web.Request,
    problem: TokenProblem,
    token: Optional[str] = None,
    data: Optional[TokenData] = None,
) -> TokenCheck:
    return TokenCheck(
        passes=False,
        token=token,
        data=data,
        problem=problem,
        resource_metadata_url=resource_metadata_url(request),
    )


async def check_token(
    config: PayMcpConfig, request: web.Request, charge: Decimal
) -> TokenCheck:
    authorization = request.headers.get("Authorization")
    if not authorization:
        return _failed(request, TokenProblem.NO_TOKEN)

    if not authorization.startswith("Bearer "):
        return _failed(request, TokenProblem.NON_BEARER_AUTH_HEADER)

    token = authorization[len("Bearer ") :].strip()

    additional_parameters: Optional[Dict[str, str]] = None
    if config.price is not None:
        additional_parameters = {"charge": str(charge)}

    try:
        data = await config.oauth_client.introspect_token(
            config.server, token, additional_parameters
        )
    except Exception:
        logger.exception("Error introspecting token")
        return _failed(request, TokenProblem.INTROSPECT_ERROR, token)

    if not data.active:
        return _failed(request, TokenProblem.INVALID_TOKEN, token, data)

    if config.resource and config.resource not in _audiences(data):
        logger.info(
            "Token audience %s does not include resource %s", data.aud, config.resource
        )
        return _failed(request, TokenProblem.INVALID_AUDIENCE, token, data)

    return TokenCheck(passes=True, token=token, data=data)
