import logging
from typing import Any, Dict, Optional, Tuple

from aiohttp import web

from social.graze.paymcp.server.token import TokenCheck, TokenProblem

logger = logging.getLogger(__name__)

SERVER_ERROR_BODY = {
    "error": "server_error",
    "error_description": "An internal server error occurred",
}

# https://datatracker.ietf.org/doc/html/rfc6750#section-3.1
CHALLENGES: Dict[TokenProblem, Tuple[int, Dict[str, Any]]] = {
    TokenProblem.NO_TOKEN: (401, {}),
    TokenProblem.NON_BEARER_AUTH_HEADER: (
        400,
        {
            "error": "invalid_request",
            "error_description": "Authorization header did not include a Bearer token",
        },
    ),
    TokenProblem.INVALID_TOKEN: (
        401,
        {"error": "invalid_token", "error_description": "Token is not active"},
    ),
    TokenProblem.INVALID_AUDIENCE: (
        401,
        {
            "error": "invalid_token",
            "error_description": "Token does not match the expected audience",
        },
    ),
    TokenProblem.NON_SUFFICIENT_FUNDS: (
        403,
        {"error": "insufficient_scope", "error_description": "Non sufficient funds"},
    ),
    TokenProblem.INTROSPECT_ERROR: (500, SERVER_ERROR_BODY),
}


def oauth_challenge_response(token_check: TokenCheck) -> Optional[web.Response]:
    """The challenge for a failed token check, or None when the check passed."""
    if token_check.passes:
        return None
    if token_check.problem is None:
        raise ValueError("Failed token check has no problem")

    status, body = CHALLENGES[token_check.problem]
    logger.info(
        "Sending OAuth challenge %s (%s) for %s",
        token_check.problem.value,
        status,
        token_check.resource_metadata_url,
    )
    return web.json_response(
        body,
        status=status,
        headers={
            "WWW-Authenticate": f'Bearer resource_metadata="{token_check.resource_metadata_url}"'
        },
    )
