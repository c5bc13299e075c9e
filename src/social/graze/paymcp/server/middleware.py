"""
PayMcp Server Middleware

paymcp_middleware protects the MCP endpoint of an aiohttp application. For each request it:

1. Serves protected resource metadata and legacy OAuth authorization server metadata
2. Passes requests that carry no JSON-RPC requests straight to the handler
3. Names each JSON-RPC request's operation and sums the charge for the batch
4. Introspects the bearer token, sending the charge along when the server is priced, and answers
   with an OAuth challenge when the check fails
5. Saves the inbound token for pass-through chaining and runs the handler inside the request
   context, where require_payment() and the context accessors work

A PaymentRequestError escaping the handler becomes a payment-required JSON-RPC error. Any other
failure in the pipeline is reported to Sentry and answered with a generic 500.

statsd_middleware and sentry_middleware are the outer request timing and error reporting layers
used by create_paymcp_app().
"""

from decimal import Decimal
import logging
from time import time
from typing import List, Optional, Tuple

from aiohttp import web
import sentry_sdk

from social.graze.paymcp.common.errors import PaymentRequestError
from social.graze.paymcp.common.mcp_json import JSONRPCMessage
from social.graze.paymcp.server.challenge import (
    SERVER_ERROR_BODY,
    oauth_challenge_response,
)
from social.graze.paymcp.server.charge import get_charge_for_operation
from social.graze.paymcp.server.config import (
    MetricsClientAppKey,
    PayMcpConfig,
    PayMcpConfigAppKey,
)
from social.graze.paymcp.server.context import paymcp_context, save_pass_through_token
from social.graze.paymcp.server.metadata import (
    get_resource,
    oauth_metadata,
    protected_resource_metadata,
)
from social.graze.paymcp.server.metrics import MetricsClient
from social.graze.paymcp.server.operation import get_operation, parse_mcp_requests
from social.graze.paymcp.server.token import TokenCheck, check_token

logger = logging.getLogger(__name__)

PipelineResult = Tuple[
    Optional[web.StreamResponse], List[JSONRPCMessage], Optional[TokenCheck]
]


def total_charge(config: PayMcpConfig, mcp_requests: List[JSONRPCMessage]) -> Decimal:
    total = Decimal(0)
    for message in mcp_requests:
        operation = get_operation("POST", message)
        total += get_charge_for_operation(operation, config.price)
    return total


async def _check_request(
    config: PayMcpConfig, metrics: MetricsClient, request: web.Request
) -> PipelineResult:
    prm = protected_resource_metadata(config, request)
    if prm is not None:
        return web.json_response(prm.model_dump(mode="json")), [], None

    as_metadata = await oauth_metadata(config, request)
    if as_metadata is not None:
        return web.json_response(as_metadata), [], None

    mcp_requests = await parse_mcp_requests(request)
    logger.debug("%d MCP requests found in request", len(mcp_requests))
    if not mcp_requests:
        return None, [], None

    logger.debug("Request started - %s %s", request.method, request.path)
    charge = total_charge(config, mcp_requests)
    if charge > 0:
        metrics.increment(
            "paymcp.server.charge.resolved", 1, tag_dict={"path": request.path}
        )

    token_check = await check_token(config, request, charge)
    challenge = oauth_challenge_response(token_check)
    if challenge is not None:
        problem = token_check.problem.value if token_check.problem else "unknown"
        metrics.increment(
            "paymcp.server.challenge", 1, tag_dict={"problem": problem}
        )
        return challenge, mcp_requests, token_check

    await save_pass_through_token(config, token_check)
    return None, mcp_requests, token_check


@web.middleware
async def paymcp_middleware(request: web.Request, handler):
    config = request.app[PayMcpConfigAppKey]
    metrics = request.app[MetricsClientAppKey]

    try:
        response, mcp_requests, token_check = await _check_request(
            config, metrics, request
        )
    except Exception as e:
        sentry_sdk.capture_exception(e)
        logger.exception(
            "Critical error in paymcp middleware - return HTTP 500"
        )
        return web.json_response(SERVER_ERROR_BODY, status=500)

    if response is not None:
        return response

    if not mcp_requests or token_check is None:
        return await handler(request)

    user = token_check.user
    try:
        async with paymcp_context(
            config, get_resource(config, request), token_check.data
        ):
            return await handler(request)
    except PaymentRequestError as e:
        logger.info(
            "Payment required for user %s: %s", user, e.payment_request_url
        )
        error = e.to_payment_required_error()
        return web.json_response(
            {
                "jsonrpc": "2.0",
                "id": getattr(mcp_requests[0], "id", None),
                "error": error.to_jsonrpc_error(),
            }
        )
    finally:
        logger.debug(
            "Request finished %s- %s %s",
            f"for user {user} " if user else "",
            request.method,
            request.path,
        )


@web.middleware
async def sentry_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        sentry_sdk.capture_exception(e)
        raise e


@web.middleware
async def statsd_middleware(request: web.Request, handler):
    metrics = request.app[MetricsClientAppKey]
    request_method: str = request.method
    request_path = request.path

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except Exception as e:
        metrics.increment(
            "paymcp.server.request.exception",
            1,
            tag_dict={
                "exception": type(e).__name__,
                "path": request_path,
                "method": request_method,
            },
        )
        raise e
    finally:
        metrics.timer(
            "paymcp.server.request.time",
            time() - start_time,
            tag_dict={"path": request_path, "method": request_method},
        )
        metrics.increment(
            "paymcp.server.request.count",
            1,
            tag_dict={
                "path": request_path,
                "method": request_method,
                "status": response_status_code,
            },
        )
