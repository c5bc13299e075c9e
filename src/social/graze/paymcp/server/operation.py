"""MCP operation naming.

An operation is the JSON-RPC method, suffixed with :{name} when the request names a tool (or
prompt, resource template, ...) in params.name. Non-POST traffic is not MCP.
"""

import logging
from typing import Final, List, Optional

from aiohttp import web

from social.graze.paymcp.common.mcp_json import (
    JSONRPCMessage,
    JSONRPCRequest,
    parse_mcp_messages,
)

logger = logging.getLogger(__name__)

NON_MCP: Final = "NON_MCP"


def mcp_operation(message: JSONRPCMessage) -> Optional[str]:
    if not isinstance(message, JSONRPCRequest):
        return None
    operation = message.method
    name = (message.params or {}).get("name")
    if name:
        operation = f"{operation}:{name}"
    return operation or None


def get_operation(http_method: str, message: Optional[JSONRPCMessage]) -> str:
    if http_method.upper() != "POST" or message is None:
        return NON_MCP
    return mcp_operation(message) or NON_MCP


async def parse_mcp_requests(request: web.Request) -> List[JSONRPCMessage]:
    """Parse the JSON-RPC requests in a POST body; anything unparseable yields none."""
    if request.method.upper() != "POST" or not request.can_read_body:
        return []
    try:
        payload = await request.json()
    except ValueError:
        logger.debug("Request body of %s %s is not JSON", request.method, request.path)
        return []
    messages = parse_mcp_messages(payload)
    return [message for message in messages if isinstance(message, JSONRPCRequest)]
