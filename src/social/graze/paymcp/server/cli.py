"""
Development MCP Server

A minimal JSON-RPC MCP endpoint behind paymcp_middleware, for trying clients against a local
authorization server. The secure-data tool charges 0.01 per call through require_payment().

Configure with the PAYMCP_* environment variables (PAYMCP_DESTINATION is required) and PORT.
"""

from decimal import Decimal
import logging
import os
from typing import Any, Dict

from aiohttp import web

from social.graze.paymcp.common.log import configure_logging
from social.graze.paymcp.server.app import create_paymcp_app
from social.graze.paymcp.server.config import SettingsAppKey
from social.graze.paymcp.server.context import paymcp_user
from social.graze.paymcp.server.require_payment import require_payment

logger = logging.getLogger(__name__)

SECURE_DATA_PRICE = Decimal("0.01")

TOOLS = [
    {
        "name": "secure-data",
        "description": "Secure data",
        "inputSchema": {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to secure"}
            },
        },
    }
]


async def call_tool(params: Dict[str, Any]) -> Dict[str, Any]:
    if params.get("name") != "secure-data":
        raise LookupError(f"Unknown tool: {params.get('name')}")

    await require_payment(SECURE_DATA_PRICE)
    message = (params.get("arguments") or {}).get("message") or "No message provided"
    logger.info("secure-data called by %s", paymcp_user())
    return {"content": [{"type": "text", "text": f"Secure data: {message}"}]}


async def handle_mcp(request: web.Request) -> web.Response:
    body = await request.json()
    request_id = body.get("id")
    method = body.get("method")

    if method == "initialize":
        result: Dict[str, Any] = {
            "protocolVersion": "2025-06-18",
            "capabilities": {"tools": {}},
            "serverInfo": {"name": "paymcp-dev-server", "version": "1.0.0"},
        }
    elif method == "tools/list":
        result = {"tools": TOOLS}
    elif method == "tools/call":
        try:
            result = await call_tool(body.get("params") or {})
        except LookupError as e:
            return web.json_response(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": -32602, "message": str(e)},
                }
            )
    elif request_id is None:
        return web.Response(status=202)
    else:
        return web.json_response(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": -32601, "message": f"Method not found: {method}"},
            }
        )

    return web.json_response({"jsonrpc": "2.0", "id": request_id, "result": result})


def invoke():
    configure_logging()

    app = create_paymcp_app()
    app.add_routes([web.post(app[SettingsAppKey].mount_path, handle_mcp)])

    web.run_app(app, port=int(os.getenv("PORT", "3009")))


if __name__ == "__main__":
    invoke()
