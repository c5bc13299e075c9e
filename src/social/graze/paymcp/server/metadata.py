"""
OAuth Discovery Documents

The middleware answers two discovery requests itself:

- Protected Resource Metadata (RFC 9728) for the mounted MCP endpoint and its /message
  endpoint, naming the configured authorization server.
- Authorization server metadata (RFC 8414) at the server root, for older MCP clients that look
  for OAuth metadata on the resource server. The document mirrors the configured authorization
  server's own metadata.
"""

import logging
from typing import Any, Dict, Optional

from aiohttp import web

from social.graze.paymcp.common.oauth_resource import (
    AUTHORIZATION_SERVER_WELL_KNOWN,
    PROTECTED_RESOURCE_WELL_KNOWN,
)
from social.graze.paymcp.common.types import ProtectedResourceMetadata
from social.graze.paymcp.server.config import PayMcpConfig

logger = logging.getLogger(__name__)

MIRRORED_METADATA_FIELDS = (
    "authorization_endpoint",
    "response_types_supported",
    "grant_types_supported",
    "token_endpoint",
    "token_endpoint_auth_methods_supported",
    "registration_endpoint",
    "revocation_endpoint",
    "introspection_endpoint",
    "introspection_endpoint_auth_methods_supported",
    "code_challenge_methods_supported",
    "scopes_supported",
)


def get_path(request: web.Request) -> str:
    return "" if request.path == "/" else request.path


def resource_path(path: str) -> str:
    """Strip a protected resource metadata prefix and any trailing slash from a path."""
    return path.replace(PROTECTED_RESOURCE_WELL_KNOWN, "").rstrip("/")


def get_resource(config: PayMcpConfig, request: web.Request) -> str:
    """The resource a request addresses: the configured one, else inferred from the request."""
    if config.resource:
        return config.resource
    return f"{request.scheme}://{request.host}{resource_path(get_path(request))}"


def is_protected_resource_metadata_request(config: PayMcpConfig, path: str) -> bool:
    if not path.startswith(PROTECTED_RESOURCE_WELL_KNOWN):
        return False
    mount_path = config.mount_path.rstrip("/")
    return resource_path(path) in (mount_path, f"{mount_path}/message")


def protected_resource_metadata(
    config: PayMcpConfig, request: web.Request
) -> Optional[ProtectedResourceMetadata]:
    path = get_path(request)
    if not is_protected_resource_metadata_request(config, path):
        return None

    resource = f"{request.scheme}://{request.host}{resource_path(path)}"
    return ProtectedResourceMetadata(
        resource=resource,
        resource_name=config.payee_name or resource,
        authorization_servers=[config.server],
        bearer_methods_supported=["header"],
        scopes_supported=["read", "write"],
    )


def is_oauth_metadata_request(request: web.Request) -> bool:
    return get_path(request).rstrip("/") == AUTHORIZATION_SERVER_WELL_KNOWN


async def oauth_metadata(
    config: PayMcpConfig, request: web.Request
) -> Optional[Dict[str, Any]]:
    if not is_oauth_metadata_request(request):
        return None

    logger.debug("Serving OAuth metadata for %s", config.server)
    authorization_server = await config.oauth_client.authorization_server_from_url(
        config.server
    )
    metadata: Dict[str, Any] = {"issuer": config.server}
    for field_name in MIRRORED_METADATA_FIELDS:
        metadata[field_name] = getattr(authorization_server, field_name)
    return metadata
