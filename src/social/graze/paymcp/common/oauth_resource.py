"""
Resource-side OAuth Client

The narrow OAuth capability shared by PayMcp clients and servers: discover the authorization
server for a protected resource, dynamically register a client with it, and introspect tokens.

Discovery:
1. GET {origin}/.well-known/oauth-protected-resource{path} for the resource
2. If that 404s and the client is not strict, fall back to the resource server's own
   {origin}/.well-known/oauth-authorization-server document and trust its issuer. Older MCP
   servers publish OAuth metadata this way, sometimes naming a separate authorization server.
3. GET the authorization server metadata for the first authorization server found

Client credentials are registered lazily, once per issuer, and re-registered when the
authorization server rejects them.
"""

import base64
import logging
from typing import Any, Dict, Final, Optional
from urllib.parse import quote_plus, urlparse

from pydantic import ValidationError

from social.graze.paymcp.common.errors import (
    ConfigurationError,
    DiscoveryError,
    IntrospectionError,
    RegistrationError,
)
from social.graze.paymcp.common.http import Fetch, FetchResponse, url_origin
from social.graze.paymcp.common.types import (
    AuthorizationServerMetadata,
    ClientCredentials,
    ProtectedResourceMetadata,
    TokenData,
)
from social.graze.paymcp.store.base import CredentialStore

logger = logging.getLogger(__name__)

PROTECTED_RESOURCE_WELL_KNOWN: Final = "/.well-known/oauth-protected-resource"
AUTHORIZATION_SERVER_WELL_KNOWN: Final = "/.well-known/oauth-authorization-server"

DEFAULT_CALLBACK_URL: Final = "http://localhost:3000/unused-dummy-global-callback"


def normalize_resource_server_url(resource_server_url: str) -> str:
    """Convert a protected resource metadata URL into the URL of the resource it describes.

    Challenge headers and metadata documents may name either one; everything downstream is keyed
    by the resource URL.
    """
    return resource_server_url.replace(PROTECTED_RESOURCE_WELL_KNOWN, "")


def well_known_url(url: str, well_known: str) -> str:
    parsed = urlparse(url)
    path = parsed.path if parsed.path != "/" else ""
    return f"{parsed.scheme}://{parsed.netloc}{well_known}{path}"


def introspection_registration_metadata(
    callback_url: str, client_name: str
) -> Dict[str, Any]:
    # response_types is unused by an introspection client but registration requires one.
    return {
        "redirect_uris": [callback_url],
        "response_types": ["code"],
        "grant_types": ["authorization_code", "client_credentials"],
        "token_endpoint_auth_method": "client_secret_basic",
        "client_name": client_name,
    }


def basic_auth_header(credentials: ClientCredentials) -> str:
    """HTTP Basic client authentication (RFC 6749 section 2.3.1)."""
    user_pass = f"{quote_plus(credentials.client_id)}:{quote_plus(credentials.client_secret)}"
    return "Basic " + base64.b64encode(user_pass.encode("utf-8")).decode("ascii")


class ResourceOAuthClient:
    def __init__(
        self,
        store: CredentialStore,
        fetch: Fetch,
        callback_url: str = DEFAULT_CALLBACK_URL,
        strict: bool = False,
        allow_insecure_requests: bool = False,
        client_name: str = "Token Introspection Client",
        registration_metadata: Optional[Dict[str, Any]] = None,
    ):
        self.store = store
        self.fetch = fetch
        self.callback_url = callback_url
        self.strict = strict
        self.allow_insecure_requests = allow_insecure_requests
        self.client_name = client_name
        self.registration_metadata = (
            registration_metadata
            if registration_metadata is not None
            else introspection_registration_metadata(callback_url, client_name)
        )

    def check_request_url(self, url: str) -> None:
        if urlparse(url).scheme != "https" and not self.allow_insecure_requests:
            raise ConfigurationError(
                f"Refusing non-HTTPS request to {url}; enable allow_insecure_requests to permit it"
            )

    async def _get_json(self, url: str) -> FetchResponse:
        self.check_request_url(url)
        return await self.fetch(url, "GET", headers={"Accept": "application/json"})

    async def authorization_server_from_url(
        self, authorization_server_url: str
    ) -> AuthorizationServerMetadata:
        try:
            if PROTECTED_RESOURCE_WELL_KNOWN in authorization_server_url:
                raise DiscoveryError(
                    "Authorization server URL is a PRM URL, which is not supported. It must be an AS URL."
                )

            response = await self._get_json(
                well_known_url(authorization_server_url, AUTHORIZATION_SERVER_WELL_KNOWN)
            )
            if response.status != 200:
                raise DiscoveryError(
                    f"Authorization server metadata for {authorization_server_url} "
                    f"returned status {response.status}"
                )
            try:
                metadata = AuthorizationServerMetadata.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                raise DiscoveryError(
                    f"Invalid authorization server metadata for {authorization_server_url}"
                ) from e

            if metadata.issuer.rstrip("/") != authorization_server_url.rstrip("/"):
                raise DiscoveryError(
                    f"Authorization server issuer {metadata.issuer} does not match {authorization_server_url}"
                )
            return metadata
        except Exception as e:
            logger.warning("Error fetching authorization server configuration: %s", e)
            raise

    async def get_authorization_server(
        self, resource_server_url: str
    ) -> AuthorizationServerMetadata:
        resource_server_url = normalize_resource_server_url(resource_server_url)

        try:
            prm_response = await self._get_json(
                well_known_url(resource_server_url, PROTECTED_RESOURCE_WELL_KNOWN)
            )

            authorization_server: Optional[str] = None
            if not self.strict and prm_response.status == 404:
                logger.info(
                    "Protected Resource Metadata document not found, looking for OAuth metadata on resource server"
                )
                rs_as_response = await self._get_json(
                    url_origin(resource_server_url) + AUTHORIZATION_SERVER_WELL_KNOWN
                )
                if rs_as_response.status == 200:
                    authorization_server = rs_as_response.json().get("issuer")
            else:
                if prm_response.status != 200:
                    raise DiscoveryError(
                        f"Protected resource metadata for {resource_server_url} "
                        f"returned status {prm_response.status}"
                    )
                try:
                    prm = ProtectedResourceMetadata.model_validate(prm_response.json())
                except (ValueError, ValidationError) as e:
                    raise DiscoveryError(
                        f"Invalid protected resource metadata for {resource_server_url}"
                    ) from e
                if prm.authorization_servers:
                    authorization_server = prm.authorization_servers[0]

            if not authorization_server:
                raise DiscoveryError(
                    "No authorization_servers found in protected resource metadata"
                )

            return await self.authorization_server_from_url(authorization_server)
        except Exception as e:
            logger.warning("Error discovering authorization server for %s: %s", resource_server_url, e)
            raise

    async def register_client(
        self, authorization_server: AuthorizationServerMetadata
    ) -> ClientCredentials:
        logger.info(
            "Registering client with authorization server %s for %s",
            authorization_server.issuer,
            self.callback_url,
        )

        if not authorization_server.registration_endpoint:
            raise RegistrationError(
                "Authorization server does not support dynamic client registration"
            )

        self.check_request_url(authorization_server.registration_endpoint)
        response = await self.fetch(
            authorization_server.registration_endpoint,
            "POST",
            headers={"Accept": "application/json"},
            json=self.registration_metadata,
        )
        if response.status not in (200, 201):
            logger.warning(
                "Client registration failure error_details: %s", response.text()
            )
            raise RegistrationError(
                f"Client registration failed with status {response.status}"
            )

        registered = response.json()
        client_id = registered.get("client_id")
        if not client_id:
            raise RegistrationError("Client registration response has no client_id")

        logger.info("Successfully registered client with ID: %s", client_id)

        credentials = ClientCredentials(
            client_id=client_id,
            client_secret=str(registered.get("client_secret") or ""),
            redirect_uri=self.callback_url,
        )
        await self.store.save_client_credentials(authorization_server.issuer, credentials)
        return credentials

    async def get_client_credentials(
        self, authorization_server: AuthorizationServerMetadata
    ) -> ClientCredentials:
        credentials = await self.store.get_client_credentials(authorization_server.issuer)
        if credentials is None:
            credentials = await self.register_client(authorization_server)
        return credentials

    async def _introspection_request(
        self,
        authorization_server: AuthorizationServerMetadata,
        credentials: ClientCredentials,
        token: str,
        additional_parameters: Optional[Dict[str, str]],
    ) -> FetchResponse:
        endpoint = authorization_server.introspection_endpoint
        if not endpoint:
            raise IntrospectionError(
                f"Authorization server {authorization_server.issuer} has no introspection endpoint"
            )
        self.check_request_url(endpoint)
        form = {"token": token}
        form.update(additional_parameters or {})
        return await self.fetch(
            endpoint,
            "POST",
            headers={
                "Authorization": basic_auth_header(credentials),
                "Accept": "application/json",
            },
            data=form,
        )

    async def introspect_token(
        self,
        authorization_server_url: str,
        token: str,
        additional_parameters: Optional[Dict[str, str]] = None,
    ) -> TokenData:
        # The "resource" we hold credentials for here is the authorization server itself.
        authorization_server = await self.authorization_server_from_url(authorization_server_url)
        credentials = await self.get_client_credentials(authorization_server)

        response = await self._introspection_request(
            authorization_server, credentials, token, additional_parameters
        )
        if response.status in (401, 403):
            logger.info(
                "Bad response status doing token introspection: %s. "
                "Could be due to bad client credentials - trying to re-register",
                response.status,
            )
            credentials = await self.register_client(authorization_server)
            response = await self._introspection_request(
                authorization_server, credentials, token, additional_parameters
            )

        if response.status != 200:
            raise IntrospectionError(
                f"Token introspection failed with status {response.status}: {response.reason}"
            )

        return TokenData.model_validate(response.json())
