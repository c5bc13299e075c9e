"""
OAuth Client with Challenge Detection

OAuthClient wraps a fetch callable and drives the OAuth 2.0 authorization code flow (RFC 6749)
with PKCE (RFC 7636) for the resources it calls.

States of a call:
1. Unauthenticated: no stored token for the exact resource path, the call goes out bare
2. Challenged: the resource answers 401, naming its protected resource metadata in
   WWW-Authenticate
3. Refreshing: the challenge says error="invalid_grant" and a refresh token is stored, so the
   token is refreshed and the call retried once
4. Authorizing: otherwise AuthenticationRequired is raised; the caller builds an authorization
   URL (make_authorization_url) and completes it (handle_callback)
5. Authorized: the stored token is attached to subsequent calls

Discovery, registration and credential storage are delegated to a ResourceOAuthClient.
"""

import base64
from datetime import datetime, timedelta, timezone
import hashlib
import logging
import re
import secrets
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from social.graze.paymcp.common.errors import (
    AuthenticationRequired,
    AuthorizationResponseError,
    TokenExchangeError,
)
from social.graze.paymcp.common.http import Fetch, FetchResponse, trim_to_path
from social.graze.paymcp.common.oauth_resource import (
    ResourceOAuthClient,
    normalize_resource_server_url,
)
from social.graze.paymcp.common.types import (
    AccessToken,
    AuthorizationServerMetadata,
    ClientCredentials,
    PKCEValues,
)
from social.graze.paymcp.store.base import CredentialStore

logger = logging.getLogger(__name__)

RESOURCE_METADATA_HEADER_PATTERN = re.compile(r'^Bearer resource_metadata="([^"]+)"$')
LEGACY_RESOURCE_HEADER_PATTERN = re.compile(r"^https?://")


def generate_pkce_verifier() -> Tuple[str, str]:
    """
    Generate a PKCE verifier and its S256 challenge.

    Returns:
        Tuple[str, str]: (code_verifier, code_challenge)
    """
    code_verifier = secrets.token_urlsafe(64)

    hashed = hashlib.sha256(code_verifier.encode("ascii")).digest()
    encoded = base64.urlsafe_b64encode(hashed)
    code_challenge = encoded.decode("ascii").rstrip("=")
    return (code_verifier, code_challenge)


def oauth_client_registration_metadata(callback_url: str, is_public: bool) -> Dict[str, Any]:
    grant_types = ["authorization_code", "refresh_token"]
    if not is_public:
        grant_types.append("client_credentials")

    return {
        "redirect_uris": [callback_url],
        "response_types": ["code"],
        "grant_types": grant_types,
        "token_endpoint_auth_method": "none" if is_public else "client_secret_post",
        "client_name": f"OAuth Client for {callback_url}",
    }


def token_endpoint_auth(credentials: ClientCredentials) -> Dict[str, str]:
    """Form fields authenticating the client to the token endpoint.

    A client holding a secret was registered as confidential and uses client_secret_post;
    otherwise it authenticates with its client_id alone. PKCE applies either way.
    """
    if credentials.client_secret:
        return {
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
        }
    return {"client_id": credentials.client_id}


class OAuthClient:
    def __init__(
        self,
        user_id: str,
        store: CredentialStore,
        callback_url: str,
        is_public: bool,
        fetch: Fetch,
        side_channel_fetch: Optional[Fetch] = None,
        strict: bool = False,
        allow_insecure_requests: bool = False,
        client_name: Optional[str] = None,
    ):
        self.user_id = user_id
        self.store = store
        self.fetch_fn = fetch
        self.side_channel_fetch = side_channel_fetch or fetch
        self.resource_client = ResourceOAuthClient(
            store=store,
            fetch=self.side_channel_fetch,
            callback_url=callback_url,
            strict=strict,
            allow_insecure_requests=allow_insecure_requests,
            client_name=client_name or callback_url,
            registration_metadata=oauth_client_registration_metadata(
                callback_url, is_public
            ),
        )

    @staticmethod
    def extract_resource_url(response: FetchResponse) -> Optional[str]:
        if response.status != 401:
            return None
        header = response.headers.get("WWW-Authenticate", "")
        match = RESOURCE_METADATA_HEADER_PATTERN.match(header)
        if match:
            return normalize_resource_server_url(match.group(1))
        # Legacy bare-URL form (www-authenticate: https://host/mcp), still sent by older proxies.
        if LEGACY_RESOURCE_HEADER_PATTERN.match(header):
            return normalize_resource_server_url(header)
        return None

    async def get_access_token(self, url: str) -> Optional[AccessToken]:
        # Exact path only. A token for https://host/ is never sent to https://host/mcp.
        return await self.store.get_access_token(self.user_id, trim_to_path(url))

    async def _do_fetch(
        self,
        url: str,
        method: str = "GET",
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Any = None,
        json: Any = None,
    ) -> FetchResponse:
        logger.debug("Making %s request to %s", method, url)

        request_headers = dict(headers or {})
        token = await self.get_access_token(url)
        if token is None:
            logger.debug(
                "No access token found for resource server %s. Passing no authorization header.",
                url,
            )
        else:
            request_headers["Authorization"] = f"Bearer {token.access_token}"

        return await self.fetch_fn(
            url, method, headers=request_headers, data=data, json=json
        )

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Any = None,
        json: Any = None,
    ) -> FetchResponse:
        response = await self._do_fetch(url, method, headers=headers, data=data, json=json)
        if response.status != 401:
            return response

        logger.info("Received 401 Unauthorized status from %s", url)
        resource_url = self.extract_resource_url(response)
        called_url = trim_to_path(url)

        if 'error="invalid_grant"' in response.headers.get("WWW-Authenticate", ""):
            refresh_url = resource_url
            if not refresh_url:
                logger.info(
                    "Refresh: no resource url in www-authenticate header, falling back to the called url %s",
                    called_url,
                )
                refresh_url = called_url
            logger.info("Response includes invalid_grant error, attempting to refresh token for %s", refresh_url)
            new_token = await self.try_refresh_token(refresh_url)
            if new_token is not None:
                response = await self._do_fetch(
                    url, method, headers=headers, data=data, json=json
                )
                resource_url = self.extract_resource_url(response)

        if response.status == 401:
            if not resource_url:
                logger.info(
                    "No resource url in www-authenticate header, falling back to the called url %s",
                    called_url,
                )
                resource_url = called_url
            token = await self.get_access_token(called_url)
            logger.info(
                "Authentication required for %s, resource: %s", called_url, resource_url
            )
            raise AuthenticationRequired.create(
                called_url, resource_url, token.access_token if token else None
            )

        return response

    async def generate_pkce(self, url: str, resource_url: str) -> Tuple[PKCEValues, str]:
        resource_url = normalize_resource_server_url(resource_url)
        code_verifier, code_challenge = generate_pkce_verifier()
        state = secrets.token_urlsafe(32)

        values = PKCEValues(
            url=url,
            code_verifier=code_verifier,
            code_challenge=code_challenge,
            resource_url=resource_url,
        )
        await self.store.save_pkce_values(self.user_id, state, values)
        return values, state

    async def make_authorization_url(self, url: str, resource_url: str) -> str:
        resource_url = normalize_resource_server_url(resource_url)
        authorization_server = await self.resource_client.get_authorization_server(resource_url)
        credentials = await self.resource_client.get_client_credentials(authorization_server)
        pkce_values, state = await self.generate_pkce(url, resource_url)

        parsed = urlparse(authorization_server.authorization_endpoint or "")
        query = dict(parse_qsl(parsed.query))
        query.update(
            {
                "client_id": credentials.client_id,
                "redirect_uri": credentials.redirect_uri,
                "response_type": "code",
                "code_challenge": pkce_values.code_challenge,
                "code_challenge_method": "S256",
                "state": state,
            }
        )
        return urlunparse(parsed._replace(query=urlencode(query)))

    async def handle_callback(self, callback_url: str) -> None:
        logger.info("Handling authorization code callback: %s", callback_url)

        params = dict(parse_qsl(urlparse(callback_url).query))
        state = params.get("state")
        if not state:
            raise AuthorizationResponseError("No state parameter found in callback URL")

        # Consumed here so a replayed callback finds nothing. A missing record is unrecoverable:
        # the authorization URL already carried its client_id.
        pkce_values = await self.store.pop_pkce_values(self.user_id, state)
        if pkce_values is None:
            raise AuthorizationResponseError(f"No PKCE values found for state: {state}")

        if "error" in params:
            raise AuthorizationResponseError(
                f"authorization response from the server is an error: {params.get('error')} "
                f"{params.get('error_description', '')}".strip()
            )
        code = params.get("code")
        if not code:
            raise AuthorizationResponseError("No code parameter found in callback URL")

        authorization_server = await self.resource_client.get_authorization_server(
            pkce_values.resource_url
        )
        await self._exchange_code_for_token(code, pkce_values, authorization_server)

    async def _token_request(
        self,
        authorization_server: AuthorizationServerMetadata,
        credentials: ClientCredentials,
        grant: Dict[str, str],
    ) -> FetchResponse:
        if not authorization_server.token_endpoint:
            raise TokenExchangeError(
                f"Authorization server {authorization_server.issuer} has no token endpoint"
            )
        self.resource_client.check_request_url(authorization_server.token_endpoint)
        form = dict(grant)
        form.update(token_endpoint_auth(credentials))
        return await self.side_channel_fetch(
            authorization_server.token_endpoint,
            "POST",
            headers={"Accept": "application/json"},
            data=form,
        )

    @staticmethod
    def _parse_token_response(
        response: FetchResponse, resource_url: str, previous_refresh_token: Optional[str] = None
    ) -> AccessToken:
        if response.status != 200:
            raise TokenExchangeError(
                f"Token request failed with status {response.status}: {response.text()}"
            )
        body = response.json()
        access_token = body.get("access_token")
        if not access_token:
            raise TokenExchangeError("Token response has no access_token")

        expires_at = None
        if body.get("expires_in"):
            expires_at = datetime.now(timezone.utc) + timedelta(
                seconds=int(body["expires_in"])
            )
        return AccessToken(
            access_token=access_token,
            refresh_token=body.get("refresh_token") or previous_refresh_token,
            expires_at=expires_at,
            resource_url=resource_url,
        )

    async def _exchange_code_for_token(
        self,
        code: str,
        pkce_values: PKCEValues,
        authorization_server: AuthorizationServerMetadata,
    ) -> str:
        credentials = await self.resource_client.get_client_credentials(authorization_server)

        def grant(credentials: ClientCredentials) -> Dict[str, str]:
            return {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": credentials.redirect_uri,
                "code_verifier": pkce_values.code_verifier,
            }

        response = await self._token_request(authorization_server, credentials, grant(credentials))
        if response.status in (401, 403):
            logger.info(
                "Bad response status exchanging code for token: %s. "
                "Could be due to bad client credentials - trying to re-register",
                response.status,
            )
            credentials = await self.resource_client.register_client(authorization_server)
            response = await self._token_request(
                authorization_server, credentials, grant(credentials)
            )

        token = self._parse_token_response(response, pkce_values.resource_url)
        await self.store.save_access_token(
            self.user_id, trim_to_path(pkce_values.url), token
        )
        return token.access_token

    async def try_refresh_token(self, url: str) -> Optional[AccessToken]:
        url = trim_to_path(url)
        token = await self.get_access_token(url)
        if token is None:
            logger.info("No token found for %s, cannot refresh", url)
            return None
        if not token.refresh_token:
            logger.info("No refresh token found for %s, cannot refresh", url)
            return None

        authorization_server = await self.resource_client.get_authorization_server(
            token.resource_url
        )
        credentials = await self.resource_client.get_client_credentials(authorization_server)
        response = await self._token_request(
            authorization_server,
            credentials,
            {"grant_type": "refresh_token", "refresh_token": token.refresh_token},
        )

        refreshed = self._parse_token_response(
            response, token.resource_url, previous_refresh_token=token.refresh_token
        )
        await self.store.save_access_token(self.user_id, url, refreshed)
        logger.info("Refreshed access token for %s", url)
        return refreshed
