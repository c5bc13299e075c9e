"""
Payment-aware Fetch

PayMcpFetcher composes OAuthClient with the PayMcp payment challenge overlay.

Flow of fetch():
1. Call OAuthClient.fetch and inspect the response body for an embedded payment request
   (a payment-required or url elicitation JSON-RPC error, or a tool error carrying the payment
   preamble). One found becomes a PaymentRequiredError.
2. AuthenticationRequired: with one payment maker, run the authorization code flow, with the
   payment maker signing the code_challenge in place of a user at a browser. With none, reuse
   the token this process received from its own caller (pass-through chaining).
3. PaymentRequiredError: if the payment request is hosted by an allowed authorization server
   and approved, pay through the payment maker for its network and PUT a signed token to
   finalize it. Anything else passes the response through untouched.
4. Retry the original call once and inspect the retried response again.
"""

from decimal import InvalidOperation
import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import parse_qsl, urlparse

from pydantic import ValidationError

from social.graze.paymcp.client.oauth import OAuthClient
from social.graze.paymcp.client.types import (
    ApprovePayment,
    PaymentMaker,
    ProspectivePayment,
    approve_small_payments,
)
from social.graze.paymcp.common.errors import (
    AuthenticationRequired,
    AuthorizationResponseError,
    ConfigurationError,
    PAYMENT_REQUIRED_ERROR_CODE,
    PaymentError,
    PaymentRequiredError,
    payment_required_error,
)
from social.graze.paymcp.common.http import Fetch, FetchResponse, trim_to_path, url_origin
from social.graze.paymcp.common.mcp_json import (
    PaymentRequestRef,
    parse_mcp_messages,
    parse_payment_requests,
)
from social.graze.paymcp.common.types import (
    DEFAULT_AUTHORIZATION_SERVER,
    AccessToken,
    PaymentRequestData,
)
from social.graze.paymcp.store.base import CredentialStore

logger = logging.getLogger(__name__)

# Never used for a browser redirect: the client completes the authorization request itself.
UNUSED_CALLBACK_URL = "http://localhost:3000/unused-dummy-paymcp-callback"


class PayMcpFetcher:
    def __init__(
        self,
        user_id: str,
        store: CredentialStore,
        payment_makers: Mapping[str, PaymentMaker],
        fetch: Fetch,
        side_channel_fetch: Optional[Fetch] = None,
        strict: bool = True,
        allow_insecure_requests: bool = False,
        allowed_authorization_servers: Optional[List[str]] = None,
        approve_payment: ApprovePayment = approve_small_payments,
    ):
        self.user_id = user_id
        self.store = store
        self.payment_makers: Dict[str, PaymentMaker] = dict(payment_makers)
        self.side_channel_fetch = side_channel_fetch or fetch
        self.allowed_authorization_servers = [
            url_origin(server)
            for server in (allowed_authorization_servers or [DEFAULT_AUTHORIZATION_SERVER])
        ]
        self.approve_payment = approve_payment
        self.oauth_client = OAuthClient(
            user_id=user_id,
            store=store,
            callback_url=UNUSED_CALLBACK_URL,
            is_public=False,
            fetch=fetch,
            side_channel_fetch=self.side_channel_fetch,
            strict=strict,
            allow_insecure_requests=allow_insecure_requests,
        )

    def is_allowed_auth_server(self, url: str) -> bool:
        return url_origin(url) in self.allowed_authorization_servers

    async def handle_payment_request_error(self, error: PaymentRequiredError) -> bool:
        """Pay for the payment request error names. Returns False when it is left unpaid."""
        if error.code != PAYMENT_REQUIRED_ERROR_CODE:
            raise PaymentError(
                f"PayMCP: expected payment required error (code {PAYMENT_REQUIRED_ERROR_CODE}); got code {error.code}"
            )
        payment_request_url = error.payment_request_url
        if not payment_request_url:
            raise PaymentError(
                "PayMCP: payment requirement error does not contain a payment requirement URL"
            )
        payment_request_id = error.payment_request_id
        if not payment_request_id:
            raise PaymentError(
                "PayMCP: payment requirement error does not contain a payment request ID"
            )
        if not self.is_allowed_auth_server(payment_request_url):
            logger.info(
                "PayMCP: payment requirement from %s is not allowed on this client",
                payment_request_url,
            )
            return False

        pr_response = await self.side_channel_fetch(
            payment_request_url, "GET", headers={"Accept": "application/json"}
        )
        if not pr_response.ok:
            raise PaymentError(
                f"PayMCP: GET {payment_request_url} failed: {pr_response.status} {pr_response.reason}"
            )
        payment_request = self._parse_payment_request(pr_response.json())

        network = payment_request.network
        if not network:
            raise PaymentError("Payment network not provided")
        destination = payment_request.destination
        if not destination:
            raise PaymentError("destination not provided")
        amount = payment_request.amount
        if amount is None:
            raise PaymentError("amount not provided")
        if not amount.is_finite() or amount <= 0:
            raise PaymentError(f"Invalid amount {amount}")
        currency = payment_request.currency
        if not currency:
            raise PaymentError("Currency not provided")

        payment_maker = self.payment_makers.get(network)
        if payment_maker is None:
            logger.info(
                "PayMCP: payment network %s not set up for this client (available networks: %s)",
                network,
                ", ".join(self.payment_makers.keys()),
            )
            return False

        prospective_payment = ProspectivePayment(
            account_id=self.user_id,
            resource_url=payment_request.resource or "",
            resource_name=payment_request.resource_name or "",
            network=network,
            currency=currency,
            amount=amount,
            iss=payment_request.iss or "",
        )
        if not await self.approve_payment(prospective_payment):
            logger.info("PayMCP: payment request denied by callback function")
            return False

        payment_id = await payment_maker.make_payment(
            amount, currency, destination, payment_request.iss or ""
        )
        logger.info(
            "PayMCP: made payment of %s %s on %s: %s", amount, currency, network, payment_id
        )

        token = await payment_maker.generate_jwt(payment_request_id, "")
        response = await self.side_channel_fetch(
            payment_request_url,
            "PUT",
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            json={"transactionId": payment_id, "network": network},
        )
        logger.debug(
            "PayMCP: payment PUT to %s returned status %s", payment_request_url, response.status
        )
        if not response.ok:
            msg = f"PayMCP: payment to {payment_request_url} failed: HTTP {response.status} {response.text()}"
            logger.info(msg)
            raise PaymentError(msg)

        return True

    @staticmethod
    def _parse_payment_request(body: Any) -> PaymentRequestData:
        try:
            return PaymentRequestData.model_validate(body)
        except (ValidationError, InvalidOperation) as e:
            raise PaymentError(f"Invalid payment request: {e}") from e

    async def make_auth_request_with_payment_maker(
        self, error: AuthenticationRequired, payment_maker: PaymentMaker
    ) -> str:
        """Obtain the authorization redirect (carrying the code) using a signed token."""
        authorization_url = await self.oauth_client.make_authorization_url(
            error.url, error.resource_server_url
        )

        code_challenge = dict(parse_qsl(urlparse(authorization_url).query)).get(
            "code_challenge"
        )
        if not code_challenge:
            raise AuthorizationResponseError("Code challenge not provided")

        if not self.is_allowed_auth_server(authorization_url):
            raise ConfigurationError(
                f"PayMCP: authorization server {error.url} is requesting to use {authorization_url} "
                f"which is not in the allowed list of authorization servers "
                f"{', '.join(self.allowed_authorization_servers)}"
            )

        auth_token = await payment_maker.generate_jwt("", code_challenge)

        # redirect=false asks PayMcp servers to return the redirect in a JSON body, for runtimes
        # whose fetch cannot stop at a 3xx.
        response = await self.side_channel_fetch(
            authorization_url + "&redirect=false",
            "GET",
            headers={"Authorization": f"Bearer {auth_token}"},
            allow_redirects=False,
        )

        if 300 <= response.status < 400:
            location = response.headers.get("Location")
            if location:
                logger.info("PayMCP: got redirect authorization code response - redirect to %s", location)
                return location
            logger.info(
                "PayMCP: got redirect authorization code response, but no redirect URL in Location header"
            )

        if response.ok:
            redirect_url = response.json().get("redirect")
            if redirect_url:
                logger.info(
                    "PayMCP: got response.ok authorization code response - redirect to %s", redirect_url
                )
                return redirect_url
            logger.info(
                "PayMCP: got authorization code response with response.ok, but no redirect URL in body"
            )

        raise AuthorizationResponseError(
            f"Expected redirect response from authorization URL, got {response.status}"
        )

    async def auth_to_service(self, error: AuthenticationRequired) -> None:
        if len(self.payment_makers) > 1:
            raise ConfigurationError(
                "PayMCP: multiple payment makers found - cannot determine which one to use for auth"
            )

        if self.payment_makers:
            payment_maker = next(iter(self.payment_makers.values()))
            redirect_url = await self.make_auth_request_with_payment_maker(error, payment_maker)
            await self.oauth_client.handle_callback(redirect_url)
            return

        # Pass-through: the server middleware saved our caller's token under the "" resource.
        existing_token = await self.store.get_access_token(self.user_id, "")
        if existing_token is None:
            logger.info(
                "PayMCP: no token found for the current server - we can't exchange a token if we don't have one"
            )
            raise error
        new_token = self.exchange_token(existing_token, error.resource_server_url)
        # Keyed like the full OAuth flow, by the called URL, so the retry finds it.
        await self.store.save_access_token(self.user_id, trim_to_path(error.url), new_token)

    @staticmethod
    def exchange_token(token: AccessToken, new_resource_url: str) -> AccessToken:
        # TODO: Use OAuth token exchange (RFC 8693) instead of forwarding our own token.
        return token.model_copy(update={"resource_url": new_resource_url})

    def check_for_paymcp_response(self, response: FetchResponse) -> None:
        """Raise PaymentRequiredError if the response embeds a payment request."""
        if not response.body:
            return

        payment_requests: List[PaymentRequestRef] = []
        try:
            messages = parse_mcp_messages(response.json())
            for message in messages:
                payment_requests.extend(parse_payment_requests(message))
        except ValueError as e:
            logger.error("PayMCP: error checking for payment requirements in MCP response: %s", e)
            logger.debug(response.text())

        if len(payment_requests) > 1:
            raise PaymentError(
                "PayMCP: multiple payment requirements found in MCP response. "
                "The client does not support multiple payment requirements. "
                + ", ".join(pr.url for pr in payment_requests)
            )
        for pr in payment_requests:
            logger.info(
                "PayMCP: payment requirement found in MCP response - %s - throwing payment required error",
                pr.url,
            )
            raise payment_required_error(pr.url, pr.id)

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Any = None,
        json: Any = None,
    ) -> FetchResponse:
        response: Optional[FetchResponse] = None
        try:
            response = await self.oauth_client.fetch(
                url, method, headers=headers, data=data, json=json
            )
            self.check_for_paymcp_response(response)
            return response
        except AuthenticationRequired as error:
            logger.info(
                "OAuth authentication required - PayMCP client starting oauth flow for resource metadata %s",
                error.resource_server_url,
            )
            await self.auth_to_service(error)

            response = await self.oauth_client.fetch(
                url, method, headers=headers, data=data, json=json
            )
            self.check_for_paymcp_response(response)
            return response
        except PaymentRequiredError as error:
            if await self.handle_payment_request_error(error):
                response = await self.oauth_client.fetch(
                    url, method, headers=headers, data=data, json=json
                )
                self.check_for_paymcp_response(response)
            else:
                logger.info("PayMCP: payment request was not completed successfully")
            if response is None:
                raise PaymentError("PayMCP: no response was generated by the fetch")
            return response
