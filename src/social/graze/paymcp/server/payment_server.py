"""
Payment Server Client

The PayMcp authorization server also settles charges. A protected MCP server charges a user
through it, and when the user's balance does not cover the charge it creates a payment request
for the user to pay.

Requests authenticate with the client secret this server registered with the authorization
server when it first introspected a token.
"""

import logging
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urljoin

from social.graze.paymcp.common.errors import PaymentError
from social.graze.paymcp.common.http import Fetch, FetchResponse
from social.graze.paymcp.common.types import Charge, ChargeResponse
from social.graze.paymcp.store.base import CredentialStore

logger = logging.getLogger(__name__)


class PaymentServer(Protocol):
    async def charge(self, charge: Charge) -> ChargeResponse: ...

    async def create_payment_request(
        self, charge: Charge, resource: Optional[str] = None
    ) -> str: ...


def _error_detail(response: FetchResponse) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text()
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text()


class PayMcpPaymentServer:
    def __init__(self, server: str, store: CredentialStore, fetch: Fetch):
        self.server = server
        self.store = store
        self.fetch = fetch

    async def _make_request(
        self, method: str, path: str, body: Dict[str, Any]
    ) -> FetchResponse:
        url = urljoin(self.server, path)
        credentials = await self.store.get_client_credentials(self.server)
        if credentials is None:
            raise PaymentError("No client credentials found")
        return await self.fetch(
            url,
            method,
            headers={
                "Authorization": f"Bearer {credentials.client_secret}",
                "Content-Type": "application/json",
            },
            json=body,
        )

    async def charge(self, charge: Charge) -> ChargeResponse:
        response = await self._make_request(
            "POST", "/charge", charge.model_dump(mode="json")
        )
        if not response.ok:
            detail = _error_detail(response)
            logger.error("Failed to charge: %s", detail)
            raise PaymentError(f"Failed to charge: {detail}")
        return ChargeResponse.model_validate(response.json())

    async def create_payment_request(
        self, charge: Charge, resource: Optional[str] = None
    ) -> str:
        body = charge.model_dump(mode="json")
        if resource is not None:
            body["resource"] = resource
        response = await self._make_request("POST", "/payment-request", body)
        if not response.ok:
            raise PaymentError(
                f"Failed to create payment request: {_error_detail(response)}"
            )
        payment_request_id = response.json().get("id")
        if not payment_request_id:
            raise PaymentError(f"Failed to create payment request: {response.text()}")
        return str(payment_request_id)
