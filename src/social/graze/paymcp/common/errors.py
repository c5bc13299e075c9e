"""Exceptions raised by PayMcp flows.

AuthenticationRequired and PaymentRequiredError are control-flow signals: PayMcpFetcher catches
them, satisfies the challenge and retries once. Everything else is fatal to the call that raised it.
"""

import hashlib
from typing import Any, Dict, Final, Optional
from urllib.parse import urlparse

from social.graze.paymcp.common.http import trim_to_path

PAYMENT_REQUIRED_ERROR_CODE: Final = -30402

# Clients match on this exact text to recognise a payment-required tool error. Never change it.
PAYMENT_REQUIRED_PREAMBLE: Final = "Payment via PayMcp is required. "

ELICITATION_REQUIRED_ERROR_CODE: Final = -32604


class PayMcpError(Exception):
    """Base class for PayMcp failures."""


class DiscoveryError(PayMcpError):
    """No authorization server could be discovered for a resource."""


class RegistrationError(PayMcpError):
    """Dynamic client registration was rejected."""


class TokenExchangeError(PayMcpError):
    """The token endpoint rejected an authorization code or refresh token grant."""


class IntrospectionError(PayMcpError):
    """The introspection endpoint answered with something other than 200."""


class AuthorizationResponseError(PayMcpError):
    """The authorization callback was malformed or carried an error."""


class PaymentError(PayMcpError):
    """A payment request could not be validated or finalized."""


class ConfigurationError(PayMcpError):
    """The client or server was configured in an unsupported way."""


class AuthenticationRequired(PayMcpError):
    """
    Raised when a call needs OAuth authentication.

    Attributes:
        url: The called URL, trimmed to origin and path
        resource_server_url: The protected resource the challenge named
        idempotency_key: Stable hash of url, resource server url and the token that was used,
            letting callers de-duplicate repeated identical challenges
    """

    def __init__(self, url: str, resource_server_url: str, idempotency_key: str):
        super().__init__(
            f"OAuth authentication required. Resource server url: {resource_server_url}"
        )
        self.url = url
        self.resource_server_url = resource_server_url
        self.idempotency_key = idempotency_key

    @staticmethod
    def idempotency_key_for(
        url: str, resource_server_url: str, token: Optional[str] = None
    ) -> str:
        base_url = trim_to_path(url)
        # An absent token hashes as "undefined" so keys match across PayMcp implementations.
        # A real token whose value is literally "undefined" therefore shares the no-token key.
        source = f"{base_url}|{resource_server_url}|{token if token is not None else 'undefined'}"
        return hashlib.sha256(source.encode("utf-8")).hexdigest()

    @staticmethod
    def create(
        url: str, resource_server_url: str, token: Optional[str] = None
    ) -> "AuthenticationRequired":
        return AuthenticationRequired(
            url,
            resource_server_url,
            AuthenticationRequired.idempotency_key_for(url, resource_server_url, token),
        )


class PaymentRequiredError(PayMcpError):
    """
    JSON-RPC level payment-required error.

    Raised client side when a response embeds a payment request, and rendered server side as the
    error member of a JSON-RPC response.
    """

    def __init__(self, code: int, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data or {}

    @property
    def payment_request_id(self) -> Optional[str]:
        return self.data.get("paymentRequestId")

    @property
    def payment_request_url(self) -> Optional[str]:
        return self.data.get("paymentRequestUrl")

    def to_jsonrpc_error(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}


def payment_required_error(server: str, payment_request_id: str) -> PaymentRequiredError:
    """Build the payment-required error for a payment request hosted by server.

    The server URL is trimmed to its origin before the payment request path is appended.
    """
    parsed = urlparse(server)
    origin = f"{parsed.scheme}://{parsed.netloc}"
    payment_request_url = f"{origin}/payment-request/{payment_request_id}"
    data = {
        "paymentRequestId": payment_request_id,
        "paymentRequestUrl": payment_request_url,
    }
    return PaymentRequiredError(
        PAYMENT_REQUIRED_ERROR_CODE,
        f"{PAYMENT_REQUIRED_PREAMBLE} Please pay at: {payment_request_url}",
        data,
    )


class PaymentRequestError(PayMcpError):
    """
    Raised by require_payment() when the caller must pay before the operation can proceed.

    The middleware renders it as a payment-required JSON-RPC error for the calling client.
    """

    def __init__(self, server: str, payment_request_id: str):
        url = f"{server.rstrip('/')}/payment-request/{payment_request_id}"
        super().__init__(f"Payment is required. Please pay at: {url}")
        self.server = server
        self.payment_request_id = payment_request_id
        self.payment_request_url = url

    @property
    def elicitation(self) -> Dict[str, str]:
        return {
            "paymentRequestId": self.payment_request_id,
            "paymentRequestUrl": self.payment_request_url,
        }

    def to_payment_required_error(self) -> PaymentRequiredError:
        return payment_required_error(self.server, self.payment_request_id)
