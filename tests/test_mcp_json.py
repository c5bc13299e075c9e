"""
Unit tests for social.graze.paymcp.common.mcp_json

Covers message classification and payment request extraction from JSON-RPC errors and tool
error results.
"""

from social.graze.paymcp.common.errors import PAYMENT_REQUIRED_PREAMBLE
from social.graze.paymcp.common.mcp_json import (
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    PaymentRequestRef,
    parse_mcp_messages,
    parse_payment_requests,
)

PR_URL = "https://auth.paymcp.com/payment-request/pr_123"


def tool_error(text: str) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "result": {"isError": True, "content": [{"type": "text", "text": text}]},
    }


class TestParseMcpMessages:
    """Test JSON-RPC message parsing."""

    def test_classifies_messages(self):
        """Requests, notifications, results and errors parse to their models."""
        messages = parse_mcp_messages(
            [
                {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "x"}},
                {"jsonrpc": "2.0", "method": "notifications/initialized"},
                {"jsonrpc": "2.0", "id": 2, "result": {}},
                {"jsonrpc": "2.0", "id": 3, "error": {"code": -32601, "message": "nope"}},
            ]
        )
        assert [type(m) for m in messages] == [
            JSONRPCRequest,
            JSONRPCNotification,
            JSONRPCResponse,
            JSONRPCError,
        ]

    def test_single_message(self):
        """A single object parses to a one element list."""
        messages = parse_mcp_messages({"jsonrpc": "2.0", "id": "a", "method": "ping"})
        assert len(messages) == 1
        assert messages[0].method == "ping"

    def test_invalid_payload_yields_nothing(self):
        """Non JSON-RPC input yields an empty list."""
        assert parse_mcp_messages({"data": "data"}) == []
        assert parse_mcp_messages("hello") == []
        assert parse_mcp_messages([{"jsonrpc": "2.0", "id": 1}]) == []


class TestParsePaymentRequests:
    """Test payment request extraction."""

    def test_payment_required_error_data(self):
        """A -30402 error yields the URL in its data."""
        (message,) = parse_mcp_messages(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "error": {
                    "code": -30402,
                    "message": "Payment required",
                    "data": {"paymentRequestId": "pr_123", "paymentRequestUrl": PR_URL},
                },
            }
        )
        assert parse_payment_requests(message) == [PaymentRequestRef(PR_URL, "pr_123")]

    def test_payment_required_error_message_fallback(self):
        """Without data the URL is taken from the message text."""
        (message,) = parse_mcp_messages(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "error": {
                    "code": -30402,
                    "message": f"{PAYMENT_REQUIRED_PREAMBLE} Please pay at: {PR_URL}",
                },
            }
        )
        assert parse_payment_requests(message) == [PaymentRequestRef(PR_URL, "pr_123")]

    def test_url_elicitation(self):
        """A -32604 error yields its url-mode elicitations only."""
        (message,) = parse_mcp_messages(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "error": {
                    "code": -32604,
                    "message": "Elicitation required",
                    "data": {
                        "elicitations": [
                            {"mode": "form", "url": "https://auth.paymcp.com/payment-request/pr_form"},
                            {"mode": "url", "url": PR_URL},
                        ]
                    },
                },
            }
        )
        assert parse_payment_requests(message) == [PaymentRequestRef(PR_URL, "pr_123")]

    def test_tool_error_with_preamble(self):
        """A tool error carrying the preamble and error code yields its URL."""
        (message,) = parse_mcp_messages(
            tool_error(f"MCP error -30402: {PAYMENT_REQUIRED_PREAMBLE} Please pay at: {PR_URL}")
        )
        assert parse_payment_requests(message) == [PaymentRequestRef(PR_URL, "pr_123")]

    def test_tool_error_without_preamble(self):
        """Tool errors that merely mention a payment URL are ignored."""
        (message,) = parse_mcp_messages(tool_error(f"Something failed -30402 {PR_URL}"))
        assert parse_payment_requests(message) == []

    def test_successful_result_ignored(self):
        """Results not flagged isError are never payment requests."""
        (message,) = parse_mcp_messages(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "result": {
                    "content": [
                        {"type": "text", "text": f"MCP error -30402: {PAYMENT_REQUIRED_PREAMBLE} {PR_URL}"}
                    ]
                },
            }
        )
        assert parse_payment_requests(message) == []

    def test_other_error_codes_ignored(self):
        """Unrelated JSON-RPC errors yield nothing."""
        (message,) = parse_mcp_messages(
            {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": PR_URL}}
        )
        assert parse_payment_requests(message) == []
