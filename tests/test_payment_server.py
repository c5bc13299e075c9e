"""
Unit tests for social.graze.paymcp.server.payment_server
"""

from decimal import Decimal

import pytest

from social.graze.paymcp.common.errors import PaymentError
from social.graze.paymcp.common.http import FetchResponse
from social.graze.paymcp.common.types import Charge, ClientCredentials
from social.graze.paymcp.server.payment_server import PayMcpPaymentServer

AUTH = "https://auth.paymcp.com"


def charge():
    return Charge(
        amount=Decimal("0.01"),
        currency="USDC",
        network="solana",
        destination="testDestination",
        source="testUser",
    )


@pytest.fixture
def payment_server(fake_fetch, memory_store):
    return PayMcpPaymentServer(AUTH, memory_store, fake_fetch)


async def register(store):
    await store.save_client_credentials(
        AUTH,
        ClientCredentials(client_id="id", client_secret="testClientSecret", redirect_uri="x"),
    )


class TestCharge:
    """Test charging through the authorization server."""

    @pytest.mark.asyncio
    async def test_charge(self, fake_fetch, memory_store, payment_server):
        """Charges post as JSON with the client secret as bearer token."""
        await register(memory_store)
        fake_fetch.route("POST", f"{AUTH}/charge", FetchResponse.from_json(200, {"success": True}))

        response = await payment_server.charge(charge())

        assert response.success is True
        (call,) = fake_fetch.calls_to(f"{AUTH}/charge", "POST")
        assert call.headers["Authorization"] == "Bearer testClientSecret"
        assert call.json == {
            "amount": "0.01",
            "currency": "USDC",
            "network": "solana",
            "destination": "testDestination",
            "source": "testUser",
        }

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, fake_fetch, memory_store, payment_server):
        """An unsuccessful charge carries the payment it requires."""
        await register(memory_store)
        fake_fetch.route(
            "POST",
            f"{AUTH}/charge",
            FetchResponse.from_json(
                200,
                {
                    "success": False,
                    "requiredPayment": {"amount": "0.01", "currency": "USDC", "network": "solana"},
                },
            ),
        )

        response = await payment_server.charge(charge())

        assert response.success is False
        assert response.required_payment.amount == Decimal("0.01")

    @pytest.mark.asyncio
    async def test_charge_rejected(self, fake_fetch, memory_store, payment_server):
        await register(memory_store)
        fake_fetch.route(
            "POST", f"{AUTH}/charge", FetchResponse.from_json(400, {"error": "bad source"})
        )

        with pytest.raises(PaymentError, match="Failed to charge: bad source"):
            await payment_server.charge(charge())

    @pytest.mark.asyncio
    async def test_without_credentials(self, fake_fetch, payment_server):
        """The server must have registered before it can charge."""
        with pytest.raises(PaymentError, match="No client credentials found"):
            await payment_server.charge(charge())
        assert fake_fetch.calls == []


class TestCreatePaymentRequest:
    """Test payment request creation."""

    @pytest.mark.asyncio
    async def test_create(self, fake_fetch, memory_store, payment_server):
        await register(memory_store)
        fake_fetch.route(
            "POST", f"{AUTH}/payment-request", FetchResponse.from_json(201, {"id": "pr_123"})
        )

        payment_request_id = await payment_server.create_payment_request(
            charge(), "https://example.com/mcp"
        )

        assert payment_request_id == "pr_123"
        (call,) = fake_fetch.calls_to(f"{AUTH}/payment-request", "POST")
        assert call.json["resource"] == "https://example.com/mcp"
        assert call.json["amount"] == "0.01"

    @pytest.mark.asyncio
    async def test_without_resource(self, fake_fetch, memory_store, payment_server):
        await register(memory_store)
        fake_fetch.route(
            "POST", f"{AUTH}/payment-request", FetchResponse.from_json(200, {"id": 42})
        )

        assert await payment_server.create_payment_request(charge()) == "42"
        (call,) = fake_fetch.calls_to(f"{AUTH}/payment-request", "POST")
        assert "resource" not in call.json

    @pytest.mark.asyncio
    async def test_rejected(self, fake_fetch, memory_store, payment_server):
        await register(memory_store)
        fake_fetch.route(
            "POST", f"{AUTH}/payment-request", FetchResponse.from_text(500, "unavailable")
        )

        with pytest.raises(PaymentError, match="Failed to create payment request: unavailable"):
            await payment_server.create_payment_request(charge())

    @pytest.mark.asyncio
    async def test_missing_id(self, fake_fetch, memory_store, payment_server):
        await register(memory_store)
        fake_fetch.route("POST", f"{AUTH}/payment-request", FetchResponse.from_json(200, {}))

        with pytest.raises(PaymentError):
            await payment_server.create_payment_request(charge())
