from decimal import Decimal
from typing import Awaitable, Callable, Protocol

from pydantic import BaseModel


class ProspectivePayment(BaseModel):
    """A payment the client is about to make, handed to the approval callback."""

    account_id: str
    resource_url: str
    resource_name: str
    network: str
    currency: str
    amount: Decimal
    iss: str


ApprovePayment = Callable[[ProspectivePayment], Awaitable[bool]]


class PaymentMaker(Protocol):
    """Performs transfers on one network and signs PayMcp tokens for its account."""

    async def make_payment(
        self, amount: Decimal, currency: str, receiver: str, memo: str
    ) -> str:
        """Transfer amount to receiver and return the payment (transaction) id."""
        ...

    async def generate_jwt(self, payment_request_id: str, code_challenge: str) -> str:
        ...


async def approve_small_payments(payment: ProspectivePayment) -> bool:
    """Default approval policy: approve payments of at most one unit of currency."""
    return payment.amount <= Decimal(1)
