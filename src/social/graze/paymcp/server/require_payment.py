import logging
from typing import Awaitable, Callable, Optional

from social.graze.paymcp.common.errors import ConfigurationError, PaymentRequestError
from social.graze.paymcp.common.types import Charge
from social.graze.paymcp.server.charge import Amount, to_decimal
from social.graze.paymcp.server.context import (
    paymcp_config,
    paymcp_resource,
    paymcp_user,
)

logger = logging.getLogger(__name__)

GetExistingPaymentId = Callable[[], Awaitable[Optional[str]]]


async def require_payment(
    price: Amount, get_existing_payment_id: Optional[GetExistingPaymentId] = None
) -> None:
    """
    Charge the current request's user, or demand payment.

    Call from a handler running behind paymcp_middleware. Returns when the charge succeeds.
    Otherwise raises PaymentRequestError for an existing payment request (when
    get_existing_payment_id returns one) or a newly created one; the middleware renders it as a
    payment-required error to the client.

    Raises:
        ConfigurationError: Called outside a request handled by paymcp_middleware, or for a
            request without an authenticated user
        PaymentRequestError: The user must pay before the operation proceeds
    """
    config = paymcp_config()
    if config is None:
        raise ConfigurationError("No config found")
    user = paymcp_user()
    if not user:
        logger.error("No user found")
        raise ConfigurationError("No user found")

    charge = Charge(
        amount=to_decimal(price),
        currency=config.currency,
        network=config.network,
        destination=config.destination,
        source=user,
    )

    logger.debug(
        "Charging amount %s, destination %s, source %s",
        charge.amount,
        charge.destination,
        charge.source,
    )
    charge_response = await config.payment_server.charge(charge)
    if charge_response.success:
        logger.info("Charged %s for source %s", charge.amount, charge.source)
        return

    if get_existing_payment_id is not None:
        existing_payment_id = await get_existing_payment_id()
        if existing_payment_id:
            logger.info("Found existing payment ID %s", existing_payment_id)
            raise PaymentRequestError(config.server, existing_payment_id)

    payment_request_id = await config.payment_server.create_payment_request(
        charge, paymcp_resource()
    )
    logger.info("Created payment request %s", payment_request_id)
    raise PaymentRequestError(config.server, payment_request_id)
