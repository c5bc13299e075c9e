from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from jwcrypto import jwk

from social.graze.paymcp.common.jwt import TOKEN_LIFETIME_SECONDS, sign_token


class JwkPaymentMaker(ABC):
    """
    Payment maker base that signs PayMcp tokens with an Ed25519 key.

    The account id is the token subject. Subclasses implement make_payment for their network.
    """

    def __init__(
        self,
        account_id: str,
        signing_key: jwk.JWK,
        token_lifetime_seconds: int = TOKEN_LIFETIME_SECONDS,
    ):
        self.account_id = account_id
        self.signing_key = signing_key
        self.token_lifetime_seconds = token_lifetime_seconds

    @abstractmethod
    async def make_payment(
        self, amount: Decimal, currency: str, receiver: str, memo: Optional[str]
    ) -> str:
        pass

    async def generate_jwt(self, payment_request_id: str, code_challenge: str) -> str:
        return sign_token(
            self.signing_key,
            self.account_id,
            payment_request_id=payment_request_id,
            code_challenge=code_challenge,
            lifetime_seconds=self.token_lifetime_seconds,
        )
