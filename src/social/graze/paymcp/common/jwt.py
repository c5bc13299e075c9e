"""
Signed tokens for PayMcp authorization and payment finalization.

A payment maker signs a short-lived EdDSA (Ed25519) JWT for its account. The authorization server
accepts it in two places:
- On the authorization endpoint, binding the PKCE code_challenge of the pending authorization
- On PUT /payment-request/{id}, binding the payment request being finalized
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Final, List, Optional, Union

from jwcrypto import jwk, jwt
from ulid import ULID

ISSUER: Final = "paymcp.com"
AUDIENCE: Final = "https://api.paymcp.com"
TOKEN_LIFETIME_SECONDS: Final = 120


def generate_signing_key() -> jwk.JWK:
    """Generate an Ed25519 signing key with a ULID key identifier."""
    return jwk.JWK.generate(kty="OKP", crv="Ed25519", kid=str(ULID()))


def create_token_claims(
    subject: str,
    payment_request_id: str = "",
    code_challenge: str = "",
    payment_ids: Optional[List[str]] = None,
    issued_at: Optional[datetime] = None,
    lifetime_seconds: int = TOKEN_LIFETIME_SECONDS,
) -> Dict[str, Any]:
    if issued_at is None:
        issued_at = datetime.now(timezone.utc)
    iat = int(issued_at.timestamp())

    claims: Dict[str, Any] = {
        "sub": subject,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "iat": iat,
        "exp": iat + lifetime_seconds,
    }
    if payment_request_id:
        claims["payment_request_id"] = payment_request_id
    if payment_ids:
        claims["paymentIds"] = list(payment_ids)
    if code_challenge:
        claims["code_challenge"] = code_challenge
    return claims


def sign_token(
    key: jwk.JWK,
    subject: str,
    payment_request_id: str = "",
    code_challenge: str = "",
    payment_ids: Optional[List[str]] = None,
    issued_at: Optional[datetime] = None,
    lifetime_seconds: int = TOKEN_LIFETIME_SECONDS,
) -> str:
    claims = create_token_claims(
        subject,
        payment_request_id=payment_request_id,
        code_challenge=code_challenge,
        payment_ids=payment_ids,
        issued_at=issued_at,
        lifetime_seconds=lifetime_seconds,
    )
    token = jwt.JWT(header={"alg": "EdDSA", "typ": "JWT"}, claims=claims)
    token.make_signed_token(key)
    return token.serialize()


def decode_token(
    serialized: str, key: Union[jwk.JWK, jwk.JWKSet]
) -> Dict[str, Any]:
    """Verify the signature (and expiry) of a signed token and return its claims."""
    validated = jwt.JWT(jwt=serialized, key=key, algs=["EdDSA"])
    return json.loads(validated.claims)
