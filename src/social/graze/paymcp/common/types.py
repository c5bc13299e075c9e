"""Data models shared by the PayMcp client and server.

Wire documents (OAuth metadata, payment requests) keep their on-the-wire field names through
aliases; stored records use the snake_case field names.
"""

from datetime import datetime
from decimal import Decimal
from typing import Final, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_AUTHORIZATION_SERVER: Final = "https://auth.paymcp.com"

Currency = Literal["USDC"]
Network = Literal["solana"]


class ClientCredentials(BaseModel):
    """Credentials of a dynamically registered OAuth client.

    A public client has an empty client_secret.
    """

    client_id: str
    client_secret: str = ""
    redirect_uri: str


class PKCEValues(BaseModel):
    """State of an in-flight authorization attempt, keyed by its state parameter."""

    url: str
    code_verifier: str
    code_challenge: str
    resource_url: str


class AccessToken(BaseModel):
    """Cached bearer credential for a resource."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    resource_url: str


class TokenData(BaseModel):
    """Result of token introspection."""

    model_config = ConfigDict(extra="ignore")

    active: bool
    scope: Optional[str] = None
    sub: Optional[str] = None
    aud: Optional[Union[str, List[str]]] = None


class AuthorizationServerMetadata(BaseModel):
    """OAuth 2.0 authorization server metadata (RFC 8414)."""

    model_config = ConfigDict(extra="allow")

    issuer: str
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    registration_endpoint: Optional[str] = None
    introspection_endpoint: Optional[str] = None
    revocation_endpoint: Optional[str] = None
    response_types_supported: Optional[List[str]] = None
    grant_types_supported: Optional[List[str]] = None
    token_endpoint_auth_methods_supported: Optional[List[str]] = None
    introspection_endpoint_auth_methods_supported: Optional[List[str]] = None
    code_challenge_methods_supported: Optional[List[str]] = None
    scopes_supported: Optional[List[str]] = None


class ProtectedResourceMetadata(BaseModel):
    """OAuth 2.0 protected resource metadata (RFC 9728)."""

    model_config = ConfigDict(extra="allow")

    resource: str
    resource_name: Optional[str] = None
    authorization_servers: List[str] = Field(default_factory=list)
    bearer_methods_supported: List[str] = Field(default_factory=list)
    scopes_supported: List[str] = Field(default_factory=list)


class PaymentRequestData(BaseModel):
    """Payment request document served at {server}/payment-request/{id}."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    network: Optional[str] = None
    destination: Optional[str] = None
    resource: Optional[str] = None
    resource_name: Optional[str] = Field(default=None, alias="resourceName")
    iss: Optional[str] = None


class Charge(BaseModel):
    """A priced operation, charged from source to destination."""

    amount: Decimal
    currency: str
    network: str
    destination: str
    source: str


class ChargeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    required_payment: Optional[PaymentRequestData] = Field(
        default=None, alias="requiredPayment"
    )
