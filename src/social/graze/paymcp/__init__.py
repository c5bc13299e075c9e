"""
PayMcp - OAuth and Payment Challenges for MCP

This package lets an MCP client transparently satisfy OAuth 2.0 bearer-token challenges and a
payment-required challenge layered on top of OAuth, while an MCP server mirrors the same protocol
to gate and charge for operations.

Key Components:
- common: Shared types, errors, HTTP transport, JSON-RPC parsing, JWT signing and the
  resource-side OAuth client (discovery, registration, introspection)
- store: Credential stores for client registrations, PKCE state and access tokens
- model: Database models backing the SQL credential store
- client: Authenticated fetch (OAuthClient) and the payment-aware fetcher (PayMcpFetcher)
- server: aiohttp middleware that introspects tokens with a charge, serves OAuth metadata,
  and the require_payment() API for in-handler charging

Architecture Overview:
1. Client Flow:
   - A call is made through PayMcpFetcher.fetch
   - A 401 challenge triggers refresh or the full authorization code + PKCE flow, with the
     authorization request signed by the account's payment maker
   - A payment request embedded in a JSON-RPC response is paid, finalized, and the call retried

2. Server Flow:
   - Incoming JSON-RPC requests are mapped to an operation and priced
   - The bearer token is introspected with the charge attached
   - Failures are answered with a WWW-Authenticate challenge pointing at the protected
     resource metadata document
   - Handlers may call require_payment() to charge in-band

Every retry is bounded: one retry per authentication challenge and one per payment challenge.
"""
