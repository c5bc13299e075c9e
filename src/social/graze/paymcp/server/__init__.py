"""
PayMcp Server

This package implements the server half of PayMcp for aiohttp applications: it gates and charges
for MCP operations with the same OAuth and payment protocol PayMcp clients speak.

Key Components:
- app.py: Application factory wiring settings, stores, metrics and middlewares
- config.py: Settings, the immutable PayMcpConfig and typed AppKeys
- middleware.py: The per-request pipeline plus statsd and sentry middlewares
- operation.py: JSON-RPC request parsing and operation naming (method[:tool])
- charge.py: Price variants and per-operation charge resolution
- token.py: Bearer token extraction and introspection with the charge attached
- challenge.py: WWW-Authenticate challenge responses for failed token checks
- metadata.py: Protected resource and authorization server metadata documents
- context.py: Request-scoped context (config, resource, authenticated user)
- payment_server.py: Client for the PayMcp payment server's charge API
- require_payment.py: In-handler charging that raises a payment request when funds run out
- metrics.py: Metrics client abstraction
- cli.py: Development MCP server entry point

Request pipeline:
1. Serve metadata documents for well-known paths
2. Parse JSON-RPC requests; anything else goes straight to the handler
3. Resolve the operation and its price
4. Introspect the bearer token with the charge attached
5. Answer failures with a challenge, otherwise run the handler inside the PayMcp context
"""
