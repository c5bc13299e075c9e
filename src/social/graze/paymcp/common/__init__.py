"""
Shared PayMcp Building Blocks

Key Components:
- types.py: Pydantic models for credentials, tokens, metadata documents and payment requests
- errors.py: Exception hierarchy and the payment-required JSON-RPC error factory
- http.py: Buffered response type and the fetch contract used by every HTTP caller
- mcp_json.py: JSON-RPC message parsing and payment request extraction
- jwt.py: Ed25519 signed tokens for authorization and payment finalization
- oauth_resource.py: Discovery, dynamic client registration and token introspection
- log.py: Logging configuration
"""
