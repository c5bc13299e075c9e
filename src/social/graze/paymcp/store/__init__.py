"""
Credential Stores

Every PayMcp flow persists its state through a CredentialStore, the only state shared between
requests. Implementations overwrite records wholesale and never merge them.

Key Components:
- base.py: The CredentialStore interface
- memory.py: Dictionary-backed store for tests and single-process use
- cache.py: Redis-backed store with expiring PKCE state
- database.py: SQLAlchemy-backed store

Records:
- Client credentials, keyed by authorization server issuer
- PKCE values, keyed by (user, state)
- Access tokens, keyed by (user, exact resource URL); the empty URL holds the token a server
  received from its own caller, for pass-through chaining
"""
