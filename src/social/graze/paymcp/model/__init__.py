"""
Database Models

SQLAlchemy models backing the SQL credential store.

Key Models:
- base.py: Declarative base with shared string column types
- credentials.py: Client registrations, PKCE values and access tokens

Secret columns (client secrets, access and refresh tokens) hold Fernet ciphertext when the store
is configured with an encryption key.
"""
