"""Authentication module.

Resolves bearer credentials (HS256 JWTs) to users for both surfaces:
- WebSocket: token supplied in the connection handshake (``?token=``).
- REST: standard ``Authorization: Bearer`` header.

Services:
    - IdentityResolver: credential -> User, or AuthError.
    - UserDirectory: users table access.
    - issue_token: mint a credential for a user id.
"""
