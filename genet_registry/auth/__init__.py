# Authentication Collaborator
# Process-wide token/user state; the editor only reads and subscribes

from genet_registry.auth.session import (
    AuthSession,
    AuthListener,
    TokenVerifier,
    User,
    UnauthenticatedError,
    create_token_verifier,
)

__all__ = [
    "AuthSession",
    "AuthListener",
    "TokenVerifier",
    "User",
    "UnauthenticatedError",
    "create_token_verifier",
]
