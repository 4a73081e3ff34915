"""Authentication: token validation, scope checks, and OAuth login."""

from __future__ import annotations

from .provider import (
    REQUIRED_SCOPES,
    AuthError,
    GitHubAuthProvider,
    GitHubOAuthFlow,
    MissingScopeError,
    OAuthExchangeError,
    OAuthStateError,
    TokenValidation,
    missing_scopes,
    require_scopes,
)
from .state import InMemoryPendingAuthStore, PendingAuth, PendingAuthStore

__all__ = [
    "REQUIRED_SCOPES",
    "AuthError",
    "GitHubAuthProvider",
    "GitHubOAuthFlow",
    "InMemoryPendingAuthStore",
    "MissingScopeError",
    "OAuthExchangeError",
    "OAuthStateError",
    "PendingAuth",
    "PendingAuthStore",
    "TokenValidation",
    "missing_scopes",
    "require_scopes",
]
