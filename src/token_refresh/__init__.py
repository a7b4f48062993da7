from token_refresh.client import (
    FailureOutcome,
    RequestContext,
    TokenClient,
    TokenRefreshAuth,
    create_token_client,
    is_unauthorized,
)
from token_refresh.shared.errors import EmptyTokenError, RefreshCancelledError, TokenRefreshError
from token_refresh.shared.settings import TokenClientSettings
from token_refresh.shared.store import CallbackTokenStore, InMemoryTokenStore, TokenStore

__all__ = [
    "CallbackTokenStore",
    "EmptyTokenError",
    "FailureOutcome",
    "InMemoryTokenStore",
    "RefreshCancelledError",
    "RequestContext",
    "TokenClient",
    "TokenClientSettings",
    "TokenRefreshAuth",
    "TokenRefreshError",
    "TokenStore",
    "create_token_client",
    "is_unauthorized",
]
