from token_refresh.client.auth import (
    FailureOutcome,
    PendingRefresh,
    RequestContext,
    TokenRefreshAuth,
    is_unauthorized,
)
from token_refresh.client.factory import TokenClient, create_token_client

__all__ = [
    "FailureOutcome",
    "PendingRefresh",
    "RequestContext",
    "TokenClient",
    "TokenRefreshAuth",
    "create_token_client",
    "is_unauthorized",
]
