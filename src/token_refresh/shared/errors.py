class TokenRefreshError(Exception):
    """Base exception for token refresh failures."""

    pass


class EmptyTokenError(TokenRefreshError):
    """Raised when the refresh call completes without producing a token."""

    pass


class RefreshCancelledError(TokenRefreshError):
    """Delivered to waiting requests when the task driving a refresh is cancelled."""

    pass
