"""
Access token injection and refresh for HTTPX.

TokenRefreshAuth attaches the stored access token to every outgoing request.
When a request fails with a refreshable error it renews the token, sharing a
single refresh between every request that fails while the refresh is running,
and sends the request once more with the new token.
"""

import inspect
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from dataclasses import dataclass
from enum import Enum, auto

import anyio
import httpx

from token_refresh.shared.errors import EmptyTokenError, RefreshCancelledError
from token_refresh.shared.settings import DEFAULT_HEADER_NAME, DEFAULT_HEADER_SCHEME, DEFAULT_RETRY_FLAG_KEY
from token_refresh.shared.store import TokenStore

logger = logging.getLogger(__name__)

RefreshRequest = Callable[[httpx.AsyncClient], Awaitable[str]]
RefreshPredicate = Callable[[httpx.HTTPStatusError], bool]
RefreshFailureHook = Callable[[Exception], Awaitable[None] | None]


def is_unauthorized(error: httpx.HTTPStatusError) -> bool:
    """Default refresh predicate: the server answered 401."""
    return error.response.status_code == 401


class FailureOutcome(Enum):
    """How a failed request was resolved."""

    REJECTED = auto()
    RETRIED_STALE = auto()
    JOINED_REFRESH = auto()
    REFRESHED = auto()


@dataclass
class RequestContext:
    """Per-request state, kept in request.extensions under the retry flag key.

    Passing RequestContext(retried=True) as the extension value opts a request
    out of refreshing.
    """

    dispatched_header: str | None = None
    retried: bool = False
    outcome: FailureOutcome | None = None


class PendingRefresh:
    """A refresh in progress. Every waiter receives the same token or the same error."""

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._token: str | None = None
        self._error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def set_result(self, token: str) -> None:
        self._token = token
        self._event.set()

    def set_error(self, error: BaseException) -> None:
        self._error = error
        self._event.set()

    async def wait(self) -> str:
        await self._event.wait()
        if self._error is not None:
            raise self._error
        assert self._token is not None
        return self._token


class TokenRefreshAuth(httpx.Auth):
    """
    Bearer token authentication for httpx.AsyncClient with single-flight refresh.

    A failed response goes through these checks, in order:
    the predicate must accept it, the request must not have been retried yet,
    an in-flight refresh is joined, a request sent with an outdated token is
    retried with the current one, and only then is a new refresh started.
    """

    requires_request_body = True
    requires_response_body = True

    def __init__(
        self,
        store: TokenStore,
        refresh_request: RefreshRequest,
        refresh_client: httpx.AsyncClient,
        should_refresh: RefreshPredicate = is_unauthorized,
        on_refresh_failure: RefreshFailureHook | None = None,
        header_name: str = DEFAULT_HEADER_NAME,
        header_scheme: str = DEFAULT_HEADER_SCHEME,
        retry_flag_key: str = DEFAULT_RETRY_FLAG_KEY,
        inject_token_on_request: bool = True,
        raise_for_status: bool = True,
    ):
        self.store = store
        self.refresh_request = refresh_request
        self.refresh_client = refresh_client
        self.should_refresh = should_refresh
        self.on_refresh_failure = on_refresh_failure
        self.header_name = header_name
        self.header_scheme = header_scheme
        self.retry_flag_key = retry_flag_key
        self.inject_token_on_request = inject_token_on_request
        self.raise_for_status = raise_for_status

        self._pending_refresh: PendingRefresh | None = None

    @property
    def pending_refresh(self) -> PendingRefresh | None:
        """The refresh currently in progress, if any."""
        return self._pending_refresh

    def render_header(self, token: str | None) -> str | None:
        if not token:
            return None
        return f"{self.header_scheme}{token}"

    def inject_token(self, request: httpx.Request) -> None:
        """Attach the currently stored token to the request."""
        if not self.inject_token_on_request or not self.header_name:
            return
        header_value = self.render_header(self.store.get_access_token())
        if header_value is not None:
            request.headers[self.header_name] = header_value

    def request_context(self, request: httpx.Request) -> RequestContext:
        context = request.extensions.get(self.retry_flag_key)
        if not isinstance(context, RequestContext):
            context = RequestContext()
            request.extensions[self.retry_flag_key] = context
        return context

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("TokenRefreshAuth only supports httpx.AsyncClient")

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        """HTTPX auth flow: inject, send, and retry at most once after a refreshable failure."""
        context = self.request_context(request)

        while True:
            self.inject_token(request)
            context.dispatched_header = request.headers.get(self.header_name) if self.header_name else None

            response = yield request

            if not response.is_error:
                return

            error = httpx.HTTPStatusError(
                f"{response.status_code} {response.reason_phrase} for url '{request.url}'",
                request=request,
                response=response,
            )
            token = await self.handle_failure(error, context)
            if token is None:
                if self.raise_for_status:
                    raise error
                return

            header_value = self.render_header(token)
            if self.header_name and header_value is not None:
                request.headers[self.header_name] = header_value

    async def handle_failure(self, error: httpx.HTTPStatusError, context: RequestContext) -> str | None:
        """
        Decide how a failed request proceeds.

        Returns the token to resend the request with, or None when the failure
        is final. Raises the refresh error when the refresh this request relies
        on fails.
        """
        if not self.should_refresh(error):
            context.outcome = FailureOutcome.REJECTED
            return None

        if context.retried:
            logger.debug(f"Request to {error.request.url} already retried, giving up")
            context.outcome = FailureOutcome.REJECTED
            return None
        context.retried = True

        # No await may happen between this check and storing a new PendingRefresh.
        pending = self._pending_refresh
        if pending is not None:
            logger.debug(f"Waiting for in-flight token refresh for {error.request.url}")
            context.outcome = FailureOutcome.JOINED_REFRESH
            return await pending.wait()

        current_token = self.store.get_access_token() or None
        dispatched_token = self._token_from_header(context.dispatched_header)
        if dispatched_token and current_token and dispatched_token != current_token:
            logger.debug(f"Request to {error.request.url} used an outdated token, retrying with the current one")
            context.outcome = FailureOutcome.RETRIED_STALE
            return current_token

        pending = PendingRefresh()
        self._pending_refresh = pending
        context.outcome = FailureOutcome.REFRESHED
        return await self._run_refresh(pending)

    def _token_from_header(self, header_value: str | None) -> str | None:
        if not header_value or not header_value.startswith(self.header_scheme):
            return None
        return header_value[len(self.header_scheme) :] or None

    async def _run_refresh(self, pending: PendingRefresh) -> str:
        """Drive the refresh and settle the pending slot for everyone waiting on it."""
        try:
            token = await self._refresh()
        except Exception as exc:
            pending.set_error(exc)
            raise
        except BaseException:
            pending.set_error(RefreshCancelledError("Token refresh was cancelled"))
            raise
        else:
            pending.set_result(token)
            return token
        finally:
            self._pending_refresh = None

    async def _refresh(self) -> str:
        logger.debug("Refreshing access token")
        try:
            token = await self.refresh_request(self.refresh_client)
            if not token:
                raise EmptyTokenError("Refresh request returned no access token")
        except Exception as exc:
            logger.warning(f"Token refresh failed: {exc!r}")
            try:
                await self._notify_refresh_failure(exc)
            finally:
                self.store.set_access_token(None)
            raise

        self.store.set_access_token(token)
        logger.debug("Token refresh successful")
        return token

    async def _notify_refresh_failure(self, error: Exception) -> None:
        if self.on_refresh_failure is None:
            return
        result = self.on_refresh_failure(error)
        if inspect.isawaitable(result):
            await result
