"""
Construction of a protected API client together with its refresh client.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import httpx

from token_refresh.client.auth import (
    RefreshFailureHook,
    RefreshPredicate,
    RefreshRequest,
    TokenRefreshAuth,
    is_unauthorized,
)
from token_refresh.shared.settings import TokenClientSettings
from token_refresh.shared.store import CallbackTokenStore, InMemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)

RefreshClientFactory = Callable[[], httpx.AsyncClient]


async def raise_on_error_status(response: httpx.Response) -> None:
    """Response hook turning 4xx/5xx responses into httpx.HTTPStatusError."""
    if response.is_error:
        await response.aread()
        response.raise_for_status()


def default_refresh_client(
    settings: TokenClientSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Default refresh client: same base URL, no token handling, raises on error statuses."""
    timeout = settings.refresh_timeout if settings.refresh_timeout is not None else settings.timeout
    return httpx.AsyncClient(
        base_url=settings.base_url,
        timeout=httpx.Timeout(timeout),
        transport=transport,
        event_hooks={"response": [raise_on_error_status]},
    )


@dataclass
class TokenClient:
    """The protected API client, the refresh client and access to the stored token."""

    client: httpx.AsyncClient
    refresh_client: httpx.AsyncClient
    auth: TokenRefreshAuth
    store: TokenStore

    def get_access_token(self) -> str | None:
        return self.store.get_access_token()

    def set_access_token(self, token: str | None) -> None:
        self.store.set_access_token(token)

    async def aclose(self) -> None:
        await self.client.aclose()
        if self.refresh_client is not self.client:
            await self.refresh_client.aclose()

    async def __aenter__(self) -> "TokenClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def _resolve_store(
    store: TokenStore | None,
    get_access_token: Callable[[], str | None] | None,
    set_access_token: Callable[[str | None], None] | None,
) -> TokenStore:
    if store is not None:
        if get_access_token is not None or set_access_token is not None:
            raise ValueError("Pass either store or get_access_token/set_access_token, not both")
        return store

    if get_access_token is None and set_access_token is None:
        return InMemoryTokenStore()

    if get_access_token is None or set_access_token is None:
        raise ValueError("get_access_token and set_access_token must be given together")

    return CallbackTokenStore(getter=get_access_token, setter=set_access_token)


def create_token_client(
    refresh_request: RefreshRequest,
    *,
    store: TokenStore | None = None,
    get_access_token: Callable[[], str | None] | None = None,
    set_access_token: Callable[[str | None], None] | None = None,
    should_refresh: RefreshPredicate = is_unauthorized,
    on_refresh_failure: RefreshFailureHook | None = None,
    create_refresh_client: RefreshClientFactory | None = None,
    settings: TokenClientSettings | None = None,
    base_url: str | None = None,
    header_name: str | None = None,
    header_scheme: str | None = None,
    retry_flag_key: str | None = None,
    inject_token_on_request: bool | None = None,
    raise_for_status: bool | None = None,
    timeout: float | None = None,
    refresh_timeout: float | None = None,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TokenClient:
    """
    Create an httpx.AsyncClient that injects the access token and refreshes it on failure.

    Args:
        refresh_request: Coroutine performing the refresh call with the refresh
            client and returning the new access token.
        store: Token storage. Alternatively pass get_access_token and
            set_access_token callbacks; defaults to an in-memory store.
        should_refresh: Decides whether a failed response triggers a refresh.
        on_refresh_failure: Called once per failed refresh, before the token is cleared.
        create_refresh_client: Builds the client handed to refresh_request.
        settings: Base settings; keyword arguments given here take precedence.
        transport: Transport shared by the API client and the default refresh client.

    Returns:
        TokenClient: the API client, the refresh client and token accessors.
    """
    overrides: dict[str, Any] = {
        "base_url": base_url,
        "header_name": header_name,
        "header_scheme": header_scheme,
        "retry_flag_key": retry_flag_key,
        "inject_token_on_request": inject_token_on_request,
        "raise_for_status": raise_for_status,
        "timeout": timeout,
        "refresh_timeout": refresh_timeout,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if settings is None:
        settings = TokenClientSettings(**overrides)
    elif overrides:
        settings = TokenClientSettings(**{**settings.model_dump(), **overrides})

    token_store = _resolve_store(store, get_access_token, set_access_token)

    if create_refresh_client is not None:
        refresh_client = create_refresh_client()
    else:
        refresh_client = default_refresh_client(settings, transport)

    auth = TokenRefreshAuth(
        store=token_store,
        refresh_request=refresh_request,
        refresh_client=refresh_client,
        should_refresh=should_refresh,
        on_refresh_failure=on_refresh_failure,
        header_name=settings.header_name,
        header_scheme=settings.header_scheme,
        retry_flag_key=settings.retry_flag_key,
        inject_token_on_request=settings.inject_token_on_request,
        raise_for_status=settings.raise_for_status,
    )
    client = httpx.AsyncClient(
        base_url=settings.base_url,
        auth=auth,
        headers=headers,
        timeout=httpx.Timeout(settings.timeout),
        transport=transport,
    )
    logger.debug(f"Created token client for {settings.base_url or '<no base url>'}")

    return TokenClient(client=client, refresh_client=refresh_client, auth=auth, store=token_store)
