"""
Demo API issuing short-lived access tokens.

Every access token expires after a few seconds, so concurrent clients regularly
hit 401 responses and have to renew their token through /refresh.

Usage:
    python -m simple_token_api.server --port=8000 --token-ttl=3
"""

import logging
import secrets
import time

import anyio
import click
from pydantic_settings import BaseSettings, SettingsConfigDict
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from uvicorn import Config, Server

logger = logging.getLogger(__name__)


class TokenApiSettings(BaseSettings):
    """Settings for the demo token API."""

    model_config = SettingsConfigDict(env_prefix="TOKEN_API_")

    host: str = "localhost"
    port: int = 8000
    token_ttl: float = 3.0
    refresh_delay: float = 0.5


class TokenIssuer:
    """Keeps issued tokens and their expiry times in memory."""

    def __init__(self, ttl: float):
        self.ttl = ttl
        self.tokens: dict[str, float] = {}
        self.refresh_count = 0

    def issue(self) -> str:
        token = secrets.token_urlsafe(16)
        self.tokens[token] = time.time() + self.ttl
        self.refresh_count += 1
        return token

    def is_valid(self, token: str) -> bool:
        expires_at = self.tokens.get(token)
        return expires_at is not None and time.time() < expires_at


def create_app(settings: TokenApiSettings) -> Starlette:
    issuer = TokenIssuer(settings.token_ttl)

    async def refresh(request: Request) -> Response:
        # Simulates a slow identity provider so refreshes overlap with other requests.
        await anyio.sleep(settings.refresh_delay)
        token = issuer.issue()
        logger.info(f"Issued token #{issuer.refresh_count}")
        return JSONResponse({"accessToken": token, "expiresIn": settings.token_ttl})

    async def data(request: Request) -> Response:
        auth_header = request.headers.get("authorization", "")
        if not auth_header.lower().startswith("bearer ") or not issuer.is_valid(auth_header[7:]):
            return JSONResponse({"message": "Token expired"}, status_code=401)
        return JSONResponse({"id": request.path_params["id"], "refreshes": issuer.refresh_count})

    return Starlette(
        routes=[
            Route("/api/v1/refresh", refresh, methods=["POST"]),
            Route("/api/v1/data/{id}", data),
        ]
    )


async def run_server(settings: TokenApiSettings) -> None:
    config = Config(create_app(settings), host=settings.host, port=settings.port, log_level="info")
    server = Server(config)

    logger.info(f"Token API on http://{settings.host}:{settings.port} (tokens live {settings.token_ttl}s)")
    await server.serve()


@click.command()
@click.option("--port", default=8000, help="Port to listen on")
@click.option("--host", default="localhost", help="Host to bind to")
@click.option("--token-ttl", default=3.0, help="Seconds before an issued token expires")
def main(port: int, host: str, token_ttl: float) -> int:
    """Run the demo token API."""
    logging.basicConfig(level=logging.INFO)

    settings = TokenApiSettings(host=host, port=port, token_ttl=token_ttl)
    anyio.run(run_server, settings)
    return 0


if __name__ == "__main__":
    main()  # type: ignore[call-arg]
