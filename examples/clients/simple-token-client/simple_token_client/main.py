"""
Fires batches of concurrent requests at the demo token API.

Usage:
    python -m simple_token_client.main --url=http://localhost:8000 --requests=20 --rounds=5
"""

import logging

import anyio
import click
import httpx

from token_refresh import InMemoryTokenStore, create_token_client

logger = logging.getLogger(__name__)


async def refresh_access_token(refresh_client: httpx.AsyncClient) -> str:
    response = await refresh_client.post("/api/v1/refresh")
    return response.json()["accessToken"]


def report_refresh_failure(error: Exception) -> None:
    logger.error(f"Could not renew the access token, signing out: {error!r}")


async def run_client(url: str, requests: int, rounds: int, pause: float) -> None:
    store = InMemoryTokenStore()

    async with create_token_client(
        refresh_access_token,
        store=store,
        base_url=url,
        on_refresh_failure=report_refresh_failure,
        raise_for_status=False,
    ) as token_client:
        for round_number in range(1, rounds + 1):
            statuses: list[int] = []

            async def fetch(index: int) -> None:
                try:
                    response = await token_client.client.get(f"/api/v1/data/{index}")
                except httpx.HTTPError as e:
                    # Refresh failures still raise with raise_for_status=False.
                    logger.warning(f"Request {index} failed: {e!r}")
                    return
                statuses.append(response.status_code)

            async with anyio.create_task_group() as tg:
                for index in range(requests):
                    tg.start_soon(fetch, index)

            logger.info(f"Round {round_number}: {statuses.count(200)}/{requests} succeeded")
            await anyio.sleep(pause)


@click.command()
@click.option("--url", default="http://localhost:8000", help="Base URL of the token API")
@click.option("--requests", default=20, help="Concurrent requests per round")
@click.option("--rounds", default=5, help="Number of rounds")
@click.option("--pause", default=2.0, help="Seconds to wait between rounds")
@click.option(
    "--log-level",
    default="INFO",
    help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
def main(url: str, requests: int, rounds: int, pause: float, log_level: str) -> int:
    """Run the demo client."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    anyio.run(run_client, url, requests, rounds, pause)
    return 0


if __name__ == "__main__":
    main()  # type: ignore[call-arg]
