"""
Access token provider for the remote playback device.

The web app's token endpoint (`GET /api/auth/token` -> {"accessToken": ...})
owns the OAuth session; this module only fetches the current token and
refreshes it periodically (tokens expire after an hour).
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

import requests
from loguru import logger

TOKEN_URL = "http://localhost:3000/api/auth/token"

# Refresh every 50 minutes
TOKEN_REFRESH_INTERVAL = 50 * 60

TokenCallback = Callable[[Optional[str]], Awaitable[None]]


def fetch_access_token(token_url: str = TOKEN_URL, timeout: float = 30) -> Optional[str]:
    """Fetch the current access token.

    Returns:
        Token string, or None if the endpoint failed or has no session
    """
    try:
        response = requests.get(token_url, timeout=timeout)
        response.raise_for_status()
        return response.json().get("accessToken")
    except requests.HTTPError as e:
        logger.warning(f"Failed to fetch access token: {e}")
        return None
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Error fetching access token: {e}")
        return None


class AccessTokenProvider:
    """Keeps an access token fresh and tells subscribers when it changes."""

    def __init__(
        self,
        token_url: str = TOKEN_URL,
        refresh_interval: float = TOKEN_REFRESH_INTERVAL,
        timeout: float = 30,
        static_token: Optional[str] = None,
    ):
        self.token_url = token_url
        self.refresh_interval = refresh_interval
        self.timeout = timeout
        self.static_token = static_token
        self.token: Optional[str] = None

        self._subscribers: List[TokenCallback] = []
        self._task: Optional[asyncio.Task] = None

    def subscribe(self, callback: TokenCallback) -> None:
        self._subscribers.append(callback)

    async def refresh(self) -> Optional[str]:
        """Fetch once; on failure the previous token is kept."""
        token = await asyncio.to_thread(fetch_access_token, self.token_url, self.timeout)
        if token is None:
            return self.token
        await self._set_token(token)
        return token

    async def _set_token(self, token: Optional[str]) -> None:
        if token == self.token:
            return
        self.token = token
        logger.info("Access token updated")
        for callback in list(self._subscribers):
            try:
                await callback(token)
            except Exception:
                logger.exception("Error in access token subscriber")

    async def start(self) -> None:
        if self.static_token:
            logger.info("Using static access token from environment")
            await self._set_token(self.static_token)
            return

        await self.refresh()
        self._task = asyncio.get_running_loop().create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            await self.refresh()

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
