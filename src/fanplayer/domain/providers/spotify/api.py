"""
Spotify Web API player operations.

Blocking `requests` calls run off the event loop via asyncio.to_thread.
Every call takes the bearer token explicitly; token refresh is owned by
`auth.AccessTokenProvider`.
"""

import asyncio
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

# Spotify API base URL
API_BASE = "https://api.spotify.com/v1"


class SpotifyApiError(Exception):
    """Raised when a Web API request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SpotifyTransport:
    """Authenticated player endpoints, scoped to a device where supported."""

    def __init__(self, api_base: str = API_BASE, timeout: float = 30.0):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        token: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Internal: perform one request, raising SpotifyApiError on failure."""
        url = f"{self.api_base}{path}"
        try:
            response = requests.request(
                method,
                url,
                params=params,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SpotifyApiError(f"{method} {path} failed: {e}") from e

        if response.status_code == 204:  # No content
            return None

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            if response.status_code == 404:
                logger.error("No active Spotify device found")
            raise SpotifyApiError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            ) from e

        if not response.content:
            return None
        return response.json()

    async def _call(self, method: str, path: str, token: str, **kwargs) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._request, method, path, token, **kwargs)

    @staticmethod
    def _device_params(device_id: Optional[str], **extra: Any) -> Dict[str, Any]:
        params = dict(extra)
        if device_id:
            params["device_id"] = device_id
        return params

    async def play(self, token: str, device_id: Optional[str], uri: str) -> None:
        """Start playback of a single URI on the device."""
        await self._call(
            "PUT",
            "/me/player/play",
            token,
            params=self._device_params(device_id),
            payload={"uris": [uri]},
        )
        logger.debug(f"Started playback: {uri}")

    async def set_shuffle(self, token: str, device_id: Optional[str], state: bool) -> None:
        await self._call(
            "PUT",
            "/me/player/shuffle",
            token,
            params=self._device_params(device_id, state="true" if state else "false"),
        )
        logger.debug(f"Set shuffle: {state}")

    async def set_repeat(self, token: str, device_id: Optional[str], mode: str) -> None:
        await self._call(
            "PUT",
            "/me/player/repeat",
            token,
            params=self._device_params(device_id, state=mode),
        )
        logger.debug(f"Set repeat: {mode}")

    async def get_devices(self, token: str) -> List[Dict[str, Any]]:
        data = await self._call("GET", "/me/player/devices", token)
        devices = (data or {}).get("devices", [])
        logger.debug(f"Found {len(devices)} Spotify devices")
        return devices

    async def get_playback(self, token: str) -> Optional[Dict[str, Any]]:
        """Current playback (None when nothing is playing)."""
        return await self._call("GET", "/me/player", token)

    async def pause(self, token: str, device_id: Optional[str] = None) -> None:
        await self._call("PUT", "/me/player/pause", token, params=self._device_params(device_id))

    async def resume(self, token: str, device_id: Optional[str] = None) -> None:
        await self._call("PUT", "/me/player/play", token, params=self._device_params(device_id))

    async def seek(self, token: str, position_ms: int, device_id: Optional[str] = None) -> None:
        await self._call(
            "PUT",
            "/me/player/seek",
            token,
            params=self._device_params(device_id, position_ms=int(position_ms)),
        )

    async def set_volume(self, token: str, volume_percent: int, device_id: Optional[str] = None) -> None:
        await self._call(
            "PUT",
            "/me/player/volume",
            token,
            params=self._device_params(device_id, volume_percent=int(volume_percent)),
        )

    async def next_track(self, token: str, device_id: Optional[str] = None) -> None:
        await self._call("POST", "/me/player/next", token, params=self._device_params(device_id))

    async def previous_track(self, token: str, device_id: Optional[str] = None) -> None:
        await self._call("POST", "/me/player/previous", token, params=self._device_params(device_id))
