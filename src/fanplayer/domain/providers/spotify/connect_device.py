"""
Spotify Connect device adapter.

Plays the role of the browser playback SDK for a server-side engine: wraps an
already-running Spotify Connect device (desktop app, speaker, phone) and
turns Web API polling of `/me/player` into SDK-style events.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from ...playback.sdk import (
    EVENT_AUTHENTICATION_ERROR,
    EVENT_INITIALIZATION_ERROR,
    EVENT_NOT_READY,
    EVENT_READY,
    EVENT_STATE_CHANGED,
    CredentialCallback,
    DevicePlayerFactory,
    Listener,
)
from .api import SpotifyApiError, SpotifyTransport


def playback_to_sdk_state(playback: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a `/me/player` response to the SDK `player_state_changed` shape."""
    item = playback.get("item") or None
    return {
        "paused": not playback.get("is_playing", False),
        "position": playback.get("progress_ms") or 0,
        "duration": (item or {}).get("duration_ms", 0),
        "shuffle": bool(playback.get("shuffle_state", False)),
        "repeat_mode": playback.get("repeat_state", "off"),
        "track_window": {"current_track": item},
    }


class ConnectDevicePlayer:
    """DevicePlayer over the Web API for one Spotify Connect device."""

    def __init__(
        self,
        transport: SpotifyTransport,
        name: str,
        get_credential: Callable[[CredentialCallback], None],
        volume: float = 1.0,
        preferred_device_name: str = "",
        poll_interval: float = 1.0,
    ):
        self.transport = transport
        self.name = name
        self.preferred_device_name = preferred_device_name or name
        self.poll_interval = poll_interval
        self.device_id: Optional[str] = None

        self._get_credential = get_credential
        self._volume = volume
        self._listeners: Dict[str, List[Listener]] = {}
        self._poll_task: Optional[asyncio.Task] = None
        self._last_state: Optional[Dict[str, Any]] = None

    def _token(self) -> Optional[str]:
        token: List[str] = []
        self._get_credential(token.append)
        return token[0] if token else None

    # Listeners

    def add_listener(self, event: str, callback: Listener) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Optional[Listener] = None) -> None:
        if callback is None:
            self._listeners.pop(event, None)
            return
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, event: str, payload: Any = None) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Error in '{event}' listener")

    # Lifecycle

    async def connect(self) -> bool:
        token = self._token()
        if not token:
            self._emit(EVENT_AUTHENTICATION_ERROR, {"message": "No access token"})
            return False

        try:
            devices = await self.transport.get_devices(token)
        except SpotifyApiError as e:
            event = EVENT_AUTHENTICATION_ERROR if e.status_code == 401 else EVENT_INITIALIZATION_ERROR
            self._emit(event, {"message": str(e)})
            return False

        device = self._pick_device(devices)
        if device is None:
            logger.warning("No Spotify devices found. Open Spotify on a device first.")
            return False

        self.device_id = device["id"]
        logger.debug(f"Using Spotify device: {device.get('name')}")

        try:
            await self.transport.set_volume(token, round(self._volume * 100), self.device_id)
        except SpotifyApiError as e:
            logger.warning(f"Could not set initial device volume: {e}")

        self._emit(EVENT_READY, {"device_id": self.device_id})
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())
        return True

    def disconnect(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
        self.device_id = None
        self._last_state = None

    def _pick_device(self, devices: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Preferred name first, then the active device, then the first one."""
        for device in devices:
            if device.get("name") == self.preferred_device_name:
                return device
        for device in devices:
            if device.get("is_active"):
                return device
        return devices[0] if devices else None

    async def _poll(self) -> None:
        while self.device_id is not None:
            await asyncio.sleep(self.poll_interval)
            token = self._token()
            if not token:
                continue
            try:
                playback = await self.transport.get_playback(token)
                if playback is None or (playback.get("device") or {}).get("id") != self.device_id:
                    devices = await self.transport.get_devices(token)
                    if not any(d.get("id") == self.device_id for d in devices):
                        device_id, self.device_id = self.device_id, None
                        self._emit(EVENT_NOT_READY, {"device_id": device_id})
                        return
                    continue
            except SpotifyApiError as e:
                if e.status_code == 401:
                    self._emit(EVENT_AUTHENTICATION_ERROR, {"message": str(e)})
                else:
                    logger.warning(f"Error polling Spotify playback: {e}")
                continue

            state = playback_to_sdk_state(playback)
            if state != self._last_state:
                self._last_state = state
                self._emit(EVENT_STATE_CHANGED, state)

    # Transport

    async def get_current_state(self) -> Optional[Dict[str, Any]]:
        token = self._token()
        if not token or self.device_id is None:
            return None
        playback = await self.transport.get_playback(token)
        if playback is None:
            return None
        return playback_to_sdk_state(playback)

    async def pause(self) -> None:
        await self.transport.pause(self._token(), self.device_id)

    async def resume(self) -> None:
        await self.transport.resume(self._token(), self.device_id)

    async def seek(self, position_ms: int) -> None:
        await self.transport.seek(self._token(), position_ms, self.device_id)

    async def set_volume(self, volume: float) -> None:
        self._volume = volume
        await self.transport.set_volume(self._token(), round(volume * 100), self.device_id)

    async def next_track(self) -> None:
        await self.transport.next_track(self._token(), self.device_id)

    async def previous_track(self) -> None:
        await self.transport.previous_track(self._token(), self.device_id)


def connect_device_factory(
    transport: SpotifyTransport,
    preferred_device_name: str = "",
    poll_interval: float = 1.0,
) -> DevicePlayerFactory:
    """Build a DevicePlayerFactory producing ConnectDevicePlayer instances."""

    def factory(name: str, get_credential: Callable[[CredentialCallback], None], volume: float):
        return ConnectDevicePlayer(
            transport,
            name=name,
            get_credential=get_credential,
            volume=volume,
            preferred_device_name=preferred_device_name,
            poll_interval=poll_interval,
        )

    return factory
