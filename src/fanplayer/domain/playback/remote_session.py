"""
Remote device session - lifecycle and state mirror for the remote player.

Registers one device per access credential through the SDK factory, mirrors
the device's pushed state into a local read-model (RemoteSessionState), and
exposes transport commands. play/shuffle/repeat go over the Web API scoped
to the device; pause/resume/seek/volume/skip go through the SDK player.

Only play_by_uri raises on failure (so the strategy selector can fall back);
every other command logs and returns False.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from ..providers.spotify.api import SpotifyApiError, SpotifyTransport
from .exceptions import DeviceUnavailableError, RemoteCommandError
from .models import RemoteRepeatMode, RemoteSessionState, parse_remote_state
from .pending import PendingIntent
from .sdk import (
    EVENT_ACCOUNT_ERROR,
    EVENT_AUTHENTICATION_ERROR,
    EVENT_INITIALIZATION_ERROR,
    EVENT_NOT_READY,
    EVENT_READY,
    EVENT_STATE_CHANGED,
    CredentialCallback,
    DevicePlayer,
    DevicePlayerFactory,
)

ChangeCallback = Callable[[RemoteSessionState], None]


class RemoteDeviceSession:
    """Bridge to an external playback device.

    `ready` flips only on device events pushed by the SDK, never on local
    commands.
    """

    def __init__(
        self,
        transport: SpotifyTransport,
        player_factory: Optional[DevicePlayerFactory] = None,
        name: str = "Fanplayer Web Player",
        volume: int = 100,
        poll_interval: float = 1.0,
        shuffle_confirm_timeout: float = 3.0,
    ):
        self.transport = transport
        self.player_factory = player_factory
        self.name = name
        self.poll_interval = poll_interval
        self.state = RemoteSessionState()

        self._volume = volume
        self._credential: Optional[str] = None
        self._player: Optional[DevicePlayer] = None
        self._sdk_listeners: Dict[str, Callable[[Any], None]] = {}
        self._poll_task: Optional[asyncio.Task] = None
        self._shuffle_guard: PendingIntent[bool] = PendingIntent("shuffle", shuffle_confirm_timeout)
        self._change_callbacks: List[ChangeCallback] = []

    @property
    def ready(self) -> bool:
        return self.state.ready

    @property
    def device_id(self) -> Optional[str]:
        return self.state.device_id

    @property
    def credential(self) -> Optional[str]:
        return self._credential

    @property
    def is_playing(self) -> bool:
        return self.state.ready and not self.state.paused

    @property
    def shuffle_pending(self) -> bool:
        return self._shuffle_guard.is_pending

    # Change notification

    def add_change_callback(self, callback: ChangeCallback) -> None:
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)

    def remove_change_callback(self, callback: ChangeCallback) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)

    def _notify_change(self) -> None:
        for callback in self._change_callbacks:
            try:
                callback(self.state)
            except Exception:
                logger.exception("Error in remote session change callback")

    # Lifecycle

    async def set_credential(self, credential: Optional[str]) -> None:
        """Register a device for a new credential, or tear down on loss.

        Repeated calls with the same credential are no-ops.
        """
        if credential == self._credential:
            return

        if self._player is not None:
            self._teardown()

        self._credential = credential
        if credential is None:
            logger.info("Access credential cleared, remote device released")
            return

        await self._register()

    async def close(self) -> None:
        self._credential = None
        self._teardown()

    async def _register(self) -> None:
        if self.player_factory is None:
            logger.warning("Remote playback SDK unavailable, using preview playback only")
            return

        try:
            player = self.player_factory(
                name=self.name,
                get_credential=self._provide_credential,
                volume=self._volume / 100,
            )
        except Exception:
            logger.exception("Failed to create remote playback device")
            return

        self._player = player
        self._sdk_listeners = {
            EVENT_INITIALIZATION_ERROR: self._on_initialization_error,
            EVENT_AUTHENTICATION_ERROR: self._on_authentication_error,
            EVENT_ACCOUNT_ERROR: self._on_account_error,
            EVENT_READY: self._on_ready,
            EVENT_NOT_READY: self._on_not_ready,
            EVENT_STATE_CHANGED: self._on_state_changed,
        }
        for event, callback in self._sdk_listeners.items():
            player.add_listener(event, callback)

        try:
            connected = await player.connect()
        except Exception:
            logger.exception("Error connecting to remote playback device")
            connected = False

        if player is not self._player:
            # Credential changed while connecting; that registration was torn down
            return

        if connected:
            logger.info("Successfully connected to remote playback device")
        else:
            logger.error("Failed to connect to remote playback device")
            self._teardown()

    def _provide_credential(self, callback: CredentialCallback) -> None:
        if self._credential:
            callback(self._credential)

    def _teardown(self) -> None:
        self._stop_polling()
        self._shuffle_guard.clear()

        player = self._player
        self._player = None
        if player is not None:
            for event, callback in self._sdk_listeners.items():
                try:
                    player.remove_listener(event, callback)
                except Exception:
                    logger.exception(f"Error removing '{event}' listener")
            try:
                player.disconnect()
            except Exception:
                logger.exception("Error disconnecting remote playback device")
        self._sdk_listeners = {}

        was_ready = self.state.ready
        self.state = RemoteSessionState()
        if was_ready:
            self._notify_change()

    # SDK events

    def _on_initialization_error(self, payload: Any) -> None:
        logger.error(f"Failed to initialize remote player: {_message(payload)}")

    def _on_authentication_error(self, payload: Any) -> None:
        logger.error(f"Failed to authenticate remote player: {_message(payload)}")

    def _on_account_error(self, payload: Any) -> None:
        logger.error(f"Remote player account error: {_message(payload)}")

    def _on_ready(self, payload: Any) -> None:
        device_id = (payload or {}).get("device_id")
        if not device_id:
            logger.warning("Remote player reported ready without a device id")
            return
        logger.info(f"Remote player is ready with device ID: {device_id}")
        self.state.device_id = device_id
        self.state.ready = True
        self._notify_change()
        self._sync_polling()

    def _on_not_ready(self, payload: Any) -> None:
        device_id = (payload or {}).get("device_id")
        logger.info(f"Remote player is not ready: {device_id}")
        self.state.ready = False
        self.state.device_id = None
        self._stop_polling()
        self._notify_change()

    def _on_state_changed(self, payload: Optional[Dict[str, Any]]) -> None:
        if payload is None:
            return

        try:
            parsed = parse_remote_state(payload)
        except (AttributeError, TypeError, ValueError):
            logger.exception("Malformed remote player state")
            return

        self.state.paused = parsed.paused
        self.state.position_ms = parsed.position_ms
        self.state.current_track = parsed.current_track
        self.state.duration_ms = parsed.duration_ms
        self.state.repeat_mode = parsed.repeat_mode

        if self._shuffle_guard.reconcile(parsed.shuffle):
            self.state.shuffle = parsed.shuffle

        self._notify_change()
        self._sync_polling()

    # Position polling (backstop against missed events)

    def _sync_polling(self) -> None:
        should_poll = self._player is not None and self.is_playing
        if not should_poll:
            self._stop_polling()
            return
        if self._poll_task is not None and not self._poll_task.done():
            return
        try:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_position())
        except RuntimeError:
            logger.debug("No running event loop, position polling not started")

    def _stop_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    async def _poll_position(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            player = self._player
            if player is None or not self.is_playing:
                return
            try:
                data = await player.get_current_state()
            except Exception:
                logger.exception("Error getting remote playback state")
                continue
            if data and player is self._player:
                self.state.position_ms = int(data.get("position") or 0)
                self._notify_change()

    # Commands

    async def play_by_uri(self, uri: str) -> None:
        """Start playback of uri on this device.

        Raises:
            DeviceUnavailableError: No ready device (or no credential)
            RemoteCommandError: The Web API rejected the request
        """
        if not self.ready or not self._credential:
            raise DeviceUnavailableError("Remote playback device is not ready")

        try:
            await self.transport.play(self._credential, self.state.device_id, uri)
        except SpotifyApiError as e:
            logger.error(f"Error playing {uri} on remote device: {e}")
            raise RemoteCommandError("play", e.status_code) from e
        logger.info(f"Playing on remote device: {uri}")

    async def _device_command(self, name: str, call: Callable[[DevicePlayer], Any]) -> bool:
        player = self._player
        if player is None:
            logger.debug(f"Cannot {name}: no remote device")
            return False
        try:
            await call(player)
            return True
        except Exception:
            logger.exception(f"Error in remote {name}")
            return False

    async def pause(self) -> bool:
        return await self._device_command("pause", lambda p: p.pause())

    async def resume(self) -> bool:
        return await self._device_command("resume", lambda p: p.resume())

    async def seek(self, position_ms: int) -> bool:
        success = await self._device_command("seek", lambda p: p.seek(position_ms))
        if success:
            self.state.position_ms = position_ms
            self._notify_change()
        return success

    async def set_volume(self, volume: int) -> bool:
        """Set device volume from 0-100 (SDK takes 0.0-1.0)."""
        volume = max(0, min(100, int(volume)))
        self._volume = volume
        return await self._device_command("set volume", lambda p: p.set_volume(volume / 100))

    async def skip_next(self) -> bool:
        return await self._device_command("next track", lambda p: p.next_track())

    async def skip_previous(self) -> bool:
        return await self._device_command("previous track", lambda p: p.previous_track())

    async def set_shuffle(self, enabled: bool) -> bool:
        """Optimistically set shuffle and guard it until the device confirms."""
        if not self.ready or not self._credential:
            logger.debug("Cannot set shuffle: remote device not ready")
            return False

        self._shuffle_guard.begin(enabled)
        self.state.shuffle = enabled
        self._notify_change()

        try:
            await self.transport.set_shuffle(self._credential, self.state.device_id, enabled)
            return True
        except SpotifyApiError as e:
            logger.error(f"Error setting remote shuffle to {enabled}: {e}")
            return False

    async def set_repeat(self, mode: RemoteRepeatMode) -> bool:
        if not self.ready or not self._credential:
            logger.debug("Cannot set repeat: remote device not ready")
            return False

        try:
            await self.transport.set_repeat(self._credential, self.state.device_id, mode)
        except SpotifyApiError as e:
            logger.error(f"Error setting remote repeat to {mode}: {e}")
            return False

        self.state.repeat_mode = mode
        self._notify_change()
        return True


def _message(payload: Any) -> str:
    if isinstance(payload, dict):
        return payload.get("message", "")
    return str(payload)
