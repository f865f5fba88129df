"""
Collaborator interfaces for the two playback backends.

The remote device SDK and the local audio output are external resources.
These protocols define the contract they must follow; concrete
implementations live in `mpv_output` and `providers.spotify.connect_device`.
"""

from typing import Any, Callable, Dict, Optional, Protocol

# Remote device SDK events
EVENT_INITIALIZATION_ERROR = "initialization_error"
EVENT_AUTHENTICATION_ERROR = "authentication_error"
EVENT_ACCOUNT_ERROR = "account_error"
EVENT_READY = "ready"
EVENT_NOT_READY = "not_ready"
EVENT_STATE_CHANGED = "player_state_changed"

# Audio output events
EVENT_TIME_UPDATE = "timeupdate"
EVENT_ENDED = "ended"
EVENT_ERROR = "error"

CredentialCallback = Callable[[str], None]
Listener = Callable[[Any], None]


class DevicePlayer(Protocol):
    """Remote playback device registration (vendor SDK player object)."""

    async def connect(self) -> bool: ...

    def disconnect(self) -> None: ...

    def add_listener(self, event: str, callback: Listener) -> None: ...

    def remove_listener(self, event: str, callback: Optional[Listener] = None) -> None: ...

    async def get_current_state(self) -> Optional[Dict[str, Any]]: ...

    async def pause(self) -> None: ...

    async def resume(self) -> None: ...

    async def seek(self, position_ms: int) -> None: ...

    async def set_volume(self, volume: float) -> None: ...

    async def next_track(self) -> None: ...

    async def previous_track(self) -> None: ...


class DevicePlayerFactory(Protocol):
    """Constructor exposed by the SDK: `(name, get_credential, volume)`."""

    def __call__(
        self,
        name: str,
        get_credential: Callable[[CredentialCallback], None],
        volume: float,
    ) -> DevicePlayer: ...


class AudioOutput(Protocol):
    """Single persistent audio output for preview clips.

    current_time is in seconds, volume in 0.0-1.0 (audio element units).
    """

    src: Optional[str]
    current_time: float
    volume: float

    async def play(self) -> None: ...

    def pause(self) -> None: ...

    def add_event_listener(self, name: str, callback: Listener) -> None: ...

    def remove_event_listener(self, name: str, callback: Listener) -> None: ...

    def close(self) -> None: ...
