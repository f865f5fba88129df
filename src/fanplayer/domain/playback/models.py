"""
Playback domain models.

Value types shared by the queue, the backends and the engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal, NamedTuple, Optional

RemoteRepeatMode = Literal["off", "context", "track"]

# SDK reports repeat as an integer
_SDK_REPEAT_MODES: Dict[int, RemoteRepeatMode] = {0: "off", 1: "context", 2: "track"}


class Track(NamedTuple):
    """Represents a playable track.

    A track can be playable remotely (remote_uri on a ready device), as a
    preview clip (preview_url), both, or neither.
    """

    id: str  # Stable catalog identity
    title: str
    artist: str  # Display string, already joined
    album: str = ""
    cover_url: str = ""
    duration_ms: int = 0
    preview_url: Optional[str] = None
    remote_uri: Optional[str] = None  # e.g. spotify:track:{id}

    def matches(self, other: Optional["Track"]) -> bool:
        """Same catalog track (identity, not metadata equality)."""
        return other is not None and other.id == self.id


class RepeatMode(str, Enum):
    """Engine-side repeat mode. Repeat-all is not supported."""

    OFF = "off"
    ONE = "one"


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"


class StrategyKind(str, Enum):
    """Which backend is authoritative for transport commands."""

    REMOTE = "remote"
    PREVIEW = "preview"


def repeat_mode_from_remote(mode: RemoteRepeatMode) -> RepeatMode:
    """Map the device's three-valued repeat mode down to the engine's two."""
    return RepeatMode.ONE if mode == "track" else RepeatMode.OFF


def repeat_mode_to_remote(mode: RepeatMode) -> RemoteRepeatMode:
    return "track" if mode == RepeatMode.ONE else "off"


class RemoteTrack(NamedTuple):
    """Current item as reported by the remote device."""

    id: str
    name: str
    uri: str
    artists: str
    album: str
    cover_url: str
    duration_ms: int

    def to_track(self) -> Track:
        return Track(
            id=self.id,
            title=self.name,
            artist=self.artists,
            album=self.album,
            cover_url=self.cover_url,
            duration_ms=self.duration_ms,
            remote_uri=self.uri,
        )

    def matches(self, track: Optional[Track]) -> bool:
        if track is None:
            return False
        if track.remote_uri and track.remote_uri == self.uri:
            return True
        return track.id == self.id


class RemotePlayerState(NamedTuple):
    """Parsed `player_state_changed` payload."""

    paused: bool
    position_ms: int
    shuffle: bool
    repeat_mode: RemoteRepeatMode
    current_track: Optional[RemoteTrack]
    duration_ms: int


def parse_remote_track(data: Optional[Dict[str, Any]]) -> Optional[RemoteTrack]:
    """Convert an SDK track object to a RemoteTrack."""
    if not data:
        return None
    album = data.get("album") or {}
    images = album.get("images") or []
    return RemoteTrack(
        id=data.get("id") or "",
        name=data.get("name") or "",
        uri=data.get("uri") or "",
        artists=", ".join(
            a["name"] for a in data.get("artists", []) if a.get("name") is not None
        ),
        album=album.get("name") or "",
        cover_url=images[0].get("url", "") if images else "",
        duration_ms=int(data.get("duration_ms") or 0),
    )


def parse_remote_state(data: Dict[str, Any]) -> RemotePlayerState:
    """Convert an SDK state dict to a RemotePlayerState.

    Args:
        data: `player_state_changed` / `get_current_state()` payload

    Returns:
        Parsed state; repeat_mode accepts either the SDK integer or a string
    """
    track_window = data.get("track_window") or {}
    current = parse_remote_track(track_window.get("current_track"))

    raw_repeat = data.get("repeat_mode", 0)
    if isinstance(raw_repeat, int):
        repeat_mode = _SDK_REPEAT_MODES.get(raw_repeat, "off")
    else:
        repeat_mode = raw_repeat if raw_repeat in ("off", "context", "track") else "off"

    duration = data.get("duration")
    if duration is None:
        duration = current.duration_ms if current else 0

    return RemotePlayerState(
        paused=bool(data.get("paused", True)),
        position_ms=int(data.get("position") or 0),
        shuffle=bool(data.get("shuffle", False)),
        repeat_mode=repeat_mode,
        current_track=current,
        duration_ms=int(duration or 0),
    )


@dataclass
class RemoteSessionState:
    """Read-model mirrored from the remote device.

    Written only by the remote session (device events and its own commands).
    device_id is set iff ready.
    """

    ready: bool = False
    device_id: Optional[str] = None
    paused: bool = True
    position_ms: int = 0
    current_track: Optional[RemoteTrack] = None
    duration_ms: int = 0
    shuffle: bool = False
    repeat_mode: RemoteRepeatMode = "off"


class PlaybackSnapshot(NamedTuple):
    """Immutable public view of the engine, handed to UI listeners."""

    current_track: Optional[Track]
    status: PlaybackStatus
    is_playing: bool
    current_time_ms: int
    duration_ms: int
    volume: int
    queue: tuple
    current_index: int
    is_shuffled: bool
    repeat_mode: RepeatMode
    active_backend: StrategyKind
