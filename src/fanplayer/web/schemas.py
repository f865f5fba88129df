from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fanplayer.domain.playback.models import (
    PlaybackSnapshot,
    PlaybackStatus,
    RepeatMode,
    StrategyKind,
    Track,
)


class TrackModel(BaseModel):
    """Track as exchanged with the UI."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    artist: str
    album: str = ""
    cover_url: str = ""
    duration_ms: int = Field(default=0, ge=0)
    preview_url: Optional[str] = None
    remote_uri: Optional[str] = None

    @classmethod
    def from_track(cls, track: Track) -> "TrackModel":
        return cls(**track._asdict())

    def to_track(self) -> Track:
        return Track(**self.model_dump())


class PlayRequest(BaseModel):
    """Request to play a track, optionally loading a queue around it."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    track: TrackModel
    queue: Optional[list[TrackModel]] = None


class QueueRequest(BaseModel):
    tracks: list[TrackModel]


class SeekRequest(BaseModel):
    """Request to seek to a specific position."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    position_ms: int = Field(ge=0)


class VolumeRequest(BaseModel):
    volume: int = Field(ge=0, le=100)


class PlaybackState(BaseModel):
    """Current playback state."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_track: Optional[TrackModel] = None
    status: PlaybackStatus = PlaybackStatus.IDLE
    is_playing: bool = False
    current_time_ms: int = 0
    duration_ms: int = 0
    volume: int = 100
    queue: list[TrackModel] = []
    current_index: int = -1
    is_shuffled: bool = False
    repeat_mode: RepeatMode = RepeatMode.OFF
    active_backend: StrategyKind = StrategyKind.PREVIEW

    @classmethod
    def from_snapshot(cls, snapshot: PlaybackSnapshot) -> "PlaybackState":
        current = snapshot.current_track
        return cls(
            current_track=TrackModel.from_track(current) if current else None,
            status=snapshot.status,
            is_playing=snapshot.is_playing,
            current_time_ms=snapshot.current_time_ms,
            duration_ms=snapshot.duration_ms,
            volume=snapshot.volume,
            queue=[TrackModel.from_track(t) for t in snapshot.queue],
            current_index=snapshot.current_index,
            is_shuffled=snapshot.is_shuffled,
            repeat_mode=snapshot.repeat_mode,
            active_backend=snapshot.active_backend,
        )


def serialize_snapshot(snapshot: PlaybackSnapshot) -> dict:
    """Snapshot as camelCase JSON-ready dict."""
    return PlaybackState.from_snapshot(snapshot).model_dump(by_alias=True, mode="json")
