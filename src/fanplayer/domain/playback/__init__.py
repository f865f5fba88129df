"""Playback domain - dual-backend playback engine.

This domain handles:
- Queue order with index-permutation shuffle
- Repeat-one with queue collapse/restore
- Remote device session (Spotify Connect) with pending shuffle guard
- Local preview clips via mpv
- Strategy selection with preview fallback
"""

from .engine import PlaybackEngine
from .exceptions import (
    DeviceUnavailableError,
    NoPlaybackMethodError,
    PlaybackError,
    PreviewUnavailableError,
    RemoteCommandError,
    UnsupportedOperationError,
)
from .models import (
    PlaybackSnapshot,
    PlaybackStatus,
    RemoteSessionState,
    RepeatMode,
    StrategyKind,
    Track,
)
from .pending import PendingIntent
from .preview_player import LocalPreviewPlayer
from .queue import QueueManager
from .remote_session import RemoteDeviceSession
from .repeat import RepeatController
from .strategy import PlaybackStrategySelector, PreviewStrategy, RemoteStrategy

__all__ = [
    "PlaybackEngine",
    "DeviceUnavailableError",
    "NoPlaybackMethodError",
    "PlaybackError",
    "PreviewUnavailableError",
    "RemoteCommandError",
    "UnsupportedOperationError",
    "PlaybackSnapshot",
    "PlaybackStatus",
    "RemoteSessionState",
    "RepeatMode",
    "StrategyKind",
    "Track",
    "PendingIntent",
    "LocalPreviewPlayer",
    "QueueManager",
    "RemoteDeviceSession",
    "RepeatController",
    "PlaybackStrategySelector",
    "PreviewStrategy",
    "RemoteStrategy",
]
