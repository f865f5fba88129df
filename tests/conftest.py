"""Shared fakes for the playback backends."""

import random
from typing import Any, Callable, Dict, List, Optional

import pytest

from fanplayer.domain.playback.engine import PlaybackEngine
from fanplayer.domain.playback.models import Track
from fanplayer.domain.playback.preview_player import LocalPreviewPlayer
from fanplayer.domain.playback.queue import QueueManager
from fanplayer.domain.playback.remote_session import RemoteDeviceSession
from fanplayer.domain.providers.spotify.api import SpotifyApiError


class FakeTransport:
    """Records Web API calls; play can be gated or made to fail."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail_with: Optional[int] = None
        self.play_gates: Dict[str, Any] = {}

    async def play(self, token: str, device_id: Optional[str], uri: str) -> None:
        self.calls.append(("play", token, device_id, uri))
        gate = self.play_gates.get(uri)
        if gate is not None:
            await gate.wait()
        if self.fail_with is not None:
            raise SpotifyApiError("play failed", status_code=self.fail_with)

    async def set_shuffle(self, token: str, device_id: Optional[str], state: bool) -> None:
        self.calls.append(("shuffle", token, device_id, state))
        if self.fail_with is not None:
            raise SpotifyApiError("shuffle failed", status_code=self.fail_with)

    async def set_repeat(self, token: str, device_id: Optional[str], mode: str) -> None:
        self.calls.append(("repeat", token, device_id, mode))
        if self.fail_with is not None:
            raise SpotifyApiError("repeat failed", status_code=self.fail_with)


class FakeDevicePlayer:
    """In-memory stand-in for the SDK player object."""

    def __init__(self, name: str, get_credential: Callable, volume: float):
        self.name = name
        self.get_credential = get_credential
        self.volume = volume
        self.listeners: Dict[str, List[Callable]] = {}
        self.connect_result = True
        self.connected = False
        self.disconnected = False
        self.current_state: Optional[Dict[str, Any]] = None
        self.calls: List[tuple] = []
        self.fail = False

    def add_listener(self, event: str, callback: Callable) -> None:
        self.listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Optional[Callable] = None) -> None:
        if callback in self.listeners.get(event, []):
            self.listeners[event].remove(callback)

    def emit(self, event: str, payload: Any = None) -> None:
        for callback in list(self.listeners.get(event, [])):
            callback(payload)

    async def connect(self) -> bool:
        self.connected = self.connect_result
        return self.connect_result

    def disconnect(self) -> None:
        self.disconnected = True

    async def get_current_state(self) -> Optional[Dict[str, Any]]:
        return self.current_state

    async def _record(self, *call) -> None:
        self.calls.append(call)
        if self.fail:
            raise RuntimeError(f"{call[0]} failed")

    async def pause(self) -> None:
        await self._record("pause")

    async def resume(self) -> None:
        await self._record("resume")

    async def seek(self, position_ms: int) -> None:
        await self._record("seek", position_ms)

    async def set_volume(self, volume: float) -> None:
        await self._record("set_volume", volume)

    async def next_track(self) -> None:
        await self._record("next_track")

    async def previous_track(self) -> None:
        await self._record("previous_track")


class FakeDeviceFactory:
    """DevicePlayerFactory that keeps every player it creates."""

    def __init__(self):
        self.players: List[FakeDevicePlayer] = []

    def __call__(self, name: str, get_credential: Callable, volume: float) -> FakeDevicePlayer:
        player = FakeDevicePlayer(name, get_credential, volume)
        self.players.append(player)
        return player

    @property
    def last(self) -> FakeDevicePlayer:
        return self.players[-1]


class FakeAudioOutput:
    """Audio element stand-in for the preview player."""

    def __init__(self):
        self.src: Optional[str] = None
        self.current_time = 0.0
        self.volume = 1.0
        self.playing = False
        self.fail_play = False
        self.play_calls = 0
        self.closed = False
        self.listeners: Dict[str, List[Callable]] = {}

    async def play(self) -> None:
        self.play_calls += 1
        if self.fail_play:
            raise RuntimeError("NotAllowedError")
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def add_event_listener(self, name: str, callback: Callable) -> None:
        self.listeners.setdefault(name, []).append(callback)

    def remove_event_listener(self, name: str, callback: Callable) -> None:
        if callback in self.listeners.get(name, []):
            self.listeners[name].remove(callback)

    def emit(self, name: str, payload: Any = None) -> None:
        for callback in list(self.listeners.get(name, [])):
            callback(payload)

    def close(self) -> None:
        self.closed = True


def sdk_state(
    track: Optional[Track] = None,
    paused: bool = False,
    position: int = 0,
    shuffle: bool = False,
    repeat_mode: int = 0,
) -> Dict[str, Any]:
    """Build a `player_state_changed` payload for track."""
    current = None
    if track is not None:
        current = {
            "id": track.id,
            "name": track.title,
            "uri": track.remote_uri or f"spotify:track:{track.id}",
            "duration_ms": track.duration_ms,
            "artists": [{"name": name} for name in track.artist.split(", ")],
            "album": {"name": track.album, "images": [{"url": track.cover_url}]},
        }
    return {
        "paused": paused,
        "position": position,
        "duration": track.duration_ms if track else 0,
        "shuffle": shuffle,
        "repeat_mode": repeat_mode,
        "track_window": {"current_track": current},
    }


def make_track(track_id: str, preview: bool = True, remote: bool = True) -> Track:
    return Track(
        id=track_id,
        title=f"Track {track_id}",
        artist=f"Artist {track_id}",
        album=f"Album {track_id}",
        cover_url=f"https://img.example/{track_id}.jpg",
        duration_ms=200_000,
        preview_url=f"https://p.scdn.co/mp3-preview/{track_id}" if preview else None,
        remote_uri=f"spotify:track:{track_id}" if remote else None,
    )


class EngineRig:
    """An engine wired to fakes, plus handles on every fake."""

    def __init__(self, seed: int = 7):
        self.transport = FakeTransport()
        self.factory = FakeDeviceFactory()
        self.output = FakeAudioOutput()
        self.session = RemoteDeviceSession(
            self.transport,
            player_factory=self.factory,
            poll_interval=60,
            shuffle_confirm_timeout=3.0,
        )
        self.preview = LocalPreviewPlayer(self.output)
        self.engine = PlaybackEngine(
            self.session, self.preview, queue=QueueManager(random.Random(seed))
        )
        self.snapshots: List[Any] = []
        self.engine.subscribe(self.snapshots.append)

    async def connect_remote(self, device_id: str = "device-1") -> FakeDevicePlayer:
        """Register a device for a credential and mark it ready."""
        await self.engine.set_credential("token-1")
        player = self.factory.last
        player.emit("ready", {"device_id": device_id})
        return player


@pytest.fixture
def tracks() -> List[Track]:
    """Three fully playable tracks: A, B, C."""
    return [make_track("A"), make_track("B"), make_track("C")]


@pytest.fixture
def track_factory() -> Callable[..., Track]:
    return make_track


@pytest.fixture
def state_factory() -> Callable[..., Dict[str, Any]]:
    return sdk_state


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def device_factory() -> FakeDeviceFactory:
    return FakeDeviceFactory()


@pytest.fixture
def audio_output() -> FakeAudioOutput:
    return FakeAudioOutput()


@pytest.fixture
def rig() -> EngineRig:
    return EngineRig()


@pytest.fixture
def anyio_backend():
    return "asyncio"
