"""
Playback strategy selection.

Two interchangeable strategies share one shape (PlaybackStrategy). The
selector owns the only "which backend is primary" decision:

- Remote is primary whenever its session is ready, otherwise Preview.
- play() tries primary, then falls back to Preview; if neither can play the
  track it raises NoPlaybackMethodError.
- Every other command goes to the primary only.
"""

from typing import Protocol

from loguru import logger

from .exceptions import NoPlaybackMethodError, PlaybackError
from .models import StrategyKind, Track
from .preview_player import LocalPreviewPlayer
from .remote_session import RemoteDeviceSession


class PlaybackStrategy(Protocol):
    kind: StrategyKind

    @property
    def is_ready(self) -> bool: ...

    @property
    def is_active(self) -> bool: ...

    def can_play(self, track: Track) -> bool: ...

    async def play(self, track: Track) -> None: ...

    async def pause(self) -> bool: ...

    async def resume(self) -> bool: ...

    async def seek(self, position_ms: int) -> bool: ...

    async def set_volume(self, volume: int) -> bool: ...

    async def skip_next(self) -> bool: ...

    async def skip_previous(self) -> bool: ...


class RemoteStrategy:
    """Full-track playback on the remote device."""

    kind = StrategyKind.REMOTE

    def __init__(self, session: RemoteDeviceSession):
        self.session = session

    @property
    def is_ready(self) -> bool:
        return self.session.ready

    @property
    def is_active(self) -> bool:
        return self.session.ready

    def can_play(self, track: Track) -> bool:
        return self.session.ready and bool(track.remote_uri)

    async def play(self, track: Track) -> None:
        if not track.remote_uri:
            raise PlaybackError("Track missing remote URI")
        await self.session.play_by_uri(track.remote_uri)

    async def pause(self) -> bool:
        return await self.session.pause()

    async def resume(self) -> bool:
        return await self.session.resume()

    async def seek(self, position_ms: int) -> bool:
        return await self.session.seek(position_ms)

    async def set_volume(self, volume: int) -> bool:
        return await self.session.set_volume(volume)

    async def skip_next(self) -> bool:
        return await self.session.skip_next()

    async def skip_previous(self) -> bool:
        return await self.session.skip_previous()


class PreviewStrategy:
    """Preview clips on the local audio output. Always ready."""

    kind = StrategyKind.PREVIEW

    def __init__(self, player: LocalPreviewPlayer):
        self.player = player

    @property
    def is_ready(self) -> bool:
        return True

    @property
    def is_active(self) -> bool:
        return True

    def can_play(self, track: Track) -> bool:
        return self.player.can_play(track)

    async def play(self, track: Track) -> None:
        await self.player.play(track)

    async def pause(self) -> bool:
        return await self.player.pause()

    async def resume(self) -> bool:
        return await self.player.resume()

    async def seek(self, position_ms: int) -> bool:
        return await self.player.seek(position_ms)

    async def set_volume(self, volume: int) -> bool:
        return await self.player.set_volume(volume)

    async def skip_next(self) -> bool:
        return await self.player.skip_next()

    async def skip_previous(self) -> bool:
        return await self.player.skip_previous()


class PlaybackStrategySelector:
    """Backend-agnostic facade over the remote and preview strategies."""

    def __init__(self, remote: RemoteStrategy, preview: PreviewStrategy):
        self.remote = remote
        self.preview = preview

    @property
    def primary(self) -> PlaybackStrategy:
        return self.remote if self.remote.is_ready else self.preview

    @property
    def primary_kind(self) -> StrategyKind:
        return self.primary.kind

    @property
    def is_ready(self) -> bool:
        return self.primary.is_ready

    @property
    def is_active(self) -> bool:
        return self.primary.is_active

    def can_play(self, track: Track) -> bool:
        return self.primary.can_play(track) or self.preview.can_play(track)

    async def play(self, track: Track) -> StrategyKind:
        """Play track on the primary backend, falling back to preview.

        Returns:
            The kind of backend that accepted the track

        Raises:
            NoPlaybackMethodError: Neither backend can play the track
            PlaybackError: Preview was the only candidate and it failed
        """
        primary = self.primary

        if primary.can_play(track):
            try:
                await primary.play(track)
                return primary.kind
            except Exception as e:
                if primary is self.preview:
                    raise
                logger.warning(f"Primary strategy failed, trying fallback: {e}")

        if primary is not self.preview and self.preview.can_play(track):
            await self.preview.play(track)
            return self.preview.kind

        raise NoPlaybackMethodError(track)

    async def pause(self) -> bool:
        return await self.primary.pause()

    async def resume(self) -> bool:
        return await self.primary.resume()

    async def seek(self, position_ms: int) -> bool:
        return await self.primary.seek(position_ms)

    async def set_volume(self, volume: int) -> bool:
        return await self.primary.set_volume(volume)

    async def skip_next(self) -> bool:
        return await self.primary.skip_next()

    async def skip_previous(self) -> bool:
        return await self.primary.skip_previous()
