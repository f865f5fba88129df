"""
Playback engine - the public entry point for playback.

Composes the queue, repeat controller, remote session and preview player
behind the strategy selector, and is the only writer of the public view
(current track, playing flag, position, volume). Backend events reach that
view through the reducers below; backends never write it themselves.
"""

import asyncio
from typing import Callable, Coroutine, List, Optional, Sequence, Set

from loguru import logger

from .exceptions import NoPlaybackMethodError, PlaybackError
from .models import (
    PlaybackSnapshot,
    PlaybackStatus,
    RemoteSessionState,
    RepeatMode,
    StrategyKind,
    Track,
    repeat_mode_from_remote,
    repeat_mode_to_remote,
)
from .preview_player import LocalPreviewPlayer
from .queue import QueueManager
from .remote_session import RemoteDeviceSession
from .repeat import RepeatController
from .strategy import PlaybackStrategySelector, PreviewStrategy, RemoteStrategy

SnapshotListener = Callable[[PlaybackSnapshot], None]


class PlaybackEngine:
    """Orchestrates playback across the remote device and preview backends.

    States: IDLE (no current track) -> LOADING (play issued) -> PLAYING <-> PAUSED.
    """

    def __init__(
        self,
        session: RemoteDeviceSession,
        preview: LocalPreviewPlayer,
        queue: Optional[QueueManager] = None,
        repeat: Optional[RepeatController] = None,
        volume: int = 100,
    ):
        self.session = session
        self.preview = preview
        self.queue_manager = queue or QueueManager()
        self.repeat = repeat or RepeatController()
        self.selector = PlaybackStrategySelector(RemoteStrategy(session), PreviewStrategy(preview))

        self.current_track: Optional[Track] = None
        self.status = PlaybackStatus.IDLE
        self.is_playing = False
        self.current_time_ms = 0
        self.duration_ms = 0
        self.volume = max(0, min(100, int(volume)))

        # Bumped by every play_track; responses from older calls are stale
        self._play_generation = 0
        # Backend that accepted the current track (None while loading)
        self._sounding: Optional[StrategyKind] = None
        self._primary = self.selector.primary_kind

        self._listeners: List[SnapshotListener] = []
        self._tasks: Set[asyncio.Task] = set()

        session.add_change_callback(self._on_remote_change)
        preview.on_time_update(self._on_preview_time)
        preview.on_ended(self._on_preview_ended)
        preview.on_error(self._on_preview_error)

    # Public view

    @property
    def queue(self) -> List[Track]:
        return self.queue_manager.queue

    @property
    def current_index(self) -> int:
        return self.queue_manager.current_index

    @property
    def active_backend(self) -> StrategyKind:
        return self.selector.primary_kind

    @property
    def remote_active(self) -> bool:
        return self.active_backend == StrategyKind.REMOTE

    @property
    def is_shuffled(self) -> bool:
        if self.remote_active:
            return self.session.state.shuffle
        return self.queue_manager.is_shuffled

    @property
    def repeat_mode(self) -> RepeatMode:
        if self.remote_active:
            return repeat_mode_from_remote(self.session.state.repeat_mode)
        return self.repeat.mode

    def snapshot(self) -> PlaybackSnapshot:
        duration = self.duration_ms
        if not duration and self.current_track is not None:
            duration = self.current_track.duration_ms
        return PlaybackSnapshot(
            current_track=self.current_track,
            status=self.status,
            is_playing=self.is_playing,
            current_time_ms=self.current_time_ms,
            duration_ms=duration,
            volume=self.volume,
            queue=tuple(self.queue),
            current_index=self.current_index,
            is_shuffled=self.is_shuffled,
            repeat_mode=self.repeat_mode,
            active_backend=self.active_backend,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a listener for snapshots. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Error in playback listener")

    # Lifecycle

    async def start(self, credential: Optional[str] = None) -> None:
        if credential:
            await self.set_credential(credential)
        self._emit()

    async def close(self) -> None:
        self.session.remove_change_callback(self._on_remote_change)
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        await self.session.close()
        self.preview.close()
        self._listeners.clear()
        logger.info("Playback engine closed")

    async def set_credential(self, credential: Optional[str]) -> None:
        await self.session.set_credential(credential)
        self._sync_primary()

    # Queue

    def set_queue(self, tracks: Sequence[Track]) -> None:
        """Load a new queue. Clears shuffle and any repeat-one shadow."""
        self.queue_manager.set_queue(tracks)
        self.queue_manager.sync_current(self.current_track)
        self._emit()

    async def play_from_queue(self, tracks: Sequence[Track], index: int) -> None:
        """Load tracks as the queue and start playing tracks[index].

        Raises:
            IndexError: index is outside the queue
        """
        if not 0 <= index < len(tracks):
            raise IndexError(f"Queue position {index} out of range (0-{len(tracks) - 1})")
        self.set_queue(tracks)
        self.queue_manager.set_current_index(index)
        await self.play_track(self.queue_manager.track_at(index))

    # Transport

    async def play_track(self, track: Track) -> None:
        """Make track current and start it on the best available backend.

        Raises:
            NoPlaybackMethodError: Neither backend can play the track (state unchanged)
            PlaybackError: The chosen backend failed to start the track
        """
        if not self.selector.can_play(track):
            logger.warning(f"No playback method available for: {track.title}")
            raise NoPlaybackMethodError(track)

        self._play_generation += 1
        generation = self._play_generation

        self.current_track = track
        self.current_time_ms = 0
        self.duration_ms = track.duration_ms
        self.status = PlaybackStatus.LOADING
        self.is_playing = False
        self._sounding = None
        self.queue_manager.sync_current(track)
        self._emit()

        try:
            kind = await self.selector.play(track)
        except Exception as e:
            if generation != self._play_generation:
                logger.debug(f"Discarding stale play failure for {track.title}: {e}")
                return
            logger.error(f"Failed to play {track.title}: {e}")
            self.is_playing = False
            self.status = PlaybackStatus.PAUSED
            self._emit()
            raise

        if generation != self._play_generation:
            logger.debug(f"Discarding stale play response for {track.title}")
            if kind == StrategyKind.PREVIEW:
                await self._silence_stale_preview()
            return

        self._sounding = kind
        if kind == StrategyKind.PREVIEW:
            self.is_playing = True
            self.status = PlaybackStatus.PLAYING
        else:
            # Remote stays LOADING until the device reports the track playing,
            # unless that already happened while the request was in flight
            self._reduce_remote(self.session.state)
        logger.info(f"Playing via {kind.value}: {track.title}")
        self._emit()

    async def pause(self) -> bool:
        if not await self._command("pause", self.selector.pause):
            return False
        self.is_playing = False
        if self.current_track is not None:
            self.status = PlaybackStatus.PAUSED
        self._emit()
        return True

    async def resume(self) -> bool:
        if self.current_track is None:
            logger.debug("Nothing to resume")
            return False
        if not await self._command("resume", self.selector.resume):
            return False
        self.is_playing = True
        self.status = PlaybackStatus.PLAYING
        self._emit()
        return True

    async def toggle_play_pause(self) -> bool:
        if self.is_playing:
            return await self.pause()
        return await self.resume()

    async def seek(self, position_ms: int) -> bool:
        position_ms = max(0, int(position_ms))
        if not await self._command("seek", lambda: self.selector.seek(position_ms)):
            return False
        self.current_time_ms = position_ms
        self._emit()
        return True

    async def set_volume(self, volume: int) -> bool:
        """Set the global volume (0-100) and apply it to the primary backend."""
        self.volume = max(0, min(100, int(volume)))
        self._emit()
        return await self._apply_volume()

    async def next(self) -> None:
        """Advance to the next queued track.

        At the end of the queue, a remote device skips natively; the preview
        backend has nowhere to go and nothing happens.
        """
        if self._repeat_in_place():
            await self._replay_current()
            return

        index = self.queue_manager.get_next_index()
        if index is not None:
            self.queue_manager.set_current_index(index)
            await self.play_track(self.queue_manager.track_at(index))
        elif self.remote_active:
            await self._command("next track", self.selector.skip_next)
        else:
            logger.debug("Already at the end of the queue")

    async def previous(self) -> None:
        """Go back one queued track, or restart the first one."""
        if self._repeat_in_place():
            await self._replay_current()
            return

        index = self.queue_manager.get_previous_index()
        if index is not None:
            self.queue_manager.set_current_index(index)
            await self.play_track(self.queue_manager.track_at(index))
        elif self.remote_active:
            await self._command("previous track", self.selector.skip_previous)
        elif self.queue_manager.current_index == 0:
            await self.seek(0)
        else:
            logger.debug("Already at the start of the queue")

    # Modes

    async def toggle_shuffle(self) -> bool:
        """Toggle shuffle. Returns the new shuffle state."""
        if self.remote_active:
            target = not self.session.state.shuffle
            await self.session.set_shuffle(target)
            if self.queue_manager.is_shuffled != target:
                self._toggle_local_shuffle()
        else:
            self._toggle_local_shuffle()
        self._emit()
        return self.is_shuffled

    async def toggle_repeat(self) -> RepeatMode:
        """Toggle repeat off <-> one. Returns the new mode."""
        if self.remote_active:
            target = RepeatMode.OFF if self.repeat_mode == RepeatMode.ONE else RepeatMode.ONE
            self.repeat.set_mode(target)
            await self.session.set_repeat(repeat_mode_to_remote(target))
            # The device repeats natively; only undo a collapse left from preview
            if target == RepeatMode.OFF:
                self.queue_manager.expand(self.current_track)
        else:
            mode = self.repeat.toggle_repeat()
            if mode == RepeatMode.ONE and self.current_track is not None:
                self.queue_manager.collapse(self.current_track)
            elif mode == RepeatMode.OFF:
                self.queue_manager.expand(self.current_track)
        self._emit()
        return self.repeat_mode

    def _toggle_local_shuffle(self) -> None:
        if self.queue_manager.is_collapsed:
            # Shuffle the full queue held aside, not the one-track view
            self.queue_manager.expand(self.current_track)
            self.queue_manager.toggle_shuffle(self.current_track)
            self.queue_manager.collapse(self.current_track)
        else:
            self.queue_manager.toggle_shuffle(self.current_track)

    def _repeat_in_place(self) -> bool:
        return (
            self.repeat.should_repeat_track()
            and not self.remote_active
            and self.current_track is not None
        )

    async def _replay_current(self) -> None:
        logger.debug(f"Repeating: {self.current_track.title}")
        await self.play_track(self.current_track)

    # Helpers

    async def _command(self, name: str, call: Callable[[], Coroutine]) -> bool:
        """Run an ancillary backend command; failures are logged, never raised."""
        try:
            success = await call()
        except PlaybackError as e:
            logger.warning(f"Cannot {name}: {e}")
            return False
        except Exception:
            logger.exception(f"Error during {name}")
            return False
        if not success:
            logger.debug(f"{name} had no effect")
        return bool(success)

    async def _silence_stale_preview(self) -> None:
        """Stop a superseded track that a late fallback started on the preview output."""
        if self.preview.current_track is not None and self.preview.current_track.matches(
            self.current_track
        ):
            return
        await self.preview.pause()
        if self._sounding == StrategyKind.PREVIEW:
            self.is_playing = False
            self.status = PlaybackStatus.PAUSED
            self._emit()

    async def _apply_volume(self) -> bool:
        return await self._command("set volume", lambda: self.selector.set_volume(self.volume))

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error("Background playback task failed")

    def _sync_primary(self) -> None:
        """React to the primary backend changing (device ready / lost)."""
        kind = self.selector.primary_kind
        if kind == self._primary:
            return
        previous, self._primary = self._primary, kind
        logger.info(f"Primary playback backend: {previous.value} -> {kind.value}")

        silence_preview = False
        if kind == StrategyKind.REMOTE:
            # The device repeats natively, so show the full queue
            self.queue_manager.expand(self.current_track)
            if self._sounding == StrategyKind.PREVIEW:
                # Transport now goes to the device; the clip would play on unreachable
                silence_preview = True
                self._sounding = None
                self.is_playing = False
                self.status = PlaybackStatus.PAUSED
        else:
            if self.repeat.should_repeat_track() and self.current_track is not None:
                self.queue_manager.collapse(self.current_track)
            if self._sounding != StrategyKind.PREVIEW:
                # Whatever the device was playing is gone
                self.is_playing = False
                if self.current_track is not None:
                    self.status = PlaybackStatus.PAUSED

        try:
            if silence_preview:
                self._spawn(self.preview.pause())
            self._spawn(self._apply_volume())
        except RuntimeError:
            logger.debug("No running event loop, backend switch not applied")

    # Reducers

    def _on_remote_change(self, state: RemoteSessionState) -> None:
        if state.ready and state.current_track is not None:
            # Keep the local mode in step with the device for a later fallback
            self.repeat.set_mode(repeat_mode_from_remote(state.repeat_mode))
        self._sync_primary()
        if state.ready:
            self._reduce_remote(state)
        self._emit()

    def _reduce_remote(self, state: RemoteSessionState) -> None:
        if self._sounding == StrategyKind.PREVIEW:
            return
        remote_track = state.current_track

        if self.status == PlaybackStatus.LOADING:
            # Only the track we asked for may complete the load
            if remote_track is None or not remote_track.matches(self.current_track):
                return
        elif remote_track is not None and not remote_track.matches(self.current_track):
            # Device moved on by itself (native skip, context advance)
            self.current_track = remote_track.to_track()
            self.queue_manager.sync_current(self.current_track)
            logger.debug(f"Adopted remote track: {self.current_track.title}")

        if remote_track is None:
            return

        self.is_playing = not state.paused
        self.status = PlaybackStatus.PAUSED if state.paused else PlaybackStatus.PLAYING
        self.current_time_ms = state.position_ms
        if state.duration_ms:
            self.duration_ms = state.duration_ms

    def _on_preview_time(self, position_ms: int) -> None:
        if self._sounding != StrategyKind.PREVIEW:
            return
        self.current_time_ms = position_ms
        self._emit()

    def _on_preview_ended(self) -> None:
        if self._sounding != StrategyKind.PREVIEW:
            return
        self.is_playing = False
        self.current_time_ms = 0
        self._emit()
        self._spawn(self._handle_track_end())

    def _on_preview_error(self, event) -> None:
        if self._sounding != StrategyKind.PREVIEW:
            return
        self.is_playing = False
        if self.current_track is not None:
            self.status = PlaybackStatus.PAUSED
        self._emit()

    async def _handle_track_end(self) -> None:
        try:
            if self.repeat.should_repeat_track() and self.current_track is not None:
                await self._replay_current()
                return

            index = self.queue_manager.get_next_index()
            if index is not None:
                self.queue_manager.set_current_index(index)
                await self.play_track(self.queue_manager.track_at(index))
                return
        except PlaybackError as e:
            logger.error(f"Could not continue playback: {e}")
            return

        logger.info("Reached end of queue")
        self.current_track = None
        self.status = PlaybackStatus.IDLE
        self.current_time_ms = 0
        self.duration_ms = 0
        self._sounding = None
        self.queue_manager.set_current_index(-1)
        self._emit()
