"""
Local preview player - short preview clips on a single audio output.

The output owns end-of-track and position signals ("ended" / "timeupdate");
this wrapper forwards them to subscribers and never polls.
"""

from typing import Any, Callable, List, Optional

from loguru import logger

from .exceptions import PreviewUnavailableError, UnsupportedOperationError
from .models import Track
from .sdk import EVENT_ENDED, EVENT_ERROR, EVENT_TIME_UPDATE, AudioOutput


class LocalPreviewPlayer:
    """Preview backend. Exclusive owner of its audio output."""

    def __init__(self, output: Optional[AudioOutput] = None, volume: int = 100):
        self.output = output
        self.current_track: Optional[Track] = None
        self.is_playing = False
        self.position_ms = 0

        self._ended_callbacks: List[Callable[[], None]] = []
        self._time_callbacks: List[Callable[[int], None]] = []
        self._error_callbacks: List[Callable[[Any], None]] = []

        if output is not None:
            output.volume = max(0, min(100, volume)) / 100
            output.add_event_listener(EVENT_TIME_UPDATE, self._handle_time_update)
            output.add_event_listener(EVENT_ENDED, self._handle_ended)
            output.add_event_listener(EVENT_ERROR, self._handle_error)

    @property
    def is_available(self) -> bool:
        return self.output is not None

    def can_play(self, track: Track) -> bool:
        return bool(track.preview_url) and self.is_available

    async def play(self, track: Track) -> None:
        """Stop whatever is playing and start track's preview from zero.

        Raises:
            PreviewUnavailableError: No preview URL, no output, or output refused
        """
        if not track.preview_url:
            raise PreviewUnavailableError("Track missing preview URL")
        if self.output is None:
            raise PreviewUnavailableError("Audio output not available")

        self.output.pause()
        self.output.src = track.preview_url
        self.output.current_time = 0
        self.position_ms = 0
        self.current_track = track

        try:
            await self.output.play()
        except Exception as e:
            self.is_playing = False
            logger.error(f"Error playing preview for {track.title}: {e}")
            raise PreviewUnavailableError(f"Preview playback failed: {e}") from e

        self.is_playing = True
        logger.debug(f"Playing preview: {track.title}")

    async def pause(self) -> bool:
        if self.output is None:
            return False
        self.output.pause()
        self.is_playing = False
        return True

    async def resume(self) -> bool:
        if self.output is None or not self.output.src:
            return False
        try:
            await self.output.play()
        except Exception:
            logger.exception("Error resuming preview")
            self.is_playing = False
            return False
        self.is_playing = True
        return True

    async def seek(self, position_ms: int) -> bool:
        if self.output is None:
            return False
        self.output.current_time = position_ms / 1000
        self.position_ms = position_ms
        return True

    async def set_volume(self, volume: int) -> bool:
        if self.output is None:
            return False
        self.output.volume = max(0, min(100, volume)) / 100
        return True

    async def skip_next(self) -> bool:
        raise UnsupportedOperationError("next track")

    async def skip_previous(self) -> bool:
        raise UnsupportedOperationError("previous track")

    # Subscriptions

    def on_ended(self, callback: Callable[[], None]) -> None:
        self._ended_callbacks.append(callback)

    def on_time_update(self, callback: Callable[[int], None]) -> None:
        self._time_callbacks.append(callback)

    def on_error(self, callback: Callable[[Any], None]) -> None:
        self._error_callbacks.append(callback)

    def _handle_time_update(self, _event: Any = None) -> None:
        if self.output is None:
            return
        self.position_ms = int((self.output.current_time or 0) * 1000)
        for callback in self._time_callbacks:
            try:
                callback(self.position_ms)
            except Exception:
                logger.exception("Error in preview time update callback")

    def _handle_ended(self, _event: Any = None) -> None:
        self.is_playing = False
        self.position_ms = 0
        for callback in self._ended_callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Error in preview ended callback")

    def _handle_error(self, event: Any = None) -> None:
        logger.error(f"Error playing audio: {event}")
        self.is_playing = False
        for callback in self._error_callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Error in preview error callback")

    def close(self) -> None:
        if self.output is None:
            return
        self.output.remove_event_listener(EVENT_TIME_UPDATE, self._handle_time_update)
        self.output.remove_event_listener(EVENT_ENDED, self._handle_ended)
        self.output.remove_event_listener(EVENT_ERROR, self._handle_error)
        try:
            self.output.pause()
            self.output.close()
        except Exception:
            logger.exception("Error closing audio output")
        self.is_playing = False
