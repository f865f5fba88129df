"""Repeat mode controller (off / repeat-one)."""

from loguru import logger

from .models import RepeatMode


class RepeatController:
    """Two-state repeat mode (off and one)."""

    def __init__(self, mode: RepeatMode = RepeatMode.OFF):
        self.mode = mode

    def toggle_repeat(self) -> RepeatMode:
        """Flip off <-> one and return the new mode."""
        self.mode = RepeatMode.ONE if self.mode == RepeatMode.OFF else RepeatMode.OFF
        logger.debug(f"Repeat mode: {self.mode.value}")
        return self.mode

    def set_mode(self, mode: RepeatMode) -> None:
        self.mode = mode

    def should_repeat_track(self) -> bool:
        return self.mode == RepeatMode.ONE
