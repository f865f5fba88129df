"""
Playback queue with index-permutation shuffle.

The original order is the source of truth. Shuffle is stored as a list of
indices into the original order, so unshuffling restores the exact sequence
and the current track keeps its presented slot across a toggle.
"""

import random
from typing import List, NamedTuple, Optional, Sequence

from loguru import logger

from .models import Track


class QueueSnapshot(NamedTuple):
    """Pre-collapse queue kept while repeat-one is active."""

    original: tuple
    permutation: Optional[tuple]


class QueueManager:
    """Ordered track list plus an optional shuffle permutation.

    Presented order = permutation applied to the original order (identity when
    no permutation is active). current_index is a position in presented order,
    or -1 if there is none.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._original: List[Track] = []
        self._permutation: Optional[List[int]] = None
        self._shadow: Optional[QueueSnapshot] = None
        self.current_index = -1

    @property
    def queue(self) -> List[Track]:
        """Tracks in presented order."""
        if self._permutation is None:
            return list(self._original)
        return [self._original[i] for i in self._permutation]

    @property
    def original(self) -> List[Track]:
        return list(self._original)

    @property
    def is_shuffled(self) -> bool:
        return self._permutation is not None

    @property
    def is_collapsed(self) -> bool:
        return self._shadow is not None

    def __len__(self) -> int:
        return len(self._original)

    def set_queue(self, tracks: Sequence[Track]) -> None:
        """Replace the original order. Always clears shuffle."""
        self._original = list(tracks)
        self._permutation = None
        self._shadow = None
        self.current_index = -1
        logger.debug(f"Queue set: {len(self._original)} tracks")

    def toggle_shuffle(self, current_track: Optional[Track] = None) -> None:
        """Toggle shuffle, keeping the current track in its presented slot.

        Args:
            current_track: Track currently playing (if any)
        """
        if not self._original:
            return

        if self._permutation is not None:
            self._permutation = None
            original_index = self._index_in(self._original, current_track)
            if original_index >= 0:
                self.current_index = original_index
            logger.debug("Shuffle off")
            return

        indices = list(range(len(self._original)))
        current_idx = self._index_in(self._original, current_track)

        if current_idx >= 0:
            # Shuffle everything else, then reinsert current at its own index
            rest = [i for i in indices if i != current_idx]
            self._rng.shuffle(rest)
            rest.insert(current_idx, current_idx)
            self._permutation = rest
        else:
            self._rng.shuffle(indices)
            self._permutation = indices

        logger.debug(f"Shuffle on ({len(self._permutation)} tracks)")

    def get_next_index(self) -> Optional[int]:
        if 0 <= self.current_index < len(self._original) - 1:
            return self.current_index + 1
        return None

    def get_previous_index(self) -> Optional[int]:
        if self.current_index > 0:
            return self.current_index - 1
        return None

    def set_current_index(self, index: int) -> None:
        self.current_index = index

    def track_at(self, index: int) -> Optional[Track]:
        presented = self.queue
        if 0 <= index < len(presented):
            return presented[index]
        return None

    def sync_current(self, track: Optional[Track]) -> None:
        """Point current_index at track's presented position, if it is queued."""
        if track is None or not self._original:
            return
        index = self._index_in(self.queue, track)
        if index >= 0:
            self.current_index = index

    def collapse(self, track: Track) -> None:
        """Reduce the presented queue to [track], keeping the full queue aside."""
        if self._shadow is None:
            self._shadow = QueueSnapshot(
                original=tuple(self._original),
                permutation=tuple(self._permutation) if self._permutation is not None else None,
            )
        self._original = [track]
        self._permutation = None
        self.current_index = 0
        logger.debug(f"Queue collapsed to current track: {track.title}")

    def expand(self, current_track: Optional[Track] = None) -> None:
        """Restore the queue saved by collapse() verbatim."""
        if self._shadow is None:
            return
        self._original = list(self._shadow.original)
        self._permutation = (
            list(self._shadow.permutation) if self._shadow.permutation is not None else None
        )
        self._shadow = None
        self.current_index = -1
        self.sync_current(current_track)
        logger.debug(f"Queue restored: {len(self._original)} tracks")

    @staticmethod
    def _index_in(tracks: Sequence[Track], track: Optional[Track]) -> int:
        if track is None:
            return -1
        for i, candidate in enumerate(tracks):
            if candidate.id == track.id:
                return i
        return -1
