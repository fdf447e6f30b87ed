"""Bookkeeping for places moved out of, tracked per stack frame."""

from __future__ import annotations

from collections.abc import Hashable, Iterator


class MovedPlaces:
    """A stack of sets recording the places moved out of in each frame.

    A fresh instance starts with one empty frame.
    """

    def __init__(self) -> None:
        self._frames: list[set[Hashable]] = [set()]

    def __len__(self) -> int:
        return len(self._frames)

    def _check(self, index: int) -> None:
        if not 0 <= index < len(self._frames):
            raise IndexError(f"Tried to insert place at missing frame: {index}")

    def places_at(self, index: int) -> Iterator[Hashable]:
        """Iterate over the places moved in frame ``index``."""
        if not 0 <= index < len(self._frames):
            raise IndexError(f"No frame at index {index}")
        return iter(self._frames[index])

    def add_place(self, frame: int, place: Hashable) -> None:
        """Record that ``place`` was moved in ``frame``."""
        self._check(frame)
        self._frames[frame].add(place)

    def push_frame(self) -> None:
        self._frames.append(set())

    def pop_frame(self) -> None:
        if self._frames:
            self._frames.pop()