"""Fixed-size result table addressed by request index."""

from __future__ import annotations

from typing import Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class SlotTable(Generic[T]):
    """Holds one optional entry per requested slot.

    Each slot is written at most once, by the task that owns it, so results stay
    attached to their request index no matter in which order tasks finish.
    """

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("slot table size must be non-negative")
        self._entries: List[Optional[T]] = [None] * size
        self._written: List[bool] = [False] * size

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> Optional[T]:
        return self._entries[index]

    def __iter__(self) -> Iterator[Optional[T]]:
        return iter(list(self._entries))

    def set(self, index: int, value: T) -> None:
        """Store ``value`` for ``index``; a second write to the same slot is rejected."""
        if self._written[index]:
            raise RuntimeError(f"slot {index} was already written")
        self._entries[index] = value
        self._written[index] = True

    def is_written(self, index: int) -> bool:
        return self._written[index]

    def filled(self) -> List[T]:
        """Return written entries in slot order, skipping empty slots."""
        return [entry for entry in self._entries if entry is not None]
