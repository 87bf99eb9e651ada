"""Undo/redo history of protocol snapshots."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from oitcalc.dosing.models import Protocol


@dataclass(frozen=True)
class HistoryItem:
    """A protocol snapshot and the edit that produced it."""

    protocol: Protocol
    label: str
    timestamp: float = field(default_factory=time.time)


class ProtocolHistory:
    """Linear history with a cursor.

    Protocols are immutable, so a snapshot is just a reference. Pushing after
    an undo discards the redo branch.

    Example:
        >>> history = ProtocolHistory()
        >>> history.push(protocol, "Initial protocol")
        >>> history.push(edited, "Step 2 Target: 2.5 -> 3 mg")
        >>> history.undo() is protocol
        True
    """

    def __init__(self) -> None:
        self._items: list[HistoryItem] = []
        self._cursor = -1

    def push(self, protocol: Protocol, label: str) -> bool:
        """Record a new snapshot.

        Args:
            protocol: Protocol after the edit
            label: Human-readable description of the edit

        Returns:
            False if the snapshot equals the current one and was ignored
        """
        current = self.current
        if current is not None and current == protocol:
            return False
        del self._items[self._cursor + 1 :]
        self._items.append(HistoryItem(protocol=protocol, label=label))
        self._cursor = len(self._items) - 1
        return True

    @property
    def current(self) -> Optional[Protocol]:
        """Protocol at the cursor, or None if nothing has been pushed."""
        if self._cursor < 0:
            return None
        return self._items[self._cursor].protocol

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._items) - 1

    def undo(self) -> Optional[Protocol]:
        """Step back one snapshot; None when already at the oldest."""
        if not self.can_undo():
            return None
        self._cursor -= 1
        return self.current

    def redo(self) -> Optional[Protocol]:
        """Step forward one snapshot; None when already at the newest."""
        if not self.can_redo():
            return None
        self._cursor += 1
        return self.current

    def labels(self) -> list[str]:
        """Edit labels up to and including the cursor, oldest first."""
        return [item.label for item in self._items[: self._cursor + 1]]

    def __len__(self) -> int:
        return len(self._items)
