"""Per-identifier mutual exclusion for mutating operations."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

log = getLogger(__name__)


@dataclass(slots=True)
class _Slot:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class KeyedLock:
    """Arena of locks keyed by UPI id.

    Slots are created on demand and discarded once no caller references them,
    so unrelated identifiers never contend. Multi-key acquisition happens in
    sorted order to keep concurrent multi-key holders deadlock free.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: dict[str, _Slot] = {}

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        held: list[tuple[str, _Slot]] = []
        try:
            for key in sorted(set(keys)):
                slot = self._checkout(key)
                try:
                    slot.lock.acquire()
                except BaseException:
                    self._checkin(key, slot)
                    raise
                held.append((key, slot))
            yield
        finally:
            for key, slot in reversed(held):
                slot.lock.release()
                self._checkin(key, slot)

    def is_held(self, key: str) -> bool:
        with self._guard:
            slot = self._slots.get(key)
            return slot is not None and slot.lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

    def _checkout(self, key: str) -> _Slot:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = _Slot()
                self._slots[key] = slot
            slot.users += 1
            return slot

    def _checkin(self, key: str, slot: _Slot) -> None:
        with self._guard:
            slot.users -= 1
            if slot.users <= 0 and self._slots.get(key) is slot:
                del self._slots[key]
