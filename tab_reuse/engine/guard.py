"""Per-tab dedup guard for navigations that reach us from several event sources.

The same external open can show up as a navigation intercept, a tab-created
event and a tab-url-changed event. Whichever arrives first claims the tab;
the rest are no-ops while it is handling and for a settle window after.

Check-and-insert happens in one synchronous call, so on a single event loop
two deliveries cannot both pass ``try_begin``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

Scheduler = Callable[[float, Callable[[], None]], Any]


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> Any:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # Outside a loop there is no timer; expiry is still honoured on lookup.
        return None
    return loop.call_later(delay, callback)


@dataclass(slots=True)
class _Entry:
    handling: bool
    expires_at: float | None = None


class HandledSet:
    def __init__(
        self,
        *,
        settle_window: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.settle_window = float(settle_window)
        self._clock = clock
        self._schedule = scheduler or _loop_scheduler
        self._entries: dict[Hashable, _Entry] = {}

    def _live(self, tab_id: Hashable) -> _Entry | None:
        entry = self._entries.get(tab_id)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[tab_id]
            return None
        return entry

    def try_begin(self, tab_id: Hashable) -> bool:
        """Claim ``tab_id``; False if it is handling or recently settled."""
        if self._live(tab_id) is not None:
            return False
        self._entries[tab_id] = _Entry(handling=True)
        return True

    def settle(self, tab_id: Hashable) -> None:
        expires_at = self._clock() + self.settle_window
        self._entries[tab_id] = _Entry(handling=False, expires_at=expires_at)
        self._schedule(self.settle_window, lambda: self._expire(tab_id, expires_at))

    def _expire(self, tab_id: Hashable, expires_at: float) -> None:
        entry = self._entries.get(tab_id)
        # A newer claim for the same tab owns the slot now.
        if entry is not None and entry.expires_at == expires_at:
            del self._entries[tab_id]

    def discard(self, tab_id: Hashable) -> None:
        self._entries.pop(tab_id, None)

    def is_handling(self, tab_id: Hashable) -> bool:
        entry = self._live(tab_id)
        return entry is not None and entry.handling

    def __contains__(self, tab_id: object) -> bool:
        if not isinstance(tab_id, Hashable):
            return False
        return self._live(tab_id) is not None

    def __len__(self) -> int:
        for tab_id in list(self._entries):
            self._live(tab_id)
        return len(self._entries)


__all__ = ["HandledSet", "Scheduler"]
