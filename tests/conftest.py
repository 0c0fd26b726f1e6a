from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from tab_reuse.tab_host import CandidateTab, OneShotSubscriptions, TabHostError


class FakeTabHost:
    """In-memory TabHost that records every call in order."""

    def __init__(self, tabs: list[CandidateTab] | None = None) -> None:
        self.tabs: dict[int, CandidateTab] = {t.id: t for t in (tabs or [])}
        self.calls: list[tuple[Any, ...]] = []
        self.failing: set[str] = set()
        self.page_result: Any = {"ok": True}
        self._complete = OneShotSubscriptions()

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.failing:
            raise TabHostError(f"{name} failed")

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [c[1:] for c in self.calls if c[0] == name]

    async def list_tabs(self) -> list[CandidateTab]:
        self._record("list_tabs")
        return list(self.tabs.values())

    async def activate_tab(self, tab_id: int) -> None:
        self._record("activate_tab", tab_id)

    async def focus_window(self, window_id: int) -> None:
        self._record("focus_window", window_id)

    async def close_tab(self, tab_id: int) -> None:
        self._record("close_tab", tab_id)
        self.tabs.pop(tab_id, None)

    async def move_tab(self, tab_id: int, index: int) -> None:
        self._record("move_tab", tab_id, index)

    async def navigate_tab(self, tab_id: int, url: str) -> None:
        self._record("navigate_tab", tab_id, url)
        tab = self.tabs.get(tab_id)
        if tab is not None:
            self.tabs[tab_id] = CandidateTab(id=tab.id, url=url, window_id=tab.window_id, index=tab.index)

    async def run_in_page(self, tab_id: int, code: str, args: list[Any]) -> Any:
        self._record("run_in_page", tab_id, list(args))
        return self.page_result

    def on_navigation_complete(self, tab_id: int, callback: Callable[[], None]) -> None:
        self.calls.append(("on_navigation_complete", tab_id))
        self._complete.add(tab_id, callback)

    def complete(self, tab_id: int) -> int:
        return self._complete.fire(tab_id)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now
        self.timers: list[tuple[float, Callable[[], None]]] = []

    def __call__(self) -> float:
        return self.now

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self.timers.append((self.now + delay, callback))

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [t for t in self.timers if t[0] <= self.now]
        self.timers = [t for t in self.timers if t[0] > self.now]
        for _when, cb in due:
            cb()


@pytest.fixture
def make_host() -> Callable[..., FakeTabHost]:
    return lambda *tabs: FakeTabHost(list(tabs))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
