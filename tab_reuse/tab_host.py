"""The browser side of the engine: what it needs from a tab host, and one host.

The engine never talks to a browser directly. It goes through ``TabHost``:
enumerate tabs, bring one to front, close/move/navigate, run a snippet in a
page, and tell us once when a tab finishes loading. ``ExtensionTabHost``
implements that contract over the extension gateway; tests use an in-memory
fake.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .extension_gateway import ExtensionGateway

_LOGGER = logging.getLogger("tab_reuse.tab_host")

TabId = int


class TabHostError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class CandidateTab:
    id: TabId
    url: str
    window_id: int
    index: int

    @classmethod
    def from_payload(cls, raw: Any) -> CandidateTab | None:
        """Build from an extension ``tabs.Tab``-shaped dict; None if it has no usable id."""
        if not isinstance(raw, dict):
            return None
        try:
            tab_id = int(raw.get("id"))
        except (TypeError, ValueError):
            return None
        try:
            window_id = int(raw.get("windowId") or 0)
        except (TypeError, ValueError):
            window_id = 0
        try:
            index = int(raw.get("index") or 0)
        except (TypeError, ValueError):
            index = 0
        url = raw.get("url")
        return cls(id=tab_id, url=url if isinstance(url, str) else "", window_id=window_id, index=index)


class TabHost(Protocol):
    async def list_tabs(self) -> Sequence[CandidateTab]: ...

    async def activate_tab(self, tab_id: TabId) -> None: ...

    async def focus_window(self, window_id: int) -> None: ...

    async def close_tab(self, tab_id: TabId) -> None: ...

    async def move_tab(self, tab_id: TabId, index: int) -> None: ...

    async def navigate_tab(self, tab_id: TabId, url: str) -> None: ...

    async def run_in_page(self, tab_id: TabId, code: str, args: list[Any]) -> Any: ...

    def on_navigation_complete(self, tab_id: TabId, callback: Callable[[], None]) -> None: ...


class TabEventListener(Protocol):
    async def on_navigation_intercepted(self, tab_id: TabId, url: str, frame_id: int) -> Any: ...

    async def on_tab_created(self, tab: CandidateTab) -> Any: ...

    async def on_tab_url_changed(self, tab_id: TabId, new_url: str, tab: CandidateTab | None) -> Any: ...


class OneShotSubscriptions:
    """Per-key callbacks that fire at most once and then unregister themselves."""

    def __init__(self) -> None:
        self._callbacks: dict[TabId, list[Callable[[], None]]] = {}

    def add(self, key: TabId, callback: Callable[[], None]) -> None:
        self._callbacks.setdefault(key, []).append(callback)

    def fire(self, key: TabId) -> int:
        callbacks = self._callbacks.pop(key, [])
        for cb in callbacks:
            try:
                cb()
            except Exception:  # noqa: BLE001
                _LOGGER.exception("navigation_complete_callback_failed tab=%s", key)
        return len(callbacks)

    def discard(self, key: TabId) -> None:
        self._callbacks.pop(key, None)

    def pending(self, key: TabId) -> int:
        return len(self._callbacks.get(key, ()))


class ExtensionTabHost:
    """``TabHost`` backed by the extension gateway's RPC channel.

    Also routes incoming tab events: ``navigationComplete`` feeds the one-shot
    subscriptions, everything else goes to the bound listener as a task on the
    gateway loop.
    """

    def __init__(self, gateway: ExtensionGateway, *, rpc_timeout: float = 10.0) -> None:
        self._gw = gateway
        self._rpc_timeout = float(rpc_timeout)
        self._complete = OneShotSubscriptions()
        self._listener: TabEventListener | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    def listen(self, listener: TabEventListener) -> None:
        self._listener = listener

    async def _call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        return await self._gw.rpc_call_async(method, params or {}, timeout=self._rpc_timeout)

    async def list_tabs(self) -> list[CandidateTab]:
        raw = await self._call("tabs.list")
        if not isinstance(raw, list):
            raise TabHostError("tabs.list returned a non-list result")
        tabs: list[CandidateTab] = []
        for item in raw:
            tab = CandidateTab.from_payload(item)
            if tab is not None:
                tabs.append(tab)
        return tabs

    async def activate_tab(self, tab_id: TabId) -> None:
        await self._call("tabs.activate", {"tabId": tab_id})

    async def focus_window(self, window_id: int) -> None:
        await self._call("windows.focus", {"windowId": window_id})

    async def close_tab(self, tab_id: TabId) -> None:
        # Usually "No tab with id": it is already gone, which is what we wanted.
        try:
            await self._call("tabs.close", {"tabId": tab_id})
        except TabHostError as exc:
            _LOGGER.debug("close_tab_ignored tab=%s error=%s", tab_id, exc)

    async def move_tab(self, tab_id: TabId, index: int) -> None:
        try:
            await self._call("tabs.move", {"tabId": tab_id, "index": int(index)})
        except TabHostError as exc:
            _LOGGER.debug("move_tab_ignored tab=%s error=%s", tab_id, exc)

    async def navigate_tab(self, tab_id: TabId, url: str) -> None:
        await self._call("tabs.navigate", {"tabId": tab_id, "url": url})

    async def run_in_page(self, tab_id: TabId, code: str, args: list[Any]) -> Any:
        return await self._call("tabs.runInPage", {"tabId": tab_id, "code": code, "args": list(args)})

    def on_navigation_complete(self, tab_id: TabId, callback: Callable[[], None]) -> None:
        self._complete.add(tab_id, callback)

    # ─────────────────────────────────────────────────────────────────────────
    # Incoming events (called on the gateway loop)
    # ─────────────────────────────────────────────────────────────────────────

    def dispatch_event(self, event: dict[str, Any]) -> None:
        kind = str(event.get("event") or "").strip()
        tab = CandidateTab.from_payload(event.get("tab"))
        try:
            tab_id = int(event["tabId"]) if event.get("tabId") is not None else (tab.id if tab else None)
        except (TypeError, ValueError):
            tab_id = None

        if kind == "navigationComplete":
            if tab_id is not None:
                self._complete.fire(tab_id)
            return

        if kind == "tabRemoved":
            if tab_id is not None:
                self._complete.discard(tab_id)
            return

        listener = self._listener
        if listener is None:
            return

        url = event.get("url")
        url = url if isinstance(url, str) else ""

        if kind == "navigationIntercepted" and tab_id is not None:
            try:
                frame_id = int(event.get("frameId") or 0)
            except (TypeError, ValueError):
                frame_id = -1
            self._spawn(listener.on_navigation_intercepted(tab_id, url, frame_id))
        elif kind == "tabCreated" and tab is not None:
            self._spawn(listener.on_tab_created(tab))
        elif kind == "tabUrlChanged" and tab_id is not None:
            self._spawn(listener.on_tab_url_changed(tab_id, url or (tab.url if tab else ""), tab))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.error("tab_event_handler_failed error=%r", exc)

    async def drain(self) -> None:
        """Wait for in-flight event handlers (used on shutdown and in tests)."""
        while self._tasks:
            with contextlib.suppress(Exception):
                await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = [
    "CandidateTab",
    "ExtensionTabHost",
    "OneShotSubscriptions",
    "TabEventListener",
    "TabHost",
    "TabHostError",
    "TabId",
]
