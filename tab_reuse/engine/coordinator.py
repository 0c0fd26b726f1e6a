"""One entry point for every "maybe reuse a tab" navigation.

Event sources (navigation intercept, tab created, tab url changed) all call
``handle(tab_id, url)``; the guard makes sure only the first one does work.

Flow for a flagged URL:

1. claim the tab in the guard (else no-op)
2. close tabs matching ``__close_tabs`` patterns, remember their lowest index
3. resolve the clean URL against the remaining tabs
4. hit: focus the winner, run the page command there, close the new tab
   miss: move the new tab into the freed slot, navigate it to the clean URL,
   run the page command once it finishes loading
5. settle the guard entry (expires after the settle window)

Host failures are logged and skipped; the worst outcome is an extra tab.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from ..config import ReuseConfig
from ..redaction import redact_url
from ..tab_host import CandidateTab, TabHost, TabId
from .guard import HandledSet
from .page_commands import COPY_COOKIES, run_page_command
from .resolver import MatchTier, TabMatch, resolve_match
from .url_flags import Command, extract_flags, strip_control_flags
from .wildcard import matches_any_pattern

_LOGGER = logging.getLogger("tab_reuse.coordinator")

T = TypeVar("T")

TOP_LEVEL_FRAME = 0


@dataclass(frozen=True, slots=True)
class ReuseOutcome:
    tab_id: TabId
    clean_url: str
    action: Literal["focused", "navigated"]
    target_tab_id: TabId
    match: MatchTier | None = None
    closed_tab_ids: tuple[TabId, ...] = ()
    command: Command | None = None


class ReuseCoordinator:
    def __init__(
        self,
        host: TabHost,
        *,
        config: ReuseConfig | None = None,
        guard: HandledSet | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        cfg = config or ReuseConfig()
        self._host = host
        self.guard = guard if guard is not None else HandledSet(settle_window=cfg.settle_window)
        self._cookie_delay = float(cfg.cookie_settle_delay)
        self._sleep = sleep
        self._tasks: set[asyncio.Task[Any]] = set()

    # ─────────────────────────────────────────────────────────────────────────
    # Event sources
    # ─────────────────────────────────────────────────────────────────────────

    async def on_navigation_intercepted(self, tab_id: TabId, url: str, frame_id: int) -> ReuseOutcome | None:
        if frame_id != TOP_LEVEL_FRAME:
            return None
        return await self.handle(tab_id, url)

    async def on_tab_created(self, tab: CandidateTab) -> ReuseOutcome | None:
        return await self.handle(tab.id, tab.url)

    async def on_tab_url_changed(
        self, tab_id: TabId, new_url: str, tab: CandidateTab | None = None
    ) -> ReuseOutcome | None:
        return await self.handle(tab_id, new_url or (tab.url if tab is not None else ""))

    # ─────────────────────────────────────────────────────────────────────────
    # Engine
    # ─────────────────────────────────────────────────────────────────────────

    async def handle(self, tab_id: TabId, raw_url: str) -> ReuseOutcome | None:
        flags = extract_flags(raw_url)
        if not flags.active:
            return None
        if not self.guard.try_begin(tab_id):
            _LOGGER.debug("reuse_skip_duplicate tab=%s", tab_id)
            return None

        try:
            clean_url = strip_control_flags(raw_url)
            command = flags.run_command if flags.run_command else None
            _LOGGER.info("reuse_start tab=%s url=%s", tab_id, redact_url(clean_url))

            closed: tuple[TabId, ...] = ()
            lowest_index: int | None = None
            if flags.close_patterns:
                closed, lowest_index = await self._close_matching(tab_id, flags.close_patterns)

            tabs = await self._best_effort("list_tabs", self._host.list_tabs()) or []
            candidates = [
                t for t in tabs if t.id != tab_id and t.id not in closed and not self.guard.is_handling(t.id)
            ]
            match = resolve_match(clean_url, candidates)

            if match is not None:
                outcome = await self._focus_existing(tab_id, clean_url, match, command, closed)
            else:
                outcome = await self._navigate_in_place(tab_id, clean_url, command, closed, lowest_index)
            _LOGGER.info(
                "reuse_done tab=%s action=%s target=%s match=%s closed=%d",
                tab_id,
                outcome.action,
                outcome.target_tab_id,
                outcome.match,
                len(outcome.closed_tab_ids),
            )
            return outcome
        finally:
            self.guard.settle(tab_id)

    async def _close_matching(self, tab_id: TabId, patterns: Sequence[str]) -> tuple[tuple[TabId, ...], int | None]:
        tabs = await self._best_effort("list_tabs", self._host.list_tabs()) or []
        doomed = [t for t in tabs if t.id != tab_id and matches_any_pattern(t.url, patterns)]
        if not doomed:
            return (), None

        lowest_index = min(t.index for t in doomed)
        await asyncio.gather(*(self._best_effort("close_tab", self._host.close_tab(t.id)) for t in doomed))
        _LOGGER.info("reuse_closed tab=%s count=%d lowest_index=%d", tab_id, len(doomed), lowest_index)
        return tuple(t.id for t in doomed), lowest_index

    async def _focus_existing(
        self,
        tab_id: TabId,
        clean_url: str,
        match: TabMatch,
        command: Command | None,
        closed: tuple[TabId, ...],
    ) -> ReuseOutcome:
        target = match.tab
        await self._best_effort("activate_tab", self._host.activate_tab(target.id))
        await self._best_effort("focus_window", self._host.focus_window(target.window_id))

        if command is not None:
            if command.name == COPY_COOKIES and self._cookie_delay > 0:
                # Freshly activated tabs need a moment before script injection sticks.
                await self._sleep(self._cookie_delay)
            await self._run_command(target.id, command)

        await self._best_effort("close_tab", self._host.close_tab(tab_id))
        return ReuseOutcome(
            tab_id=tab_id,
            clean_url=clean_url,
            action="focused",
            target_tab_id=target.id,
            match=match.tier,
            closed_tab_ids=closed,
            command=command,
        )

    async def _navigate_in_place(
        self,
        tab_id: TabId,
        clean_url: str,
        command: Command | None,
        closed: tuple[TabId, ...],
        lowest_index: int | None,
    ) -> ReuseOutcome:
        if closed and lowest_index is not None:
            await self._best_effort("move_tab", self._host.move_tab(tab_id, lowest_index))

        try:
            await self._host.navigate_tab(tab_id, clean_url)
            navigated = True
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("host_action_failed action=navigate_tab tab=%s error=%s", tab_id, exc)
            navigated = False

        if command is not None and navigated:
            self._host.on_navigation_complete(tab_id, lambda: self._spawn(self._run_command(tab_id, command)))

        return ReuseOutcome(
            tab_id=tab_id,
            clean_url=clean_url,
            action="navigated",
            target_tab_id=tab_id,
            closed_tab_ids=closed,
            command=command,
        )

    async def _run_command(self, tab_id: TabId, command: Command) -> None:
        await self._best_effort("run_in_page", run_page_command(self._host, tab_id, command))

    async def _best_effort(self, action: str, awaitable: Awaitable[T]) -> T | None:
        try:
            return await awaitable
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("host_action_failed action=%s error=%s", action, exc)
            return None

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for deferred page commands still in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["ReuseCoordinator", "ReuseOutcome", "TOP_LEVEL_FRAME"]
