from __future__ import annotations

import asyncio


def test_first_claim_wins_until_settle_window_passes(clock) -> None:
    from tab_reuse.engine.guard import HandledSet

    guard = HandledSet(settle_window=5.0, clock=clock, scheduler=clock.schedule)
    assert guard.try_begin(10) is True
    assert guard.try_begin(10) is False
    assert guard.is_handling(10) is True

    guard.settle(10)
    assert guard.is_handling(10) is False
    assert 10 in guard
    assert guard.try_begin(10) is False

    clock.advance(4.9)
    assert guard.try_begin(10) is False
    clock.advance(0.2)
    assert 10 not in guard
    assert len(guard) == 0
    assert guard.try_begin(10) is True


def test_expiry_is_honoured_without_a_timer(clock) -> None:
    from tab_reuse.engine.guard import HandledSet

    guard = HandledSet(settle_window=1.0, clock=clock, scheduler=lambda _delay, _cb: None)
    guard.try_begin("a")
    guard.settle("a")
    clock.now += 1.0
    assert "a" not in guard
    assert guard.try_begin("a") is True


def test_stale_timer_does_not_evict_newer_claim(clock) -> None:
    from tab_reuse.engine.guard import HandledSet

    guard = HandledSet(settle_window=5.0, clock=clock, scheduler=clock.schedule)
    guard.try_begin(1)
    guard.settle(1)
    old_timers = list(clock.timers)

    clock.now += 5.0
    assert guard.try_begin(1) is True
    for _when, cb in old_timers:
        cb()
    assert guard.is_handling(1) is True


def test_tabs_are_independent_and_discard_releases(clock) -> None:
    from tab_reuse.engine.guard import HandledSet

    guard = HandledSet(clock=clock, scheduler=clock.schedule)
    assert guard.try_begin(1) is True
    assert guard.try_begin(2) is True
    assert len(guard) == 2
    guard.discard(1)
    assert guard.try_begin(1) is True
    assert [] not in guard


def test_default_scheduler_uses_running_loop() -> None:
    from tab_reuse.engine.guard import HandledSet

    async def _run() -> bool:
        guard = HandledSet(settle_window=0.01)
        guard.try_begin(5)
        guard.settle(5)
        await asyncio.sleep(0.05)
        return 5 in guard._entries

    assert asyncio.run(_run()) is False


def test_settle_outside_loop_does_not_raise() -> None:
    from tab_reuse.engine.guard import HandledSet

    guard = HandledSet(settle_window=60.0)
    guard.try_begin(3)
    guard.settle(3)
    assert 3 in guard
