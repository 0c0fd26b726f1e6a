from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

import pytest


def test_build_service_wires_gateway_host_and_coordinator() -> None:
    from tab_reuse.config import ReuseConfig
    from tab_reuse.engine.coordinator import ReuseCoordinator
    from tab_reuse.main import build_service
    from tab_reuse.tab_host import ExtensionTabHost

    cfg = ReuseConfig(port=9912, expected_extension_id="x" * 32, settle_window=2.0, rpc_timeout=4.0)
    gateway, host, coordinator = build_service(cfg)

    assert gateway.port == 9912
    assert gateway.expected_extension_id == "x" * 32
    assert isinstance(host, ExtensionTabHost)
    assert isinstance(coordinator, ReuseCoordinator)
    assert gateway.on_tab_event == host.dispatch_event
    assert coordinator.guard.settle_window == 2.0
    # Not started: no server thread yet.
    assert gateway.status()["listening"] is False


class _RecordingGateway:
    def __init__(self, order: list[str], *, loop_running: bool = True) -> None:
        self.order = order
        self.loop_running = loop_running

    def run_coroutine(self, coro: Coroutine[Any, Any, Any], *, timeout: float = 10.0) -> Any:
        from tab_reuse.tab_host import TabHostError

        if not self.loop_running:
            coro.close()
            raise TabHostError("Extension gateway loop is not running")
        return asyncio.run(coro)

    def stop(self, *, timeout: float = 2.0) -> None:
        self.order.append("gateway.stop")


class _Drainable:
    def __init__(self, name: str, order: list[str]) -> None:
        self.name = name
        self.order = order

    async def drain(self) -> None:
        await asyncio.sleep(0)
        self.order.append(f"{self.name}.drain")


def test_shutdown_drains_host_then_coordinator_before_stopping_gateway() -> None:
    from tab_reuse.main import shutdown

    order: list[str] = []
    shutdown(_RecordingGateway(order), _Drainable("host", order), _Drainable("coordinator", order), timeout=1.0)

    assert order == ["host.drain", "coordinator.drain", "gateway.stop"]


def test_shutdown_still_stops_gateway_when_loop_is_gone(caplog: pytest.LogCaptureFixture) -> None:
    from tab_reuse.main import shutdown

    caplog.set_level(logging.WARNING, logger="tab_reuse")
    order: list[str] = []
    gateway = _RecordingGateway(order, loop_running=False)
    shutdown(gateway, _Drainable("host", order), _Drainable("coordinator", order), timeout=1.0)

    assert order == ["gateway.stop"]
    assert any(r.getMessage().startswith("shutdown_drain_incomplete") for r in caplog.records)


def test_shutdown_with_real_service_that_never_started() -> None:
    from tab_reuse.config import ReuseConfig
    from tab_reuse.main import build_service, shutdown

    gateway, host, coordinator = build_service(ReuseConfig(port=9913))
    shutdown(gateway, host, coordinator, timeout=0.5)
    assert gateway.status()["threadAlive"] is False
