"""
Tab-reuse daemon: reuse open browser tabs for flagged external URL opens.

Starts the local extension gateway, binds the reuse coordinator to the tab
events it receives, and runs until interrupted.
"""

from __future__ import annotations

import logging
import signal
import threading

from .config import ReuseConfig
from .engine.coordinator import ReuseCoordinator
from .extension_gateway import ExtensionGateway
from .tab_host import ExtensionTabHost, TabHostError

logger = logging.getLogger("tab_reuse")


def build_service(config: ReuseConfig) -> tuple[ExtensionGateway, ExtensionTabHost, ReuseCoordinator]:
    """Wire gateway -> host adapter -> coordinator (not started)."""
    gateway = ExtensionGateway(
        host=config.host,
        port=config.port,
        expected_extension_id=config.expected_extension_id,
    )
    host = ExtensionTabHost(gateway, rpc_timeout=config.rpc_timeout)
    gateway.on_tab_event = host.dispatch_event
    coordinator = ReuseCoordinator(host, config=config)
    host.listen(coordinator)
    return gateway, host, coordinator


def shutdown(
    gateway: ExtensionGateway,
    host: ExtensionTabHost,
    coordinator: ReuseCoordinator,
    *,
    timeout: float = 2.0,
) -> None:
    """Let in-flight tab events and page commands finish, then stop the gateway."""

    async def _drain() -> None:
        await host.drain()
        await coordinator.drain()

    try:
        gateway.run_coroutine(_drain(), timeout=timeout)
    except (TabHostError, TimeoutError) as exc:
        logger.warning("shutdown_drain_incomplete error=%s", str(exc) or type(exc).__name__)
    gateway.stop(timeout=timeout)


def main() -> None:
    """Main entry point for the tab-reuse daemon."""
    config = ReuseConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    gateway, host, coordinator = build_service(config)
    stop = threading.Event()

    def _request_stop(signum, _frame):  # noqa: ANN001
        logger.info("shutdown signal=%s", signum)
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    try:
        gateway.start(wait_timeout=2.0, require_listening=False)
    except RuntimeError as exc:
        logger.error("extension_gateway_start_failed: %s", exc)
        raise SystemExit(1) from exc

    status = gateway.status()
    if status.get("listening"):
        logger.info("gateway listening host=%s port=%s", status.get("host"), status.get("port"))
    else:
        logger.warning("gateway not listening yet (retrying) error=%s", status.get("bindError"))

    try:
        while not stop.wait(1.0):
            pass
    finally:
        shutdown(gateway, host, coordinator, timeout=2.0)


if __name__ == "__main__":
    main()
