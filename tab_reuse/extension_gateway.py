"""Loopback WebSocket bridge between the daemon and its browser extension.

One extension connection at a time, JSON text frames:

    ext -> gw  hello {extensionId, extensionVersion?, userAgent?}
    gw -> ext  helloAck {protocolVersion, sessionId, serverStartedAtMs}
    gw -> ext  rpc {id, method, params}
    ext -> gw  rpcResult {id, ok, result | error: {message}}
    ext -> gw  tabEvent {event, ...}          handed to ``on_tab_event``
    ext -> gw  log {level, message, meta?}    re-emitted on ``tab_reuse.extension``
    ext -> gw  ping                           answered with pong

A plain HTTP GET on ``EXTENSION_GATEWAY_WELL_KNOWN_PATH`` returns a small
discovery document; any other plain HTTP path is a 404.

The server runs on its own asyncio loop in a daemon thread. ``on_tab_event``
and ``rpc_call_async`` both run on that loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import os
import re
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .tab_host import TabHostError

_LOGGER = logging.getLogger("tab_reuse.extension_gateway")
_EXTENSION_LOGGER = logging.getLogger("tab_reuse.extension")

EXTENSION_BRIDGE_PROTOCOL_VERSION = "2026-10-01"
EXTENSION_GATEWAY_WELL_KNOWN_PATH = "/.well-known/tab-reuse-gateway"

HELLO_TIMEOUT = 2.5
BIND_RETRY_MIN = 0.25
BIND_RETRY_MAX = 5.0
MAX_FRAME_BYTES = 2_000_000

# Background pages connect from their extension origin, some with no Origin header.
_ALLOWED_ORIGINS: list[Any] = [
    None,
    re.compile(r"^null$"),
    re.compile(r"^chrome-extension://[a-p]{32}/?$"),
    re.compile(r"^moz-extension://[0-9a-fA-F-]{36}/?$"),
]

_EXTENSION_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class HandshakeRejected(Exception):
    def __init__(self, code: int, reason: str) -> None:
        super().__init__(reason)
        self.code = code
        self.reason = reason


@dataclass(frozen=True, slots=True)
class ExtensionClientInfo:
    extension_id: str
    extension_version: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_hello(cls, raw: Any, *, expected_id: str | None = None) -> ExtensionClientInfo:
        """Validate the first frame of a connection; raises ``HandshakeRejected``."""
        try:
            msg = json.loads(raw)
        except (TypeError, ValueError):
            msg = None
        if not isinstance(msg, dict) or msg.get("type") != "hello":
            raise HandshakeRejected(1002, "expected hello")
        ext_id = str(msg.get("extensionId") or "").strip()
        if not ext_id:
            raise HandshakeRejected(1002, "missing extensionId")
        if expected_id is not None and ext_id != expected_id:
            raise HandshakeRejected(1008, "unexpected extensionId")
        return cls(
            extension_id=ext_id,
            extension_version=str(msg.get("extensionVersion") or "") or None,
            user_agent=str(msg.get("userAgent") or "") or None,
        )

    def as_status(self, last_seen_ms: int = 0) -> dict[str, Any]:
        out: dict[str, Any] = {"extensionId": self.extension_id}
        if self.extension_version:
            out["extensionVersion"] = self.extension_version
        if self.user_agent:
            out["userAgent"] = self.user_agent
        if last_seen_ms:
            out["lastSeenMs"] = last_seen_ms
        return out


class ExtensionGateway:
    def __init__(
        self,
        *,
        host: str | None = None,
        port: int | None = None,
        expected_extension_id: str | None = None,
        on_tab_event: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.host = (host or "127.0.0.1").strip() or "127.0.0.1"
        try:
            self.port = int(port or 8765)
        except (TypeError, ValueError):
            self.port = 8765
        self.expected_extension_id = (expected_extension_id or "").strip() or None
        self.on_tab_event = on_tab_event
        self._started_at_ms = _now_ms()

        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_flag = threading.Event()
        self._stop_requested: asyncio.Event | None = None
        self._listening = threading.Event()
        self._connected = threading.Event()
        self._bind_error: str | None = None

        self._ws: Any | None = None
        self._client: ExtensionClientInfo | None = None
        self._session_id: str | None = None
        self._last_seen_ms = 0

        # Only touched on the gateway loop.
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[Any]] = {}

        self._frame_handlers: dict[str, Callable[[Any, dict[str, Any]], Awaitable[None]]] = {
            "rpcResult": self._on_rpc_result,
            "tabEvent": self._on_tab_event,
            "log": self._on_extension_log,
            "ping": self._on_ping,
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle (any thread)
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0, require_listening: bool = True) -> None:
        """Start the server thread and wait for the first successful bind.

        With ``require_listening=False`` a busy port is not fatal: the thread
        keeps retrying with backoff and ``status()`` reports ``bindError``.
        """
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_flag.clear()
        self._listening.clear()
        with self._lock:
            self._bind_error = None

        self._thread = threading.Thread(target=self._run_thread, name="tab-reuse-gateway", daemon=True)
        self._thread.start()
        if self._listening.wait(timeout=max(0.05, float(wait_timeout))):
            return
        if not self._thread.is_alive():
            raise RuntimeError(f"Extension gateway thread exited during startup on {self.host}:{self.port}")
        if require_listening:
            with self._lock:
                reason = self._bind_error or "timed out"
            raise RuntimeError(f"Extension gateway is not listening on {self.host}:{self.port}: {reason}")

    def stop(self, *, timeout: float = 2.0) -> None:
        self._stop_flag.set()
        loop, stop_requested = self._loop, self._stop_requested
        if loop is not None and stop_requested is not None:
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(stop_requested.set)
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def status(self) -> dict[str, Any]:
        with self._lock:
            client = self._client
            out: dict[str, Any] = {
                "listening": self._listening.is_set(),
                "host": self.host,
                "port": self.port,
                "connected": self._ws is not None,
                "sessionId": self._session_id,
                "threadAlive": bool(self._thread is not None and self._thread.is_alive()),
                "pendingRpc": len(self._pending),
                "client": client.as_status(self._last_seen_ms) if client is not None else None,
            }
            if self._bind_error:
                out["bindError"] = self._bind_error
        return out

    def discovery(self) -> dict[str, Any]:
        return {
            "type": "tabReuseGateway",
            "protocolVersion": EXTENSION_BRIDGE_PROTOCOL_VERSION,
            "serverStartedAtMs": self._started_at_ms,
            "gatewayPort": self.port,
            "pid": os.getpid(),
            "extensionConnected": self.is_connected(),
        }

    def is_connected(self) -> bool:
        with self._lock:
            return self._ws is not None

    def wait_for_connection(self, *, timeout: float = 5.0) -> bool:
        """Block until an extension has completed the hello handshake."""
        return self._connected.wait(timeout=max(0.0, float(timeout)))

    def run_coroutine(self, coro: Any, *, timeout: float = 10.0) -> Any:
        """Run ``coro`` on the gateway loop from another thread and wait for its result."""
        loop = self._loop
        if loop is None or not loop.is_running():
            coro.close()
            raise TabHostError("Extension gateway loop is not running")
        return asyncio.run_coroutine_threadsafe(coro, loop).result(timeout=timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # RPC (gateway loop)
    # ─────────────────────────────────────────────────────────────────────────

    async def rpc_call_async(self, method: str, params: dict[str, Any] | None = None, *, timeout: float = 10.0) -> Any:
        if not isinstance(method, str) or not method.strip():
            raise TabHostError("Extension RPC method is required")
        with self._lock:
            ws = self._ws
        if ws is None:
            raise TabHostError("Extension is not connected. Install/enable the extension and reload it.")

        req_id = next(self._ids)
        fut: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[req_id] = fut
        try:
            await self._send(ws, {"type": "rpc", "id": req_id, "method": method, "params": params or {}})
            return await asyncio.wait_for(fut, timeout=max(0.1, float(timeout)))
        except asyncio.TimeoutError as exc:
            raise TabHostError(f"Extension RPC timed out: {method}") from exc
        except TabHostError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise TabHostError(f"Extension RPC failed: {method}: {exc}") from exc
        finally:
            self._pending.pop(req_id, None)

    def _fail_pending(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for fut in pending.values():
            if not fut.done():
                fut.set_exception(TabHostError(reason))

    # ─────────────────────────────────────────────────────────────────────────
    # Server (gateway loop)
    # ─────────────────────────────────────────────────────────────────────────

    def _run_thread(self) -> None:
        asyncio.run(self._serve())

    async def _serve(self) -> None:
        try:
            from websockets.asyncio.server import serve  # type: ignore[import-not-found]
        except ImportError as exc:
            _LOGGER.error("gateway_unavailable error=%s (pip install websockets)", exc)
            return

        self._loop = asyncio.get_running_loop()
        stop_requested = self._stop_requested = asyncio.Event()
        if self._stop_flag.is_set():
            stop_requested.set()

        server = None
        delay = BIND_RETRY_MIN
        try:
            while server is None and not stop_requested.is_set():
                try:
                    server = await serve(
                        self._session,
                        self.host,
                        self.port,
                        origins=_ALLOWED_ORIGINS,
                        process_request=self._answer_plain_http,
                        max_size=MAX_FRAME_BYTES,
                        ping_interval=None,
                    )
                except OSError as exc:
                    with self._lock:
                        self._bind_error = str(exc) or type(exc).__name__
                    _LOGGER.warning(
                        "gateway_bind_failed host=%s port=%s retry_in=%.2fs error=%s", self.host, self.port, delay, exc
                    )
                    with contextlib.suppress(asyncio.TimeoutError):
                        await asyncio.wait_for(stop_requested.wait(), timeout=delay)
                    delay = min(delay * 2, BIND_RETRY_MAX)

            if server is None:
                return
            with self._lock:
                self._bind_error = None
            self._listening.set()
            _LOGGER.info("gateway_listening host=%s port=%s", self.host, self.port)
            await stop_requested.wait()
        finally:
            self._listening.clear()
            if server is not None:
                server.close()
                await server.wait_closed()
            with self._lock:
                ws = self._ws
            if ws is not None:
                with contextlib.suppress(Exception):
                    await ws.close()
                self._detach(ws)

    def _answer_plain_http(self, _connection: Any, request: Any) -> Any:
        from websockets.datastructures import Headers  # type: ignore[import-not-found]
        from websockets.http11 import Response  # type: ignore[import-not-found]

        if str(request.headers.get("Upgrade") or "").lower() == "websocket":
            return None
        if request.path != EXTENSION_GATEWAY_WELL_KNOWN_PATH:
            body = b"not found"
            headers = {"Content-Type": "text/plain", "Content-Length": str(len(body))}
            return Response(404, "Not Found", Headers(headers), body)

        body = json.dumps(self.discovery(), separators=(",", ":")).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Content-Length": str(len(body)),
            "Cache-Control": "no-store",
            "Access-Control-Allow-Origin": "*",
        }
        return Response(200, "OK", Headers(headers), body)

    async def _session(self, ws: Any) -> None:
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=HELLO_TIMEOUT)
            client = ExtensionClientInfo.from_hello(raw, expected_id=self.expected_extension_id)
        except HandshakeRejected as exc:
            _LOGGER.warning("extension_rejected code=%s reason=%s", exc.code, exc.reason)
            with contextlib.suppress(Exception):
                await ws.close(code=exc.code, reason=exc.reason)
            return
        except asyncio.TimeoutError:
            _LOGGER.warning("extension_hello_timeout after=%.1fs", HELLO_TIMEOUT)
            return
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("extension_hello_failed error=%s", exc)
            return

        session_id = f"ext-{_now_ms()}-{os.getpid()}"
        if self._attach(ws, client, session_id):
            self._fail_pending("Extension reconnected")
        try:
            await self._send(
                ws,
                {
                    "type": "helloAck",
                    "protocolVersion": EXTENSION_BRIDGE_PROTOCOL_VERSION,
                    "sessionId": session_id,
                    "serverStartedAtMs": self._started_at_ms,
                },
            )
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("extension_ack_failed id=%s error=%s", client.extension_id, exc)
            self._detach(ws)
            return

        self._connected.set()
        _LOGGER.info("extension_connected id=%s version=%s", client.extension_id, client.extension_version)
        try:
            async for raw_frame in ws:
                await self._on_frame(ws, raw_frame)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.debug("extension_session_ended id=%s error=%s", client.extension_id, exc)
        finally:
            if self._detach(ws):
                _LOGGER.info("extension_disconnected id=%s", client.extension_id)

    def _attach(self, ws: Any, client: ExtensionClientInfo, session_id: str) -> bool:
        """Make ``ws`` the active client; True when it replaced another connection."""
        with self._lock:
            previous = self._ws
            self._ws = ws
            self._client = client
            self._session_id = session_id
            self._last_seen_ms = _now_ms()
        self._connected.clear()
        return previous is not None and previous is not ws

    def _detach(self, ws: Any) -> bool:
        with self._lock:
            if self._ws is not ws:
                return False
            self._ws = None
            self._client = None
            self._session_id = None
            self._last_seen_ms = 0
        self._connected.clear()
        self._fail_pending("Extension disconnected")
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Incoming frames (gateway loop)
    # ─────────────────────────────────────────────────────────────────────────

    async def _on_frame(self, ws: Any, raw: Any) -> None:
        with self._lock:
            self._last_seen_ms = _now_ms()
        try:
            msg = json.loads(raw)
        except (TypeError, ValueError):
            _LOGGER.debug("extension_frame_unparsable size=%d", len(raw or ""))
            return
        if not isinstance(msg, dict):
            return
        handler = self._frame_handlers.get(str(msg.get("type") or ""))
        if handler is not None:
            await handler(ws, msg)

    async def _on_rpc_result(self, _ws: Any, msg: dict[str, Any]) -> None:
        try:
            fut = self._pending.get(int(msg.get("id")))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return
        if fut is None or fut.done():
            return
        if msg.get("ok"):
            fut.set_result(msg.get("result"))
            return
        error = msg.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        fut.set_exception(TabHostError(message if isinstance(message, str) and message else "Extension RPC failed"))

    async def _on_tab_event(self, _ws: Any, msg: dict[str, Any]) -> None:
        callback = self.on_tab_event
        if callback is None or not isinstance(msg.get("event"), str):
            return
        try:
            callback(msg)
        except Exception:  # noqa: BLE001
            _LOGGER.exception("tab_event_dispatch_failed event=%s", msg.get("event"))

    async def _on_extension_log(self, _ws: Any, msg: dict[str, Any]) -> None:
        level = _EXTENSION_LOG_LEVELS.get(str(msg.get("level") or "info").lower(), logging.INFO)
        meta = msg.get("meta")
        if isinstance(meta, dict) and meta:
            _EXTENSION_LOGGER.log(level, "%s meta=%s", str(msg.get("message") or "")[:2000], meta)
        else:
            _EXTENSION_LOGGER.log(level, "%s", str(msg.get("message") or "")[:2000])

    async def _on_ping(self, ws: Any, _msg: dict[str, Any]) -> None:
        with contextlib.suppress(Exception):
            await self._send(ws, {"type": "pong", "ts": _now_ms()})

    @staticmethod
    async def _send(ws: Any, payload: dict[str, Any]) -> None:
        await ws.send(json.dumps(payload, ensure_ascii=False))


__all__ = [
    "EXTENSION_BRIDGE_PROTOCOL_VERSION",
    "EXTENSION_GATEWAY_WELL_KNOWN_PATH",
    "ExtensionClientInfo",
    "ExtensionGateway",
    "HandshakeRejected",
]
