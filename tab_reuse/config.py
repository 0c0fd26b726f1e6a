from __future__ import annotations

import logging
import os
from dataclasses import dataclass


def _float_env(name: str, *, default: float, lo: float, hi: float) -> float:
    try:
        val = float(os.environ.get(name) or default)
    except Exception:
        val = default
    return max(lo, min(val, hi))


def _int_env(name: str, *, default: int) -> int:
    try:
        return int(os.environ.get(name) or default)
    except Exception:
        return default


@dataclass
class ReuseConfig:
    host: str = "127.0.0.1"
    port: int = 8765
    expected_extension_id: str | None = None
    settle_window: float = 5.0
    cookie_settle_delay: float = 0.5
    rpc_timeout: float = 10.0
    log_level: str = "INFO"

    @staticmethod
    def normalize_log_level(raw: str | None) -> str:
        level = (raw or "").strip().upper()
        if level == "WARN":
            return "WARNING"
        if level in logging.getLevelNamesMapping():
            return level
        return "INFO"

    @classmethod
    def from_env(cls) -> ReuseConfig:
        host = (os.environ.get("TAB_REUSE_HOST") or "127.0.0.1").strip() or "127.0.0.1"
        ext_id = (os.environ.get("TAB_REUSE_EXTENSION_ID") or "").strip() or None
        return cls(
            host=host,
            port=_int_env("TAB_REUSE_PORT", default=8765),
            expected_extension_id=ext_id,
            settle_window=_float_env("TAB_REUSE_SETTLE_WINDOW", default=5.0, lo=0.5, hi=60.0),
            cookie_settle_delay=_float_env("TAB_REUSE_COOKIE_DELAY", default=0.5, lo=0.0, hi=10.0),
            rpc_timeout=_float_env("TAB_REUSE_RPC_TIMEOUT", default=10.0, lo=0.1, hi=60.0),
            log_level=cls.normalize_log_level(os.environ.get("TAB_REUSE_LOG_LEVEL")),
        )


__all__ = ["ReuseConfig"]
