"""Glob-style URL patterns (``*`` only) for bulk tab closing."""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache

_SCHEME_PREFIX_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def strip_scheme(url: str) -> str:
    return _SCHEME_PREFIX_RE.sub("", url, count=1)


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Everything is literal except ``*``, which matches any run of characters."""
    escaped = re.escape(pattern).replace(r"\*", ".*")
    return re.compile(escaped, re.DOTALL)


def matches(pattern: str, url: str) -> bool:
    if not pattern or not isinstance(url, str):
        return False
    rx = compile_pattern(pattern)
    if rx.fullmatch(url):
        return True
    if "://" not in pattern:
        return rx.fullmatch(strip_scheme(url)) is not None
    return False


def is_comment(pattern: str) -> bool:
    return pattern.startswith("#")


def matches_any_pattern(url: str, patterns: Iterable[str]) -> bool:
    """Match against a user-editable list: blank entries and ``#`` comments never match."""
    for raw in patterns:
        pattern = str(raw or "").strip()
        if not pattern or is_comment(pattern):
            continue
        if matches(pattern, url):
            return True
    return False


__all__ = ["compile_pattern", "is_comment", "matches", "matches_any_pattern", "strip_scheme"]
