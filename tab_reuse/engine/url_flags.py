"""Control flags carried as reserved query parameters on an incoming URL.

A shortcut like ``https://example.com/app?__reuse_tab=1`` asks the engine to
reuse an existing tab instead of keeping the new one. Two more keys ride along:

- ``__run_js=name[=value]``: a page command to run in whichever tab ends up
  showing the page.
- ``__close_tabs=<glob>``: tabs to close before resolution (newline-joined
  patterns, key may repeat).

Every helper here is fail-open: an unparsable URL yields the neutral value
(False / None / empty) instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import SplitResult, parse_qsl, unquote_plus, urlsplit, urlunsplit

REUSE_FLAG = "__reuse_tab"
RUN_COMMAND_FLAG = "__run_js"
CLOSE_PATTERNS_FLAG = "__close_tabs"

CONTROL_FLAGS = frozenset({REUSE_FLAG, RUN_COMMAND_FLAG, CLOSE_PATTERNS_FLAG})


@dataclass(frozen=True, slots=True)
class Command:
    name: str | None
    value: str | None = None

    def __bool__(self) -> bool:
        return bool(self.name)


@dataclass(frozen=True, slots=True)
class ControlFlags:
    reuse: bool
    run_command: Command
    close_patterns: tuple[str, ...] = ()

    @property
    def active(self) -> bool:
        """Whether the engine should take over this navigation at all."""
        return self.reuse or bool(self.close_patterns)


def parse_url(url: object) -> SplitResult | None:
    """Split an absolute URL, or return None when it cannot be matched.

    Absolute means a scheme plus a network location (``file:`` URLs are the
    one hostless exception).
    """
    if not isinstance(url, str) or not url:
        return None
    try:
        parts = urlsplit(url.strip())
        # Accessing .port validates it (raises ValueError on garbage).
        _ = parts.port
    except ValueError:
        return None
    if not parts.scheme:
        return None
    if not parts.netloc and parts.scheme != "file":
        return None
    return parts


def query_pairs(parts: SplitResult) -> list[tuple[str, str]]:
    return parse_qsl(parts.query, keep_blank_values=True)


def _flag_values(url: str, key: str) -> list[str] | None:
    parts = parse_url(url)
    if parts is None:
        return None
    return [v for k, v in query_pairs(parts) if k == key]


def has_reuse_flag(url: str) -> bool:
    values = _flag_values(url, REUSE_FLAG)
    return bool(values is not None and len(values) > 0)


def has_close_flag(url: str) -> bool:
    values = _flag_values(url, CLOSE_PATTERNS_FLAG)
    return bool(values is not None and len(values) > 0)


def extract_close_patterns(url: str) -> tuple[str, ...]:
    values = _flag_values(url, CLOSE_PATTERNS_FLAG) or []
    patterns: list[str] = []
    for raw in values:
        for line in raw.splitlines():
            pattern = line.strip()
            if pattern:
                patterns.append(pattern)
    return tuple(patterns)


def extract_run_command(url: str) -> str | None:
    values = _flag_values(url, RUN_COMMAND_FLAG)
    if not values:
        return None
    return values[0]


def parse_command(raw: str | None) -> Command:
    """Split ``name=value`` on the first ``=`` only; the value keeps the rest."""
    if not raw:
        return Command(name=None, value=None)
    name, sep, value = raw.partition("=")
    if not sep:
        return Command(name=name, value=None)
    return Command(name=name, value=value)


def strip_control_flags(url: str) -> str:
    """Remove the reserved keys, leaving every other query segment byte-for-byte."""
    parts = parse_url(url)
    if parts is None:
        return url
    if not parts.query:
        return url

    kept: list[str] = []
    removed = False
    for segment in parts.query.split("&"):
        key = unquote_plus(segment.split("=", 1)[0])
        if key in CONTROL_FLAGS:
            removed = True
            continue
        if segment:
            kept.append(segment)
    if not removed:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(kept), parts.fragment))


def extract_flags(url: str) -> ControlFlags:
    return ControlFlags(
        reuse=has_reuse_flag(url),
        run_command=parse_command(extract_run_command(url)),
        close_patterns=extract_close_patterns(url),
    )


__all__ = [
    "CLOSE_PATTERNS_FLAG",
    "CONTROL_FLAGS",
    "Command",
    "ControlFlags",
    "REUSE_FLAG",
    "RUN_COMMAND_FLAG",
    "extract_close_patterns",
    "extract_flags",
    "extract_run_command",
    "has_close_flag",
    "has_reuse_flag",
    "parse_command",
    "parse_url",
    "query_pairs",
    "strip_control_flags",
]
