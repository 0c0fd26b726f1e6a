"""
Tab-reuse engine: decide whether an incoming URL should reuse an open tab.

Modules, leaves first:
- url_flags: reserved query flags (__reuse_tab, __run_js, __close_tabs)
- canonical: comparison keys for "same page"
- wildcard: glob patterns for bulk tab closing
- resolver: exact -> path-prefix -> root-domain matching
- guard: per-tab dedup across overlapping event sources
- page_commands: cookie/storage snippets run in the chosen tab
- coordinator: the per-navigation state machine tying it together
"""

from .canonical import canonicalize, get_domain, is_path_prefix, is_root_url, normalize_hostname
from .coordinator import ReuseCoordinator, ReuseOutcome
from .guard import HandledSet
from .page_commands import build_page_script, run_page_command
from .resolver import TabMatch, resolve, resolve_match
from .url_flags import (
    Command,
    ControlFlags,
    extract_close_patterns,
    extract_flags,
    extract_run_command,
    has_close_flag,
    has_reuse_flag,
    parse_command,
    parse_url,
    strip_control_flags,
)
from .wildcard import compile_pattern, matches, matches_any_pattern

__all__ = [
    "Command",
    "ControlFlags",
    "HandledSet",
    "ReuseCoordinator",
    "ReuseOutcome",
    "TabMatch",
    "build_page_script",
    "canonicalize",
    "compile_pattern",
    "extract_close_patterns",
    "extract_flags",
    "extract_run_command",
    "get_domain",
    "has_close_flag",
    "has_reuse_flag",
    "is_path_prefix",
    "is_root_url",
    "matches",
    "matches_any_pattern",
    "normalize_hostname",
    "parse_command",
    "parse_url",
    "resolve",
    "resolve_match",
    "run_page_command",
    "strip_control_flags",
]
