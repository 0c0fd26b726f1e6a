"""Pick the open tab that already shows (or best covers) a requested URL.

Tiers, first hit wins:

1. exact: same canonical form
2. prefix: same host, request has no query, tab path sits strictly below it
3. domain: request is a bare root URL and the tab is anywhere on that host

Within a tier the caller's candidate order decides; no extra tie-break.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from ..tab_host import CandidateTab
from .canonical import canonicalize, is_path_prefix, is_root_url, normalized_host
from .url_flags import parse_url

MatchTier = Literal["exact", "prefix", "domain"]


@dataclass(frozen=True, slots=True)
class TabMatch:
    tab: CandidateTab
    tier: MatchTier


def _find_exact(target: str, candidates: list[CandidateTab]) -> CandidateTab | None:
    for tab in candidates:
        if canonicalize(tab.url) == target:
            return tab
    return None


def _find_prefix(clean_url: str, candidates: list[CandidateTab]) -> CandidateTab | None:
    for tab in candidates:
        if is_path_prefix(clean_url, tab.url):
            return tab
    return None


def _find_same_host(host: str, candidates: list[CandidateTab]) -> CandidateTab | None:
    for tab in candidates:
        parts = parse_url(tab.url)
        if parts is not None and normalized_host(parts) == host:
            return tab
    return None


def resolve_match(clean_url: str, candidates: Iterable[CandidateTab]) -> TabMatch | None:
    parts = parse_url(clean_url)
    if parts is None:
        return None
    tabs = [t for t in candidates if isinstance(t.url, str) and t.url]

    hit = _find_exact(canonicalize(clean_url), tabs)
    if hit is not None:
        return TabMatch(hit, "exact")

    hit = _find_prefix(clean_url, tabs)
    if hit is not None:
        return TabMatch(hit, "prefix")

    if is_root_url(clean_url):
        hit = _find_same_host(normalized_host(parts), tabs)
        if hit is not None:
            return TabMatch(hit, "domain")

    return None


def resolve(clean_url: str, candidates: Iterable[CandidateTab]) -> CandidateTab | None:
    match = resolve_match(clean_url, candidates)
    return match.tab if match is not None else None


__all__ = ["MatchTier", "TabMatch", "resolve", "resolve_match"]
