"""Canonical comparison keys for URLs.

Two URLs that a person would call "the same page" must canonicalize to the
same string:

- host is case-folded and loses a leading ``www.``; the port is ignored
- trailing slashes on the path are dropped (path case is kept)
- control flags are removed from the query
- remaining query pairs are percent-decoded, sorted by key (stable) and
  re-encoded the way ``encodeURIComponent`` does it
- the fragment is ignored

Unparsable input comes back unchanged, so it only ever equals itself.
"""

from __future__ import annotations

from urllib.parse import SplitResult, quote

from .url_flags import CONTROL_FLAGS, parse_url, query_pairs

# encodeURIComponent leaves A-Z a-z 0-9 - _ . ! ~ * ' ( ) alone.
_COMPONENT_SAFE = "!*'()"


def normalize_hostname(hostname: str) -> str:
    host = (hostname or "").lower()
    # Loop so that canonicalize() stays idempotent for "www.www." hosts.
    while host.startswith("www."):
        host = host[4:]
    return host


def normalized_host(parts: SplitResult) -> str:
    """Host key used for every "same site" comparison.

    Hostname only: the port never takes part, so ``localhost:3000`` and
    ``localhost:8080`` count as the same site.
    """
    host = normalize_hostname(parts.hostname or "")
    if ":" in host:
        host = f"[{host}]"
    return host


def collapse_path(path: str) -> str:
    return path.rstrip("/")


def canonical_query(parts: SplitResult) -> str:
    pairs = [(k, v) for k, v in query_pairs(parts) if k not in CONTROL_FLAGS]
    pairs.sort(key=lambda kv: kv[0])
    return "&".join(f"{quote(k, safe=_COMPONENT_SAFE)}={quote(v, safe=_COMPONENT_SAFE)}" for k, v in pairs)


def canonicalize(url: str) -> str:
    parts = parse_url(url)
    if parts is None:
        return url
    query = canonical_query(parts)
    out = f"{parts.scheme}://{normalized_host(parts)}{collapse_path(parts.path)}"
    if query:
        out += "?" + query
    return out


def get_domain(url: str) -> str | None:
    parts = parse_url(url)
    if parts is None:
        return None
    return normalized_host(parts)


def is_root_url(url: str) -> bool:
    parts = parse_url(url)
    if parts is None:
        return False
    return parts.path in ("", "/") and not parts.query


def is_path_prefix(shortcut_url: str, tab_url: str) -> bool:
    """True when the tab sits strictly below the shortcut's path on the same host.

    ``/app`` covers ``/app/page`` but neither ``/app`` itself nor ``/application``.
    A shortcut carrying a query string never acts as a prefix.
    """
    shortcut = parse_url(shortcut_url)
    tab = parse_url(tab_url)
    if shortcut is None or tab is None:
        return False
    if normalized_host(shortcut) != normalized_host(tab):
        return False
    if shortcut.query:
        return False

    shortcut_path = collapse_path(shortcut.path)
    tab_path = collapse_path(tab.path)
    # The root never acts as a prefix; bare domains resolve in the domain tier.
    if not shortcut_path:
        return False
    if not tab_path.startswith(shortcut_path):
        return False
    if len(tab_path) == len(shortcut_path):
        return False
    return tab_path[len(shortcut_path)] == "/"


__all__ = [
    "canonical_query",
    "canonicalize",
    "collapse_path",
    "get_domain",
    "is_path_prefix",
    "is_root_url",
    "normalize_hostname",
    "normalized_host",
]
