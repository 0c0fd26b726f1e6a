"""Redact URLs before they reach log lines.

Shortcut URLs and open tabs routinely carry session ids or tokens in the
query string. Non-sensitive params stay readable; values under token-like keys
and any ``user:pass@`` userinfo are replaced.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SENSITIVE_SUBSTRINGS = (
    "token",
    "secret",
    "password",
    "passwd",
    "pwd",
    "authorization",
    "cookie",
    "session",
    "jwt",
    "bearer",
    "api-key",
    "api_key",
    "apikey",
)

_SENSITIVE_EXACT = {
    # Avoid false-positives like "author"/"authorship" while still protecting obvious keys.
    "auth",
    "code",
    "sig",
}

_PLACEHOLDER = "<redacted>"


def is_sensitive_key(key: str) -> bool:
    k = (key or "").strip().lower()
    if not k:
        return False
    if k in _SENSITIVE_EXACT:
        return True
    return any(s in k for s in _SENSITIVE_SUBSTRINGS)


def _redact_pairs(raw: str) -> tuple[str, bool]:
    pairs = parse_qsl(raw, keep_blank_values=True)
    out: list[tuple[str, str]] = []
    changed = False
    for k, v in pairs:
        if v and is_sensitive_key(k):
            out.append((k, _PLACEHOLDER))
            changed = True
        else:
            out.append((k, v))
    if not changed:
        return raw, False
    return urlencode(out), True


def redact_url(url: str) -> str:
    """Return ``url`` with secrets masked; unchanged when nothing needed masking."""
    if not isinstance(url, str) or not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    changed = False
    netloc = parts.netloc
    query = parts.query
    fragment = parts.fragment

    if "@" in netloc:
        netloc = netloc.rsplit("@", 1)[1]
        changed = True
    if query:
        query, q_changed = _redact_pairs(query)
        changed = changed or q_changed
    # OAuth-style implicit grants put tokens in the fragment.
    if fragment and "=" in fragment:
        fragment, f_changed = _redact_pairs(fragment)
        changed = changed or f_changed

    if not changed:
        return url
    return urlunsplit((parts.scheme, netloc, parts.path, query, fragment))


__all__ = ["is_sensitive_key", "redact_url"]
