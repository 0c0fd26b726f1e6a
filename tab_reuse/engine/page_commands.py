"""Commands run inside a page after the engine picked its tab.

``__run_js=copy_cookies`` / ``delete_cookie=<name>`` / ``delete_cookies=<prefix>``.
Each maps to a JavaScript function source and a JSON args list; the host
evaluates ``(code)(...args)`` in the tab and hands back the returned object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..tab_host import TabHost, TabId
from .url_flags import Command

_LOGGER = logging.getLogger("tab_reuse.page_commands")

COPY_COOKIES = "copy_cookies"
DELETE_COOKIE = "delete_cookie"
DELETE_COOKIES = "delete_cookies"

_COPY_COOKIES_JS = (
    "async () => {"
    "  try {"
    "    const text = String(document.cookie || '');"
    "    const count = text ? text.split(';').filter((c) => c.trim()).length : 0;"
    "    await navigator.clipboard.writeText(text);"
    "    return { ok: true, count };"
    "  } catch (e) {"
    "    return { ok: false, error: String(e && e.message ? e.message : e) };"
    "  }"
    "}"
)

# Shared by delete_cookie (exact name) and delete_cookies (name prefix).
_DELETE_JS = (
    "(match, exact) => {"
    "  try {"
    "    const hit = (k) => exact ? k === match : k.startsWith(match);"
    "    const host = location.hostname;"
    "    const parts = host.split('.');"
    "    const domains = [''];"
    "    for (let i = 0; i < parts.length - 1; i++) domains.push('; domain=.' + parts.slice(i).join('.'));"
    "    const segs = location.pathname.split('/');"
    "    const paths = ['/'];"
    "    for (let i = 2; i <= segs.length; i++) paths.push(segs.slice(0, i).join('/') || '/');"
    "    const cookies = [];"
    "    for (const raw of String(document.cookie || '').split(';')) {"
    "      const name = raw.split('=')[0].trim();"
    "      if (name && hit(name) && !cookies.includes(name)) cookies.push(name);"
    "    }"
    "    for (const name of cookies) {"
    "      for (const d of domains) {"
    "        for (const p of paths) {"
    "          document.cookie = name + '=; expires=Thu, 01 Jan 1970 00:00:00 GMT; path=' + p + d;"
    "        }"
    "      }"
    "    }"
    "    const storage = [];"
    "    for (const s of [globalThis.localStorage, globalThis.sessionStorage]) {"
    "      if (!s) continue;"
    "      const keys = [];"
    "      for (let i = 0; i < s.length; i++) { const k = s.key(i); if (k != null && hit(k)) keys.push(k); }"
    "      for (const k of keys) { s.removeItem(k); storage.push(k); }"
    "    }"
    "    return { ok: true, cookies, storage };"
    "  } catch (e) {"
    "    return { ok: false, error: String(e && e.message ? e.message : e) };"
    "  }"
    "}"
)


@dataclass(frozen=True, slots=True)
class PageScript:
    code: str
    args: list[Any]


def build_page_script(command: Command) -> PageScript | None:
    """Translate a command into something ``run_in_page`` can execute; None if unknown/incomplete."""
    if command.name == COPY_COOKIES:
        return PageScript(_COPY_COOKIES_JS, [])
    if command.name == DELETE_COOKIE and command.value:
        return PageScript(_DELETE_JS, [command.value, True])
    if command.name == DELETE_COOKIES and command.value:
        return PageScript(_DELETE_JS, [command.value, False])
    return None


async def run_page_command(host: TabHost, tab_id: TabId, command: Command) -> dict[str, Any] | None:
    script = build_page_script(command)
    if script is None:
        _LOGGER.warning("page_command_skipped tab=%s name=%s value=%r", tab_id, command.name, command.value)
        return None

    result = await host.run_in_page(tab_id, script.code, script.args)
    if not isinstance(result, dict):
        result = {"ok": False, "error": "non-object result"}
    if result.get("ok") is True:
        _LOGGER.info("page_command_ok tab=%s name=%s", tab_id, command.name)
    else:
        _LOGGER.warning("page_command_failed tab=%s name=%s error=%s", tab_id, command.name, result.get("error"))
    return result


__all__ = [
    "COPY_COOKIES",
    "DELETE_COOKIE",
    "DELETE_COOKIES",
    "PageScript",
    "build_page_script",
    "run_page_command",
]
