from __future__ import annotations

import pytest

YOUTRACK_RAW = "https://brunata.youtrack.cloud/agiles/141-18/current?query=has:%20-{Subtask%20of}&__reuse_tab=1"
YOUTRACK_ENCODED = "https://brunata.youtrack.cloud/agiles/141-18/current?query=has%3A%20-%7BSubtask%20of%7D"


@pytest.mark.parametrize(
    ("a", "b"),
    [
        (YOUTRACK_RAW, YOUTRACK_ENCODED),
        ("https://example.com/search?q=a+b", "https://example.com/search?q=a%20b"),
        ("https://example.com/x?v=:(){}[]<>", "https://example.com/x?v=%3A()%7B%7D%5B%5D%3C%3E"),
        ("https://www.Example.COM/app", "https://example.com/app"),
        ("https://example.com/app///", "https://example.com/app"),
        ("https://example.com/", "https://example.com"),
        ("https://example.com/p?b=2&a=1", "https://example.com/p?a=1&b=2"),
        ("https://example.com/p?a=1&__reuse_tab=1", "https://example.com/p?a=1"),
        ("https://example.com/p#section", "https://example.com/p"),
        ("https://example.com:443/p", "https://example.com/p"),
        ("http://localhost:3000/app", "http://localhost:8080/app"),
    ],
)
def test_equivalent_urls_share_canonical_form(a: str, b: str) -> None:
    from tab_reuse.engine.canonical import canonicalize

    assert canonicalize(a) == canonicalize(b)


@pytest.mark.parametrize(
    ("a", "b"),
    [
        ("https://example.com/App", "https://example.com/app"),
        ("http://example.com/app", "https://example.com/app"),
        ("https://example.com/app?a=1", "https://example.com/app?a=2"),
        ("https://sub.example.com/app", "https://example.com/app"),
    ],
)
def test_distinct_urls_stay_distinct(a: str, b: str) -> None:
    from tab_reuse.engine.canonical import canonicalize

    assert canonicalize(a) != canonicalize(b)


def test_canonicalize_output_shape() -> None:
    from tab_reuse.engine.canonical import canonicalize

    assert canonicalize(YOUTRACK_ENCODED) == (
        "https://brunata.youtrack.cloud/agiles/141-18/current?query=has%3A%20-%7BSubtask%20of%7D"
    )
    assert canonicalize("https://example.com/p?x=it's(ok)*!") == "https://example.com/p?x=it's(ok)*!"
    assert canonicalize("http://[::1]:8080/a/") == "http://[::1]/a"


def test_query_sort_is_stable_for_repeated_keys() -> None:
    from tab_reuse.engine.canonical import canonicalize

    assert canonicalize("https://example.com/?b=1&a=2&a=1") == "https://example.com?a=2&a=1&b=1"
    assert canonicalize("https://example.com/?a=2&a=1") != canonicalize("https://example.com/?a=1&a=2")


@pytest.mark.parametrize(
    "url",
    [
        YOUTRACK_RAW,
        "https://www.www.example.com/A/b/?z=1&y=%2F&__run_js=copy_cookies#x",
        "http://[2001:db8::1]:8080/",
        "file:///tmp/a.html",
        "garbage",
    ],
)
def test_canonicalize_is_idempotent(url: str) -> None:
    from tab_reuse.engine.canonical import canonicalize

    once = canonicalize(url)
    assert canonicalize(once) == once


def test_unparsable_url_comes_back_unchanged() -> None:
    from tab_reuse.engine.canonical import canonicalize, get_domain

    assert canonicalize("not a url") == "not a url"
    assert get_domain("not a url") is None


def test_get_domain_strips_www_and_case() -> None:
    from tab_reuse.engine.canonical import get_domain, normalize_hostname

    assert get_domain("https://WWW.Example.com/path") == "example.com"
    assert get_domain("https://example.com:8443/") == "example.com"
    assert normalize_hostname("www.www.example.com") == "example.com"
    assert normalize_hostname("wwwexample.com") == "wwwexample.com"


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://example.com", True),
        ("https://example.com/", True),
        ("https://example.com/#top", True),
        ("https://example.com/?q=1", False),
        ("https://example.com/app", False),
        ("not a url", False),
    ],
)
def test_is_root_url(url: str, expected: bool) -> None:
    from tab_reuse.engine.canonical import is_root_url

    assert is_root_url(url) is expected


@pytest.mark.parametrize(
    ("shortcut", "tab", "expected"),
    [
        ("https://example.com/app", "https://example.com/app/page", True),
        ("https://example.com/app/", "https://www.example.com/app/page?x=1", True),
        ("https://example.com/app", "https://example.com/app", False),
        ("https://example.com/app", "https://example.com/app/", False),
        ("https://example.com/app", "https://example.com/application", False),
        ("https://example.com/app?x=1", "https://example.com/app/page", False),
        ("https://example.com/app", "https://other.com/app/page", False),
        ("https://example.com/", "https://example.com/app", False),
        ("https://example.com/app/page", "https://example.com/app", False),
        ("http://localhost:3000/app", "http://localhost:8080/app/x", True),
    ],
)
def test_is_path_prefix(shortcut: str, tab: str, expected: bool) -> None:
    from tab_reuse.engine.canonical import is_path_prefix

    assert is_path_prefix(shortcut, tab) is expected
