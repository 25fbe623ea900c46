import threading
import time

import pytest

from lms2typst.cache import MemoryCache, activity_key
from lms2typst.core import FetchError
from lms2typst.prefetch import batch_prefetch, extract_module_id, load_activity


def _page(body: str) -> str:
    return f"<html><body><nav>Menu</nav>{body}<script>track()</script></body></html>"


def test_extract_module_id():
    assert extract_module_id("https://mylms.vossie.net/mod/page/view.php?id=42") == 42
    assert extract_module_id("/mod/book/view.php?foo=1&id=7#top") == 7
    assert extract_module_id("/mod/page/view.php?cmid=3") is None
    assert extract_module_id("") is None


def test_load_activity_uses_cache():
    calls = []

    def fetch(url):
        calls.append(url)
        return _page("<p>Lesson</p>")

    cache = MemoryCache()
    url = "/mod/page/view.php?id=1"
    first = load_activity(url, fetch=fetch, cache=cache)
    second = load_activity(url, fetch=fetch, cache=cache)

    assert first.cached is False
    assert second.cached is True
    assert calls == [url]
    assert "<p>Lesson</p>" in first.content
    assert "Menu" not in first.content
    assert "track()" not in first.content
    assert cache.get(activity_key(url)) == first.content


def test_load_activity_respects_ttl():
    now = [0.0]
    cache = MemoryCache(clock=lambda: now[0])
    count = []

    def fetch(url):
        count.append(url)
        return "<p>x</p>"

    load_activity("u", fetch=fetch, cache=cache, ttl=30)
    now[0] = 31.0
    assert load_activity("u", fetch=fetch, cache=cache, ttl=30).cached is False
    assert len(count) == 2


def test_load_activity_applies_token():
    out = load_activity(
        "/mod/page/view.php?id=2",
        fetch=lambda url: '<img src="/pluginfile.php/2/a.png">',
        cache=MemoryCache(),
        token="tok",
    )
    assert "a.png?token=tok" in out.content


def test_load_activity_wraps_fetch_errors():
    def fetch(url):
        raise ConnectionError("offline")

    with pytest.raises(FetchError, match="offline"):
        load_activity("u", fetch=fetch, cache=MemoryCache())

    with pytest.raises(FetchError, match="No HTML content"):
        load_activity("u", fetch=lambda url: "", cache=MemoryCache())


def test_batch_prefetch_isolates_failures_and_keeps_order():
    urls = ["/view.php?id=1", "/view.php?id=2", "/view.php?id=3"]

    def fetch(url):
        if url.endswith("=2"):
            raise RuntimeError("server error")
        return f"<p>{url}</p>"

    result = batch_prefetch(urls, fetch=fetch, cache=MemoryCache())

    assert result.total == 3
    assert result.loaded == 2
    assert [item.url for item in result.items] == urls
    assert [item.success for item in result.items] == [True, False, True]
    failed = result.by_url()["/view.php?id=2"]
    assert failed.content is None
    assert "server error" in failed.error
    assert "/view.php?id=3" in result.items[2].content


def test_batch_prefetch_respects_limit():
    active = [0]
    peak = [0]
    lock = threading.Lock()

    def fetch(url):
        with lock:
            active[0] += 1
            peak[0] = max(peak[0], active[0])
        time.sleep(0.05)
        with lock:
            active[0] -= 1
        return "<p>ok</p>"

    urls = [f"/view.php?id={n}" for n in range(8)]
    result = batch_prefetch(urls, fetch=fetch, cache=MemoryCache(), limit=2)
    assert result.loaded == 8
    assert peak[0] <= 2


def test_batch_prefetch_serves_cached_entries():
    cache = MemoryCache()
    cache.set(activity_key("/view.php?id=1"), "<p>cached</p>")

    def fetch(url):
        raise AssertionError("should not fetch")

    result = batch_prefetch(["/view.php?id=1"], fetch=fetch, cache=cache)
    assert result.items[0].content == "<p>cached</p>"


def test_batch_prefetch_empty_and_invalid_limit():
    result = batch_prefetch([], fetch=lambda url: "", cache=MemoryCache())
    assert (result.total, result.loaded, result.items) == (0, 0, [])
    with pytest.raises(ValueError):
        batch_prefetch(["u"], fetch=lambda url: "", cache=MemoryCache(), limit=0)
