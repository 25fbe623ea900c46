"""Cache-fronted fetch and clean of LMS activity pages.

The network client is not part of this package: callers pass a ``fetch``
callable that returns the raw HTML for a URL.
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .cache import CacheBackend, TTL, activity_key
from .core import LOG, FetchError, SanitizerConfig, get_cache_ttl
from .sanitizer import sanitize

Fetcher = Callable[[str], str]

DEFAULT_CONCURRENCY = 10

_MODULE_ID_RE = re.compile(r"[?&]id=(\d+)")


@dataclass
class ActivityContent:
    url: str
    content: str
    cached: bool


@dataclass
class BatchItem:
    url: str
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BatchResult:
    total: int
    loaded: int
    items: List[BatchItem] = field(default_factory=list)

    def by_url(self) -> Dict[str, BatchItem]:
        return {item.url: item for item in self.items}


def extract_module_id(url: str) -> Optional[int]:
    match = _MODULE_ID_RE.search(url or "")
    return int(match.group(1)) if match else None


def load_activity(
    url: str,
    *,
    fetch: Fetcher,
    cache: CacheBackend,
    token: Optional[str] = None,
    ttl: Optional[TTL] = None,
    config: Optional[SanitizerConfig] = None,
) -> ActivityContent:
    key = activity_key(url)
    cached = cache.get(key)
    if cached is not None:
        LOG.debug("Cache hit for %s", url)
        return ActivityContent(url=url, content=cached, cached=True)

    LOG.info("Fetching content for: %s", url)
    try:
        raw = fetch(url)
    except FetchError:
        raise
    except Exception as exc:
        raise FetchError(f"Failed to fetch {url}: {exc}") from exc
    if not raw:
        raise FetchError(f"No HTML content available for {url}")

    cleaned = sanitize(raw, token, config)
    cache.set(key, cleaned, ttl if ttl is not None else get_cache_ttl())
    return ActivityContent(url=url, content=cleaned, cached=False)


def batch_prefetch(
    urls: Iterable[str],
    *,
    fetch: Fetcher,
    cache: CacheBackend,
    token: Optional[str] = None,
    limit: int = DEFAULT_CONCURRENCY,
    ttl: Optional[TTL] = None,
    config: Optional[SanitizerConfig] = None,
) -> BatchResult:
    if limit <= 0:
        raise ValueError(f"limit must be > 0, got {limit}")
    ordered = list(urls)
    LOG.info("Batch prefetch request for %d URLs", len(ordered))

    results: Dict[int, BatchItem] = {}
    with ThreadPoolExecutor(max_workers=limit, thread_name_prefix="lms2typst-prefetch") as pool:
        futures = {
            pool.submit(load_activity, url, fetch=fetch, cache=cache, token=token, ttl=ttl, config=config): idx
            for idx, url in enumerate(ordered)
        }
        for future in as_completed(futures):
            idx = futures[future]
            url = ordered[idx]
            try:
                activity = future.result()
            except Exception as exc:
                # One failed URL must not affect the rest of the batch.
                LOG.warning("Prefetch failed for %s: %s", url, exc)
                results[idx] = BatchItem(url=url, success=False, error=str(exc))
                continue
            results[idx] = BatchItem(url=url, success=True, content=activity.content)

    items = [results[idx] for idx in range(len(ordered))]
    loaded = sum(1 for item in items if item.success)
    LOG.info("Batch prefetch complete: %d/%d loaded", loaded, len(items))
    return BatchResult(total=len(items), loaded=loaded, items=items)
