"""HTML sanitizer for LMS activity pages.

The input is parsed once with BeautifulSoup; every stage mutates that tree
structurally and the result is serialized a single time. A stage that raises
is rolled back to its snapshot so the rest of the pipeline still runs.
"""

from __future__ import annotations

import copy
import re
from functools import lru_cache
from typing import Callable, List, Optional, Set, Tuple
from urllib.parse import urlsplit

from soupsieve import SelectorSyntaxError

from .core import LOG, SanitizerConfig, default_config

ALWAYS_REMOVED_SELECTORS = [
    "script",
    "style",
    'link[rel~="stylesheet" i]',
    "iframe",
]
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

_WS_RE = re.compile(r"\s+")
_EMPTY_PARAGRAPH_RE = re.compile(r"^(?:\s|&nbsp;)*$")
# Matches the single-encoded (&lt;) and double-encoded (&amp;lt;) spellings.
_ENTITY_RE = re.compile(r"&(?:amp;)?(nbsp|amp|quot|apos|#39|lt|gt);")
_ENTITY_CHARS = {
    "nbsp": " ",
    "amp": "&",
    "quot": '"',
    "apos": "'",
    "#39": "'",
    "lt": "<",
    "gt": ">",
}


def parse_html(html: str):
    try:
        from bs4 import BeautifulSoup  # type: ignore
    except Exception as exc:
        raise RuntimeError(f"beautifulsoup4 not available: {exc}") from exc
    return BeautifulSoup(html, "html.parser")


@lru_cache(maxsize=None)
def _formatter():
    from bs4.dammit import EntitySubstitution  # type: ignore
    from bs4.formatter import HTMLFormatter  # type: ignore

    class _UrlAttributeFormatter(HTMLFormatter):
        # Attribute values keep raw "&" so query strings read as written.
        def attribute_value(self, value):
            return value

    return _UrlAttributeFormatter(entity_substitution=EntitySubstitution.substitute_xml)


def serialize_html(soup) -> str:
    return soup.decode(formatter=_formatter())


def normalize_heading_text(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def _decompose_all(tags) -> int:
    removed = 0
    for tag in tags:
        if tag.decomposed:
            continue
        tag.decompose()
        removed += 1
    return removed


def remove_unwanted_elements(soup) -> int:
    return _decompose_all(soup.select(", ".join(ALWAYS_REMOVED_SELECTORS)))


def remove_navigation(soup, config: SanitizerConfig) -> int:
    removed = 0
    for selector in config.navigation_selectors:
        try:
            matches = soup.select(selector)
        except SelectorSyntaxError as exc:
            LOG.warning("sanitize: ignoring invalid navigation selector %r: %s", selector, exc)
            continue
        removed += _decompose_all(matches)
    return removed


def remove_unwanted_containers(soup, config: SanitizerConfig) -> int:
    phrases = [phrase.lower() for phrase in config.denylist if phrase]
    if not phrases:
        return 0

    removed = 0
    for css_class in config.container_classes:
        # Queried again per class: earlier removals change what is left.
        for container in soup.find_all(class_=css_class):
            if container.decomposed:
                continue
            rendered = str(container)
            lowered = rendered.lower()
            phrase = next((p for p in phrases if p in lowered), None)
            if phrase is None:
                continue
            size = len(rendered.encode("utf-8"))
            if size > config.max_container_bytes:
                LOG.debug("Kept .%s container matching %r: %d bytes exceeds guard", css_class, phrase, size)
                continue
            container.decompose()
            removed += 1
            LOG.debug("Removed container .%s matching %r", css_class, phrase)
    return removed


def _is_junk_image(src: str) -> bool:
    value = src.strip().lower()
    if not value:
        return True
    if value.startswith("data:image/gif"):
        return True
    return "spacer" in value or "icon" in value


def clean_images(soup) -> int:
    removed = 0
    for img in soup.find_all("img"):
        if img.decomposed:
            continue
        src = img.get("src")
        if src is None or _is_junk_image(str(src)):
            img.decompose()
            removed += 1
    return removed


def remove_duplicate_headings(soup) -> int:
    seen: Set[Tuple[str, str]] = set()
    removed = 0
    for heading in soup.find_all(HEADING_TAGS):
        if heading.decomposed:
            continue
        text = normalize_heading_text(heading.get_text())
        if not text:
            continue
        key = (heading.name, text)
        if key in seen:
            heading.decompose()
            removed += 1
            LOG.debug("Removed duplicate heading <%s>: %s", heading.name, text)
        else:
            seen.add(key)
    return removed


def remove_empty_paragraphs(soup, config: SanitizerConfig) -> int:
    removed = 0
    for paragraph in soup.find_all("p"):
        if paragraph.decomposed:
            continue
        if not _EMPTY_PARAGRAPH_RE.match(paragraph.get_text()):
            continue
        if paragraph.find(["img", "iframe"]) is not None:
            continue
        if len(str(paragraph).encode("utf-8")) > config.max_empty_paragraph_bytes:
            continue
        paragraph.decompose()
        removed += 1
    return removed


def _lms_host(lms_url: str) -> str:
    return urlsplit(lms_url or "").netloc.lower()


def needs_token(url: str, lms_url: str) -> bool:
    value = (url or "").strip()
    if not value or "token=" in value:
        return False
    if value.lower().startswith("data:"):
        return False
    parts = urlsplit(value)
    if parts.scheme and parts.scheme.lower() not in {"http", "https"}:
        return False
    if not parts.netloc:
        return True
    return parts.netloc.lower() == _lms_host(lms_url)


def append_token(url: str, token: str) -> str:
    base, hash_sign, fragment = url.partition("#")
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}token={token}{hash_sign}{fragment}"


def fix_image_urls(soup, token: str, lms_url: str) -> int:
    rewritten = 0
    for img in soup.find_all("img", src=True):
        src = str(img["src"])
        if not needs_token(src, lms_url):
            continue
        img["src"] = append_token(src.strip(), token)
        rewritten += 1
    return rewritten


def normalize_entities(soup) -> int:
    from bs4 import NavigableString  # type: ignore

    changed = 0
    for node in soup.find_all(string=True):
        # Comments, CDATA and doctypes are NavigableString subclasses.
        if type(node) is not NavigableString:
            continue
        text = str(node)
        new_text = _ENTITY_RE.sub(lambda m: _ENTITY_CHARS[m.group(1)], text).replace("\u00a0", " ")
        if new_text != text:
            node.replace_with(new_text)
            changed += 1
    return changed


def _run_stage(name: str, stage: Callable[[object], int], soup):
    snapshot = copy.copy(soup)
    try:
        count = stage(soup)
    except Exception as exc:
        LOG.warning("sanitize: %s stage skipped: %s", name, exc)
        return snapshot
    if count:
        LOG.debug("sanitize: %s changed %d node(s)", name, count)
    return soup


def sanitize(html: Optional[str], token: Optional[str] = None, config: Optional[SanitizerConfig] = None) -> str:
    if not html:
        return ""
    cfg = config or default_config()

    try:
        soup = parse_html(html)
    except RuntimeError:
        raise
    except Exception as exc:
        LOG.error("sanitize: unable to parse HTML (%d bytes): %s", len(html), exc)
        return html

    stages: List[Tuple[str, Callable[[object], int]]] = [
        ("remove-elements", remove_unwanted_elements),
        ("remove-navigation", lambda s: remove_navigation(s, cfg)),
        ("remove-containers", lambda s: remove_unwanted_containers(s, cfg)),
        ("clean-images", clean_images),
        ("dedupe-headings", remove_duplicate_headings),
        ("remove-empty-paragraphs", lambda s: remove_empty_paragraphs(s, cfg)),
    ]
    if token:
        stages.append(("token-urls", lambda s: fix_image_urls(s, token, cfg.lms_url)))
    stages.append(("normalize-entities", normalize_entities))

    for name, stage in stages:
        soup = _run_stage(name, stage, soup)

    output = serialize_html(soup)
    LOG.debug("Cleaned HTML: %d -> %d bytes", len(html), len(output))
    return output


clean_html_content = sanitize
