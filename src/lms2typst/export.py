"""Request-scoped export of course sections to a single Typst document."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .core import LOG, ExportError
from .typst import generate_typst_document, html_to_typst


@dataclass
class ExportSection:
    name: str
    content: str


def convert_sections(sections: Iterable[ExportSection]) -> List[Tuple[str, str]]:
    converted: List[Tuple[str, str]] = []
    for section in sections:
        if not section.content:
            continue
        body = html_to_typst(section.content)
        if not body.strip():
            LOG.debug("Section '%s' is empty after conversion; skipped", section.name)
            continue
        LOG.debug("Converted section '%s': %d chars", section.name, len(section.content))
        converted.append((section.name, body))
    return converted


def export_typst(title: str, sections: Iterable[ExportSection]) -> str:
    items = list(sections)
    LOG.info("Export request: %d sections, title: %s", len(items), title)
    converted = convert_sections(items)
    if not converted:
        raise ExportError("No content to export")
    return generate_typst_document(title, converted)


def sanitize_filename(name: str) -> str:
    cleaned = "".join(ch if ch.isalnum() or ch in " -_" else "_" for ch in name or "").strip()
    return cleaned or "document"
