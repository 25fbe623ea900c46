"""Placeholder protocol for spans that must survive lossy text passes.

A protected span is swapped for a marker such as
``___LMS2TYPST_MATH_3_LMS2TYPST___``. Escaping turns every ``_`` into ``\\_``,
so the patterns below accept the raw and the fully escaped spelling and
restoration resolves both.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Pattern

MARKER_START = "___LMS2TYPST_"
MARKER_END = "_LMS2TYPST___"

MATH = "MATH"
HEADING = "HEADING"


def _marker_pattern(kind: str, index: str) -> Pattern[str]:
    # Either every underscore is escaped or none is; a backslash before a raw
    # marker belongs to the surrounding text.
    raw = f"{re.escape(MARKER_START)}{kind}_{index}{re.escape(MARKER_END)}"
    escaped = raw.replace("_", r"\\_")
    return re.compile(f"{raw}|{escaped}")


ANY_MARKER_RE = _marker_pattern(r"[A-Z]+", r"\d+")


def placeholder(kind: str, index: int) -> str:
    return f"{MARKER_START}{kind}_{index}{MARKER_END}"


def _kind_pattern(kind: str) -> Pattern[str]:
    return _marker_pattern(re.escape(kind), r"(\d+)")


def has_unresolved_markers(text: str) -> bool:
    return ANY_MARKER_RE.search(text or "") is not None


@dataclass
class ProtectedSpan:
    kind: str
    index: int
    payload: str
    display: bool = False
    level: int = 0


class ProtectedRegions:
    """Ordered store of protected spans, one sequence per kind."""

    def __init__(self) -> None:
        self._spans: Dict[str, List[ProtectedSpan]] = {}

    def protect(self, kind: str, payload: str, *, display: bool = False, level: int = 0) -> str:
        spans = self._spans.setdefault(kind, [])
        span = ProtectedSpan(kind=kind, index=len(spans), payload=payload, display=display, level=level)
        spans.append(span)
        return placeholder(kind, span.index)

    def spans(self, kind: str) -> List[ProtectedSpan]:
        return list(self._spans.get(kind, []))

    def restore(self, text: str, kind: str, render: Callable[[ProtectedSpan], str]) -> str:
        spans = self._spans.get(kind)
        if not spans:
            return text

        def repl(match: re.Match) -> str:
            index = int(match.group(1) or match.group(2))
            if index >= len(spans):
                return match.group(0)
            return render(spans[index])

        return _kind_pattern(kind).sub(repl, text)


def escape_outside_markers(text: str, escape_char: Callable[[str], str]) -> str:
    """Apply ``escape_char`` to every character that is not part of a marker."""
    out: List[str] = []
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if ch in "_\\":
            match = ANY_MARKER_RE.match(text, i)
            if match:
                out.append(match.group(0))
                i = match.end()
                continue
        out.append(escape_char(ch))
        i += 1
    return "".join(out)
