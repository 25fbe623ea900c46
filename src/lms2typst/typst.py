"""HTML to Typst conversion and Typst document assembly."""

from __future__ import annotations

import re
from typing import Iterable, Tuple

from .latex import safe_latex_to_typst
from .protected import HEADING, MATH, ProtectedRegions, ProtectedSpan, escape_outside_markers

HTML_ENTITIES = [
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&nbsp;", " "),
    ("&#39;", "'"),
]
TYPST_SPECIAL_CHARS = "\\#$*_@[]<>"

_DISPLAY_DOLLAR_RE = re.compile(r"\$\$([\s\S]+?)\$\$")
_DISPLAY_BRACKET_RE = re.compile(r"\\\[([\s\S]*?)\\\]")
_INLINE_PAREN_RE = re.compile(r"\\\((.+?)\\\)")
_INLINE_DOLLAR_RE = re.compile(r"(?<!\\)\$(?!\s)([^$\n]+?)(?<!\s)\$(?!\d)")
_CURRENCY_RE = re.compile(r"^[\d.,\s]+$")

_HEADING_RES = [(level, re.compile(rf"(?is)<h{level}\b[^>]*>(.*?)</h{level}\s*>")) for level in range(1, 5)]
_LI_RE = re.compile(r"(?is)<li\b[^>]*>(.*?)</li\s*>")
_LIST_WRAPPER_RE = re.compile(r"(?i)</?(?:ul|ol)\b[^>]*>")
_BR_RE = re.compile(r"(?i)<br\s*/?>")
_P_CLOSE_RE = re.compile(r"(?i)</p\s*>")
_P_OPEN_RE = re.compile(r"(?i)<p\b[^>]*>")
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

DOCUMENT_TEMPLATE = """#set document(title: "{string_title}")
#set page(
  paper: "a4",
  margin: (x: 2.5cm, y: 2cm),
  numbering: "1",
)
#set text(font: "New Computer Modern", size: 11pt)
#set heading(numbering: "1.1")
#set par(justify: true)

// Title page
#align(center)[
  #v(3cm)
  #text(size: 28pt, weight: "bold")[
    {markup_title}
  ]
  #v(1cm)
  #text(size: 14pt, fill: gray)[Course Notes]
  #v(2cm)
]

#pagebreak()

// Table of contents
#outline(
  title: [Table of Contents],
  indent: auto,
)

#pagebreak()

// Content
"""


def decode_entities(text: str) -> str:
    for entity, char in HTML_ENTITIES:
        text = text.replace(entity, char)
    return text


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _is_currency(content: str) -> bool:
    return bool(_CURRENCY_RE.match(content))


def extract_math(text: str, regions: ProtectedRegions) -> str:
    # Block forms run first so "$$x$$" is never read as two "$" spans.
    passes = [
        (_DISPLAY_DOLLAR_RE, True),
        (_DISPLAY_BRACKET_RE, True),
        (_INLINE_PAREN_RE, False),
        (_INLINE_DOLLAR_RE, False),
    ]
    for pattern, display in passes:
        check_currency = pattern is _INLINE_DOLLAR_RE

        def repl(match: re.Match, display: bool = display, check_currency: bool = check_currency) -> str:
            content = match.group(1)
            if check_currency and _is_currency(content):
                return match.group(0)
            return regions.protect(MATH, content, display=display)

        text = pattern.sub(repl, text)
    return text


def strip_html_tags(text: str) -> str:
    text = _BR_RE.sub("\n", text)
    text = _P_CLOSE_RE.sub("\n\n", text)
    text = _P_OPEN_RE.sub("\n", text)
    return _TAG_RE.sub("", text)


def extract_headings(text: str, regions: ProtectedRegions) -> str:
    for level, pattern in _HEADING_RES:

        def repl(match: re.Match, level: int = level) -> str:
            title = _collapse(strip_html_tags(match.group(1)))
            return "\n\n" + regions.protect(HEADING, title, level=level) + "\n\n"

        text = pattern.sub(repl, text)
    return text


def convert_lists(text: str) -> str:
    text = _LI_RE.sub(lambda m: "\n- " + _collapse(strip_html_tags(m.group(1))), text)
    return _LIST_WRAPPER_RE.sub("\n\n", text)


def escape_typst_char(ch: str) -> str:
    return "\\" + ch if ch in TYPST_SPECIAL_CHARS else ch


def escape_typst_text(text: str) -> str:
    return "".join(escape_typst_char(ch) for ch in text)


def escape_typst_content(text: str) -> str:
    return escape_outside_markers(text, escape_typst_char)


def escape_typst_string(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _render_heading(span: ProtectedSpan) -> str:
    if not span.payload:
        return ""
    return f"{'=' * span.level} {span.payload}"


def _render_math(span: ProtectedSpan) -> str:
    math = safe_latex_to_typst(span.payload.strip())
    if span.display:
        return f"\n\n$ {math} $\n\n"
    return f"${math}$"


def clean_whitespace(text: str) -> str:
    text = re.sub(r" {2,}", " ", text)
    text = "\n".join(line.strip() for line in text.splitlines())
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def html_to_typst(html: str) -> str:
    if not html:
        return ""
    regions = ProtectedRegions()
    text = decode_entities(html)
    text = extract_math(text, regions)
    text = extract_headings(text, regions)
    text = convert_lists(text)
    text = strip_html_tags(text)
    text = escape_typst_content(text)
    text = regions.restore(text, HEADING, _render_heading)
    text = regions.restore(text, MATH, _render_math)
    return clean_whitespace(text)


def generate_typst_document(title: str, sections: Iterable[Tuple[str, str]]) -> str:
    one_line_title = _collapse(title or "")
    parts = [
        DOCUMENT_TEMPLATE.format(
            string_title=escape_typst_string(one_line_title),
            markup_title=escape_typst_text(one_line_title),
        )
    ]
    for name, body in sections:
        parts.append(f"\n\n= {escape_typst_text(_collapse(name or ''))}\n\n")
        parts.append(body)
    return "".join(parts)


convert = html_to_typst
assemble = generate_typst_document
