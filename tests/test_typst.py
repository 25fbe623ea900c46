import pytest

from lms2typst.protected import ProtectedRegions, escape_outside_markers, has_unresolved_markers, placeholder
from lms2typst.typst import extract_math, generate_typst_document, html_to_typst


def test_empty_input():
    assert html_to_typst("") == ""


def test_inline_math_round_trip():
    out = html_to_typst("<p>Let $x + y$ be the sum.</p>")
    assert out == "Let $x + y$ be the sum."


def test_inline_dollar_math_detected():
    assert html_to_typst("<p>$x+y$</p>") == "$x + y$"


@pytest.mark.parametrize(
    "html, expected",
    [
        ("<p>Price: $50</p>", "Price: \\$50"),
        ("<p>It costs $5 and $10</p>", "It costs \\$5 and \\$10"),
        ("<p>Total $1,000.50$</p>", "Total \\$1,000.50\\$"),
    ],
)
def test_currency_is_not_math(html, expected):
    assert html_to_typst(html) == expected


def test_display_math_forms():
    assert html_to_typst("<p>$$\\frac{a}{b}$$</p>") == "$ frac(a, b) $"
    assert html_to_typst("<p>\\[x^2\\]</p>") == "$ x^2 $"
    assert html_to_typst("<p>Inline \\(\\alpha\\) here</p>") == "Inline $alpha$ here"


def test_display_math_gets_its_own_paragraph():
    out = html_to_typst("<p>Before $$x$$ after</p>")
    assert out == "Before\n\n$ x $\n\nafter"


def test_untranslatable_math_passes_through():
    assert html_to_typst("<p>$\\unknowncmd{x}$</p>") == "$\\unknowncmd{x}$"


def test_special_characters_escaped():
    out = html_to_typst("<p>a_b #tag *x* @ref [y] 10\\20</p>")
    assert out == "a\\_b \\#tag \\*x\\* \\@ref \\[y\\] 10\\\\20"


def test_entities_decoded_before_escaping():
    out = html_to_typst("<p>Tom &amp; Jerry 3&gt;2&nbsp;&quot;ok&quot; it&#39;s</p>")
    assert out == "Tom & Jerry 3\\>2 \"ok\" it's"


@pytest.mark.parametrize("level", [1, 2, 3, 4])
def test_heading_levels(level):
    out = html_to_typst(f"<h{level}>Title</h{level}><p>Body</p>")
    assert out == "=" * level + " Title\n\nBody"


def test_h5_is_plain_text():
    assert html_to_typst("<h5>Small</h5>") == "Small"


def test_heading_text_not_escaped_twice():
    out = html_to_typst("<h2 class='x'>snake_case <em>name</em></h2><p>x_y</p>")
    assert out.splitlines() == ["== snake_case name", "", "x\\_y"]


def test_math_inside_heading():
    assert html_to_typst("<h3>Area $\\pi r^2$</h3>") == "=== Area $pi r^2$"


def test_empty_heading_dropped():
    assert html_to_typst("<h2> </h2><p>Body</p>") == "Body"


def test_lists_become_bullets():
    out = html_to_typst("<ul><li>One</li><li><b>Two</b>\n items</li></ul><ol><li>Three</li></ol>")
    assert out == "- One\n- Two items\n\n- Three"


def test_line_breaks_and_whitespace():
    out = html_to_typst("<p>a   b<br>c</p>\n\n\n\n<p>  d  </p>")
    assert out == "a b\nc\n\nd"


def test_no_unresolved_markers():
    html = (
        "<h1>Unit_1 $a_1$</h1><p>Text $x_1 + \\frac{1}{2}$ and \\(y\\)</p>"
        "<ul><li>$$\\sum_{i=1}^{n} i$$</li></ul><h2>Next</h2><p>$bad \\foo$</p>"
    )
    out = html_to_typst(html)
    assert not has_unresolved_markers(out)
    assert "___" not in out


def test_extract_math_uses_placeholders():
    regions = ProtectedRegions()
    text = extract_math("a $x$ b $$y$$", regions)
    assert text == f"a {placeholder('MATH', 1)} b {placeholder('MATH', 0)}"
    spans = regions.spans("MATH")
    assert [(s.payload, s.display) for s in spans] == [("y", True), ("x", False)]


def test_generate_document_structure():
    doc = generate_typst_document('Intro to "C#"', [("Week_1", "Body one"), ("Week 2", "Body two")])
    assert doc.startswith('#set document(title: "Intro to \\"C#\\"")')
    assert 'Intro to "C\\#"' in doc
    assert "#outline(" in doc
    assert "[Table of Contents]" in doc
    assert "\n\n= Week\\_1\n\nBody one" in doc
    assert doc.index("Week\\_1") < doc.index("Week 2")
    assert doc.endswith("\n\n= Week 2\n\nBody two")


def test_generate_document_without_sections():
    doc = generate_typst_document("Empty", [])
    assert doc.rstrip().endswith("// Content")


def test_backslash_before_math_is_kept():
    assert html_to_typst(r"<p>C:\$$x$$</p>") == "C:\\\\\n\n$ x $"


def test_restore_keeps_backslash_before_marker():
    regions = ProtectedRegions()
    marker = regions.protect("MATH", "x")
    escaped = marker.replace("_", "\\_")
    render = lambda span: f"<{span.payload}>"
    assert regions.restore("C:\\" + marker, "MATH", render) == "C:\\<x>"
    assert regions.restore("C:\\\\" + escaped, "MATH", render) == "C:\\\\<x>"


def test_escape_outside_markers_escapes_adjacent_backslash():
    marker = placeholder("MATH", 0)
    escape = lambda ch: "\\" + ch if ch in "\\_" else ch
    assert escape_outside_markers("a_\\" + marker, escape) == "a\\_\\\\" + marker
