"""Unit tests for Markdown conversion."""

import pytest

from folio.config import SiteConfig
from folio.errors import RenderError
from folio.markup import MarkupOptions, MarkupRenderer, check_fences


def convert(text, **options):
    return MarkupRenderer(MarkupOptions(**options)).convert(text, "doc.md")


@pytest.mark.unit
def test_basic_markdown():
    result = convert("# Title\n\nSome *text* and a [link](https://example.org).")
    assert "<em>text</em>" in result.html
    assert '<a href="https://example.org">link</a>' in result.html


@pytest.mark.unit
def test_raw_html_escaped_by_default():
    result = convert("<script>alert(1)</script>\n\nInline <b>bold</b>.")
    assert "<script>" not in result.html
    assert "&lt;script&gt;" in result.html
    assert "&lt;b&gt;" in result.html


@pytest.mark.unit
def test_raw_html_passes_through_when_unsafe():
    result = convert('<div class="note">hi</div>\n\nInline <b>bold</b>.', unsafe=True)
    assert '<div class="note">hi</div>' in result.html
    assert "<b>bold</b>" in result.html


@pytest.mark.unit
def test_script_urls_blanked_by_default():
    text = "\n\n".join(
        [
            "[a](javascript:alert(1))",
            "[b](&#106;avascript:alert(2))",
            "[c](javascript:alert\\(3\\))",
            "[d](VBScript:msgbox)",
            "![e](data:text/html;base64,PHNjcmlwdD4=)",
            "![f](data:image/png;base64,iVBORw0KGgo=)",
            "[g](https://example.org/)",
        ]
    )
    result = convert(text)
    assert result.html.count('href=""') == 4
    assert 'src=""' in result.html
    assert "alert" not in result.html
    assert "msgbox" not in result.html
    assert 'src="data:image/png;base64,iVBORw0KGgo="' in result.html
    assert 'href="https://example.org/"' in result.html


@pytest.mark.unit
def test_script_urls_kept_when_unsafe():
    result = convert("[a](javascript:alert(1))", unsafe=True)
    assert 'href="javascript:alert(1)"' in result.html


@pytest.mark.unit
def test_more_divider_survives_escaping():
    result = convert("Intro.\n\n<!--more-->\n\nRest.")
    assert "<!--more-->" in result.html


@pytest.mark.unit
def test_fenced_code_is_highlighted():
    result = convert("```python\nprint('hi')\n```")
    assert 'class="highlight"' in result.html
    assert "print" in result.html


@pytest.mark.unit
def test_unterminated_fence():
    with pytest.raises(RenderError, match="line 3"):
        convert("Text\n\n```python\nprint('hi')\n")


@pytest.mark.unit
def test_check_fences_accepts_longer_closer():
    check_fences("````\ncode\n`````\n", "doc.md")
    check_fences("~~~\n```\n~~~\n", "doc.md")


@pytest.mark.unit
def test_toc_depth():
    result = convert("# Top\n\n## Second\n\n### Third", toc_depth="2-2")
    assert "Second" in result.toc
    assert "Third" not in result.toc
    assert "Top" not in result.toc


@pytest.mark.unit
def test_math_left_for_client_side_typesetting():
    result = convert("Inline $a_1 + b_2$ here.\n\n$$\nx^2 < y\n$$", math=True)
    assert '<span class="math inline">$a_1 + b_2$</span>' in result.html
    assert '<div class="math display">$$\nx^2 &lt; y\n$$</div>' in result.html


@pytest.mark.unit
def test_copy_buttons_wrap_code_blocks():
    result = convert("```\ncode\n```", copy_buttons=True)
    assert '<div class="code-block">' in result.html
    assert 'class="copy-code"' in result.html


@pytest.mark.unit
def test_options_from_config_and_front_matter():
    config = SiteConfig.from_mapping(
        {"params": {"math": True}, "markup": {"tableOfContents": {"startLevel": 1, "endLevel": 3}}}
    )
    options = MarkupOptions.from_config(config, {"math": False, "showcodecopybuttons": True})
    assert options.math is False
    assert options.copy_buttons is True
    assert options.toc_depth == "1-3"


@pytest.mark.unit
def test_conversion_is_deterministic():
    text = "# Heading\n\n- one\n- two\n\n```python\nx = 1\n```"
    assert convert(text).html == convert(text).html
