from __future__ import annotations

import html
import re
import xml.etree.ElementTree as etree
from dataclasses import dataclass

import markdown
from markdown.extensions import Extension
from markdown.inlinepatterns import InlineProcessor
from markdown.postprocessors import Postprocessor
from markdown.preprocessors import Preprocessor
from markdown.treeprocessors import Treeprocessor
from markdown.util import AtomicString

from .config import SiteConfig
from .content import FENCE_RE, normalize_list_spacing
from .errors import RenderError

MORE_DIVIDER = "<!--more-->"
RE_INLINE_MATH = r"(?<![\\$])\$(?![\s$])(?P<dollar>[^$\n]+?)(?<!\s)\$(?!\d)|\\\((?P<paren>.+?)\\\)"
DISPLAY_MATH_OPEN = {"$$": "$$", "\\[": "\\]"}
PRE_BLOCK_RE = re.compile(r"<pre\b[^>]*>.*?</pre>", re.DOTALL)
UNSAFE_SCHEMES = ("javascript:", "vbscript:", "file:")
SAFE_DATA_URL_RE = re.compile(r"data:image/(?:png|gif|jpeg|webp);")
URL_IGNORED_RE = re.compile(r"[\x00-\x20]+")


@dataclass(frozen=True)
class MarkupOptions:
    unsafe: bool = False
    copy_buttons: bool = False
    math: bool = False
    highlight_style: str = "monokai"
    highlight_no_classes: bool = False
    toc_depth: str = "2-4"

    @classmethod
    def from_config(cls, config: SiteConfig, page_params=None) -> "MarkupOptions":
        return cls(
            unsafe=config.unsafe_html,
            copy_buttons=config.feature("ShowCodeCopyButtons", page_params),
            math=config.feature("math", page_params),
            highlight_style=config.highlight_style,
            highlight_no_classes=config.highlight_no_classes,
            toc_depth=f"{config.toc_start}-{config.toc_end}",
        )


@dataclass(frozen=True)
class Markup:
    html: str
    toc: str


def check_fences(text: str, path: str) -> None:
    """Raise ``RenderError`` when a fenced code block is opened but never closed."""
    fence_marker = ""
    opened_at = 0
    for number, line in enumerate(text.splitlines(), start=1):
        match = FENCE_RE.match(line)
        if not match:
            continue
        marker = match.group(2)
        if not fence_marker:
            fence_marker = marker
            opened_at = number
        elif marker[0] == fence_marker[0] and len(marker) >= len(fence_marker) and not line.strip(
            " \t" + marker[0]
        ):
            fence_marker = ""
    if fence_marker:
        raise RenderError(path, f"unterminated code fence opened at line {opened_at}")


class InlineMathProcessor(InlineProcessor):
    def handleMatch(self, m, data):
        el = etree.Element("span")
        el.set("class", "math inline")
        el.text = AtomicString(m.group(0))
        return el, m.start(0), m.end(0)


class DisplayMathPreprocessor(Preprocessor):
    def run(self, lines):
        out = []
        i = 0
        while i < len(lines):
            line = lines[i]
            stripped = line.strip()
            opener = next((key for key in DISPLAY_MATH_OPEN if stripped.startswith(key)), None)
            if opener is None or line.startswith("    "):
                out.append(line)
                i += 1
                continue
            closer = DISPLAY_MATH_OPEN[opener]
            block = [stripped]
            end = i
            rest = stripped[len(opener) :]
            if not rest.rstrip().endswith(closer):
                end = None
                for j in range(i + 1, len(lines)):
                    block.append(lines[j])
                    if lines[j].rstrip().endswith(closer):
                        end = j
                        break
            if end is None:
                out.append(line)
                i += 1
                continue
            source = "\n".join(block)
            placeholder = self.md.htmlStash.store(
                f'<div class="math display">{html.escape(source, quote=False)}</div>'
            )
            out.extend(["", placeholder, ""])
            i = end + 1
        return out


class MathExtension(Extension):
    """Leave TeX untouched so MathJax or KaTeX can typeset it in the browser."""

    def extendMarkdown(self, md):
        md.preprocessors.register(DisplayMathPreprocessor(md), "display_math", 22)
        md.inlinePatterns.register(InlineMathProcessor(RE_INLINE_MATH, md), "inline_math", 185)


class MoreDividerPreprocessor(Preprocessor):
    """Keep the summary divider as a comment even when raw HTML is escaped."""

    def run(self, lines):
        return [
            self.md.htmlStash.store(MORE_DIVIDER) if line.strip() == MORE_DIVIDER else line
            for line in lines
        ]


class SummaryDividerExtension(Extension):
    def extendMarkdown(self, md):
        md.preprocessors.register(MoreDividerPreprocessor(md), "more_divider", 21)


def is_unsafe_url(url: str) -> bool:
    """True for script and local-file URLs, and for ``data:`` URLs that are not images."""
    compact = URL_IGNORED_RE.sub("", html.unescape(url)).lower()
    if compact.startswith(UNSAFE_SCHEMES):
        return True
    return compact.startswith("data:") and not SAFE_DATA_URL_RE.match(compact)


class SafeUrlTreeprocessor(Treeprocessor):
    ATTRIBUTES = {"a": "href", "img": "src"}

    def run(self, root):
        for element in root.iter():
            attribute = self.ATTRIBUTES.get(element.tag)
            if attribute is None:
                continue
            if is_unsafe_url(element.get(attribute, "")):
                element.set(attribute, "")


class EscapeHtmlExtension(Extension):
    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")
        # After "unescape" (0) so backslash escapes cannot hide a scheme.
        md.treeprocessors.register(SafeUrlTreeprocessor(md), "safe_url", -10)


class CopyButtonPostprocessor(Postprocessor):
    def run(self, text):
        def repl(match: re.Match) -> str:
            return (
                '<div class="code-block">'
                f"{match.group(0)}"
                '<button class="copy-code" type="button" aria-label="Copy code">copy</button>'
                "</div>"
            )

        return PRE_BLOCK_RE.sub(repl, text)


class CopyButtonExtension(Extension):
    def extendMarkdown(self, md):
        # Runs after raw_html (30) has put highlighted code back in place.
        md.postprocessors.register(CopyButtonPostprocessor(md), "copy_button", 25)


class MarkupRenderer:
    """Markdown to HTML conversion for one document body."""

    def __init__(self, options: MarkupOptions) -> None:
        self.options = options

    def _markdown(self) -> markdown.Markdown:
        extensions: list = [
            "fenced_code",
            "tables",
            "codehilite",
            "toc",
            "sane_lists",
            SummaryDividerExtension(),
        ]
        if self.options.math:
            extensions.append(MathExtension())
        if not self.options.unsafe:
            extensions.append(EscapeHtmlExtension())
        if self.options.copy_buttons:
            extensions.append(CopyButtonExtension())
        return markdown.Markdown(
            extensions=extensions,
            extension_configs={
                "toc": {"toc_depth": self.options.toc_depth},
                "codehilite": {
                    "css_class": "highlight",
                    "guess_lang": False,
                    "noclasses": self.options.highlight_no_classes,
                    "pygments_style": self.options.highlight_style,
                },
            },
            output_format="html",
        )

    def convert(self, text: str, path: str) -> Markup:
        check_fences(text, path)
        md = self._markdown()
        html_content = md.convert(normalize_list_spacing(text))
        toc_html = md.toc
        md.reset()
        return Markup(html=html_content, toc=toc_html)
