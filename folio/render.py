from __future__ import annotations

import re
from typing import Mapping

IMG_SRC_RE = re.compile(r'<img([^>]*?)src="([^"]+)"', re.IGNORECASE)
TAG_RE = re.compile(r"<[^>]+>")
PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
SPACE_RE = re.compile(r"\s+")


def fix_relative_img_src(html_text: str, root: str) -> str:
    """Point relative image sources at ``root`` (the page URL) so they work in feeds too."""

    def repl(match: re.Match) -> str:
        attrs = match.group(1)
        src = match.group(2)
        if src.startswith(("http://", "https://", "data:", "#", "/")):
            return match.group(0)
        if src.startswith("./"):
            src = src[2:]
        return f'<img{attrs}src="{root.rstrip("/")}/{src}"'

    return IMG_SRC_RE.sub(repl, html_text)


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)


def plain_text(html_text: str) -> str:
    return SPACE_RE.sub(" ", strip_tags(html_text)).strip()


def render_template(template: str, context: Mapping[str, str]) -> str:
    """Fill ``{{key}}`` placeholders in a single pass.

    Substituted values are never scanned again, so page bodies that mention
    ``{{content}}`` come through verbatim. Unknown keys are left in place.
    """

    def repl(match: re.Match) -> str:
        key = match.group(1)
        if key in context:
            return context[key]
        return match.group(0)

    return PLACEHOLDER_RE.sub(repl, template)
