from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol
from urllib.parse import quote

from .config import SiteConfig
from .content import Document
from .errors import ConfigError
from .pagination import Pager
from .render import render_template

logger = logging.getLogger(__name__)

LAYOUT_NAMES = ("base", "single", "list", "home", "404")
BUILTIN_THEMES = {"paper", "papermod", "hugo-papermod"}
MATHJAX_HEAD = (
    "<script>window.MathJax={tex:{inlineMath:[['$','$'],['\\\\(','\\\\)']],"
    "displayMath:[['$$','$$'],['\\\\[','\\\\]']]}};</script>"
    '<script id="MathJax-script" async '
    'src="https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"></script>'
)
SHARE_TARGETS = (
    ("x", "https://x.com/intent/tweet/?text={title}&url={url}"),
    ("linkedin", "https://www.linkedin.com/shareArticle?mini=true&url={url}&title={title}"),
    ("reddit", "https://reddit.com/submit?url={url}&title={title}"),
    ("facebook", "https://facebook.com/sharer/sharer.php?u={url}"),
    ("whatsapp", "https://api.whatsapp.com/send?text={title}%20-%20{url}"),
)

BASE_LAYOUT = """<!DOCTYPE html>
<html lang="{{lang}}" data-theme="{{default_theme}}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{title}}</title>
<meta name="description" content="{{description}}">
<link rel="canonical" href="{{canonical}}">
<link rel="stylesheet" href="{{root}}css/style.css">
{{feeds}}
{{extra_head}}
</head>
<body class="{{body_class}}">
<header class="header">
<nav class="nav">
<a class="logo" href="{{root}}">{{site_name}}</a>
<ul id="menu">{{menu}}</ul>
</nav>
</header>
<main class="main">
{{content}}
</main>
<footer class="footer">{{footer}}</footer>
</body>
</html>
"""

SINGLE_LAYOUT = """<article class="post-single">
<header class="post-header">
{{breadcrumbs}}
<h1 class="post-title">{{page_title}}</h1>
{{page_description}}
<div class="post-meta">{{meta}}</div>
</header>
{{toc}}
<div class="post-content">{{body}}</div>
<footer class="post-footer">
<ul class="post-tags">{{terms}}</ul>
{{share}}
</footer>
{{comments}}
</article>
"""

LIST_LAYOUT = """<header class="page-header">
{{breadcrumbs}}
<h1>{{page_title}}</h1>
</header>
{{entries}}
{{pagination}}
"""

HOME_LAYOUT = """{{home_info}}
{{entries}}
{{pagination}}
"""

NOT_FOUND_LAYOUT = """<div class="not-found">404</div>
<p class="not-found-text">The page you requested does not exist. <a href="{{root}}">Back to home</a></p>
"""

BUILTIN_LAYOUTS = {
    "base": BASE_LAYOUT,
    "single": SINGLE_LAYOUT,
    "list": LIST_LAYOUT,
    "home": HOME_LAYOUT,
    "404": NOT_FOUND_LAYOUT,
}


@dataclass(frozen=True)
class TermLink:
    kind: str
    name: str
    url: str
    count: int = 0


@dataclass(frozen=True)
class PageView:
    document: Document
    body: str
    toc: str
    summary: str
    words: int
    reading_time: int
    terms: tuple[TermLink, ...] = ()


@dataclass(frozen=True)
class ListView:
    kind: str
    title: str
    url: str
    pager: Optional[Pager] = None
    terms: tuple[TermLink, ...] = ()
    feeds: tuple[tuple[str, str], ...] = ()
    home_info: str = ""

    @property
    def entries(self) -> tuple[PageView, ...]:
        return self.pager.items if self.pager else ()


class Theme(Protocol):
    """What a theme must be able to draw; chosen once from the site configuration."""

    name: str

    def render_single(self, page: PageView, config: SiteConfig) -> str: ...

    def render_list(self, listing: ListView, config: SiteConfig) -> str: ...

    def render_home(self, listing: ListView, config: SiteConfig) -> str: ...

    def render_not_found(self, config: SiteConfig) -> str: ...


def format_date(value) -> str:
    return f"{value:%B} {value.day}, {value.year}"


class LayoutTheme:
    """A theme made of ``{{key}}`` layouts, the built-in ones overridable from disk."""

    def __init__(self, name: str, layouts: Mapping[str, str]) -> None:
        self.name = name
        self.layouts = dict(BUILTIN_LAYOUTS)
        self.layouts.update(layouts)

    def render_single(self, page: PageView, config: SiteConfig) -> str:
        doc = page.document
        params = doc.params
        description = ""
        if doc.summary:
            description = f'<div class="post-description">{html.escape(doc.summary)}</div>'
        toc = ""
        if config.feature("ShowToc", params) and "<li" in page.toc:
            toc = (
                '<details class="toc"><summary><span class="title">Table of Contents</span></summary>'
                f'<div class="inner">{page.toc}</div></details>'
            )
        share = self._share_buttons(doc, config) if config.feature("ShowShareButtons", params) else ""
        comments = ""
        if config.feature("comments", params):
            comments = '<section class="comments" id="comments"></section>'
        content = render_template(
            self.layouts["single"],
            {
                "root": config.base_path,
                "breadcrumbs": self._breadcrumbs(doc, config),
                "page_title": html.escape(doc.title),
                "page_description": description,
                "meta": self._page_meta(page, config),
                "toc": toc,
                "body": page.body,
                "terms": "".join(
                    f'<li><a href="{html.escape(link.url)}">{html.escape(link.name)}</a></li>'
                    for link in page.terms
                    if link.kind == "tags"
                ),
                "share": share,
                "comments": comments,
            },
        )
        extra_head = MATHJAX_HEAD if config.feature("math", params) else ""
        return self._base(
            config,
            title=f"{doc.title} | {config.title}",
            description=doc.summary or page.summary,
            url=doc.url,
            content=content,
            body_class="single",
            extra_head=extra_head,
        )

    def render_list(self, listing: ListView, config: SiteConfig) -> str:
        if listing.kind == "taxonomy":
            entries = self._term_cloud(listing)
        else:
            entries = self._entries(listing.entries, config)
        breadcrumbs = ""
        if config.feature("ShowBreadCrumbs"):
            breadcrumbs = f'<div class="breadcrumbs"><a href="{config.base_path}">Home</a></div>'
        content = render_template(
            self.layouts["list"],
            {
                "root": config.base_path,
                "breadcrumbs": breadcrumbs,
                "page_title": html.escape(listing.title),
                "entries": entries,
                "pagination": self._pagination(listing.pager, config),
            },
        )
        return self._base(
            config,
            title=f"{listing.title} | {config.title}",
            description=str(config.param("description", "")),
            url=listing.pager.url if listing.pager else listing.url,
            content=content,
            body_class="list",
            feeds=listing.feeds,
        )

    def render_home(self, listing: ListView, config: SiteConfig) -> str:
        content = render_template(
            self.layouts["home"],
            {
                "root": config.base_path,
                "home_info": listing.home_info,
                "entries": self._entries(listing.entries, config),
                "pagination": self._pagination(listing.pager, config),
            },
        )
        title = config.title
        if listing.pager and listing.pager.number > 1:
            title = f"Page {listing.pager.number} | {config.title}"
        return self._base(
            config,
            title=title,
            description=str(config.param("description", "")),
            url=listing.pager.url if listing.pager else "/",
            content=content,
            body_class="list home",
            feeds=listing.feeds,
        )

    def render_not_found(self, config: SiteConfig) -> str:
        content = render_template(self.layouts["404"], {"root": config.base_path})
        return self._base(
            config,
            title=f"404 Page not found | {config.title}",
            description="",
            url="/404.html",
            content=content,
            body_class="list not-found",
        )

    def _base(
        self,
        config: SiteConfig,
        title: str,
        description: str,
        url: str,
        content: str,
        body_class: str,
        extra_head: str = "",
        feeds: tuple[tuple[str, str], ...] = (),
    ) -> str:
        feed_links = []
        for output_format, feed_url in feeds:
            media = "application/rss+xml" if output_format == "RSS" else "application/feed+json"
            feed_links.append(
                f'<link rel="alternate" type="{media}" href="{html.escape(config.rel_url(feed_url))}"'
                f' title="{html.escape(config.title)}">'
            )
        return render_template(
            self.layouts["base"],
            {
                "lang": html.escape(config.language_code),
                "default_theme": html.escape(str(config.param("defaultTheme", "auto"))),
                "title": html.escape(title),
                "description": html.escape(description),
                "canonical": html.escape(config.abs_url(url)),
                "root": config.base_path,
                "feeds": "\n".join(feed_links),
                "extra_head": extra_head,
                "body_class": body_class,
                "site_name": html.escape(config.title),
                "menu": self._menu(config),
                "footer": self._footer(config),
                "content": content,
            },
        )

    def _menu(self, config: SiteConfig) -> str:
        items = []
        for entry in config.menu:
            href = entry.url if entry.is_external else config.rel_url(entry.url)
            items.append(
                f'<li><a href="{html.escape(href)}" title="{html.escape(entry.name)}">'
                f"<span>{html.escape(entry.name)}</span></a></li>"
            )
        return "".join(items)

    def _footer(self, config: SiteConfig) -> str:
        parts = []
        if config.social_icons:
            icons = "".join(
                f'<a href="{html.escape(icon.url)}" target="_blank" rel="noopener noreferrer me"'
                f' title="{html.escape(icon.name)}">{html.escape(icon.name)}</a>'
                for icon in config.social_icons
            )
            parts.append(f'<div class="social-icons">{icons}</div>')
        if config.copyright:
            parts.append(f"<span>{html.escape(config.copyright)}</span>")
        return "".join(parts)

    def _breadcrumbs(self, doc: Document, config: SiteConfig) -> str:
        if not config.feature("ShowBreadCrumbs", doc.params):
            return ""
        crumbs = [f'<a href="{config.base_path}">Home</a>']
        if doc.section:
            crumbs.append(
                f'<a href="{config.rel_url(f"/{doc.section}/")}">{html.escape(doc.section.title())}</a>'
            )
        return f'<div class="breadcrumbs">{"&nbsp;»&nbsp;".join(crumbs)}</div>'

    def _page_meta(self, page: PageView, config: SiteConfig) -> str:
        doc = page.document
        parts = []
        if doc.date is not None:
            parts.append(
                f'<span title="{doc.date.isoformat()}">{format_date(doc.date)}</span>'
            )
        if config.feature("ShowReadingTime", doc.params):
            parts.append(f"<span>{page.reading_time} min</span>")
        author = doc.author or config.author
        if author:
            parts.append(f"<span>{html.escape(author)}</span>")
        return "&nbsp;·&nbsp;".join(parts)

    def _share_buttons(self, doc: Document, config: SiteConfig) -> str:
        url = quote(config.abs_url(doc.url), safe="")
        title = quote(doc.title, safe="")
        links = "".join(
            f'<a target="_blank" rel="noopener noreferrer" aria-label="share on {name}" '
            f'href="{html.escape(template.format(url=url, title=title))}">{name}</a>'
            for name, template in SHARE_TARGETS
        )
        return f'<div class="share-buttons">{links}</div>'

    def _entries(self, pages: tuple[PageView, ...], config: SiteConfig) -> str:
        cards = []
        for page in pages:
            doc = page.document
            cards.append(
                '<article class="post-entry">'
                f'<header class="entry-header"><h2>{html.escape(doc.title)}</h2></header>'
                f'<div class="entry-content"><p>{html.escape(page.summary)}</p></div>'
                f'<footer class="entry-footer">{self._page_meta(page, config)}</footer>'
                f'<a class="entry-link" aria-label="post link to {html.escape(doc.title)}"'
                f' href="{html.escape(config.rel_url(doc.url))}"></a>'
                "</article>"
            )
        return "\n".join(cards)

    def _term_cloud(self, listing: ListView) -> str:
        items = "".join(
            f'<li><a href="{html.escape(link.url)}">{html.escape(link.name)} '
            f"<sup><strong><sup>{link.count}</sup></strong></sup></a></li>"
            for link in listing.terms
        )
        return f'<ul class="terms-tags">{items}</ul>'

    def _pagination(self, pager: Optional[Pager], config: SiteConfig) -> str:
        if pager is None or pager.total <= 1:
            return ""
        links = []
        if pager.prev_url:
            links.append(f'<a class="prev" href="{config.rel_url(pager.prev_url)}">« Prev</a>')
        if pager.next_url:
            links.append(f'<a class="next" href="{config.rel_url(pager.next_url)}">Next »</a>')
        return f'<footer class="page-footer"><nav class="pagination">{"".join(links)}</nav></footer>'


def load_theme(config: SiteConfig, project_root: Path) -> Theme:
    """Pick the theme named in the config.

    ``themes/<name>/layouts/*.html`` overrides the built-in layouts one file
    at a time; a name that is neither built in nor on disk is a config error.
    """
    name = config.theme.strip()
    layouts_dir = project_root / config.themes_dir / name / "layouts"
    layouts = {}
    if layouts_dir.is_dir():
        for layout in LAYOUT_NAMES:
            path = layouts_dir / f"{layout}.html"
            if path.exists():
                layouts[layout] = path.read_text(encoding="utf-8")
        logger.debug("Theme %s overrides layouts: %s", name, ", ".join(sorted(layouts)) or "none")
    elif name.lower() not in BUILTIN_THEMES:
        raise ConfigError(f"Unknown theme {name!r} (no layouts found in {layouts_dir})")
    return LayoutTheme(name, layouts)
