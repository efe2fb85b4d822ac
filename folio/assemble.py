from __future__ import annotations

import html
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, Optional, Sequence

from .config import SiteConfig
from .content import Document
from .errors import RouteCollisionError
from .feeds import build_json_feed, build_rss, build_sitemap
from .markup import MarkupOptions, MarkupRenderer
from .pages import RenderedPage
from .pagination import paginate
from .taxonomy import OLDEST, TAXONOMIES, TaxonomyIndex
from .themes import ListView, TermLink, Theme

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "HTML": "text/html; charset=utf-8",
    "RSS": "application/rss+xml; charset=utf-8",
    "JSON": "application/feed+json; charset=utf-8",
    "XML": "application/xml; charset=utf-8",
}
FEED_FILES = {"RSS": "index.xml", "JSON": "index.json"}


@dataclass(frozen=True)
class Route:
    url: str
    output_format: str
    kind: str
    content: bytes = b""
    content_type: str = "text/html; charset=utf-8"
    origin: str = ""
    source: Optional[Path] = None

    def body(self) -> bytes:
        if self.source is not None:
            return self.source.read_bytes()
        return self.content


@dataclass(frozen=True)
class Asset:
    """A file copied verbatim: a static file or a page-bundle resource."""

    url: str
    source: Path
    kind: str = "static"
    origin: str = ""


class RouteTable:
    def __init__(self) -> None:
        self._routes: dict[str, Route] = {}

    def add(self, route: Route) -> None:
        existing = self._routes.get(route.url)
        if existing is not None:
            raise RouteCollisionError(route.url, existing.origin or existing.kind, route.origin or route.kind)
        self._routes[route.url] = route

    def get(self, url: str) -> Optional[Route]:
        return self._routes.get(url)

    def __contains__(self, url: str) -> bool:
        return url in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[Route]:
        for url in sorted(self._routes):
            yield self._routes[url]

    def by_kind(self, kind: str) -> list[Route]:
        return [route for route in self if route.kind == kind]


def text_route(url: str, output_format: str, kind: str, text: str, origin: str = "") -> Route:
    return Route(
        url=url,
        output_format=output_format,
        kind=kind,
        content=text.encode("utf-8"),
        content_type=CONTENT_TYPES[output_format],
        origin=origin or kind,
    )


def list_order(pages: Iterable[RenderedPage]) -> list[RenderedPage]:
    """Weighted pages first (ascending weight), then newest first, then by path."""
    ordered = sorted(pages, key=lambda page: page.document.path)
    ordered.sort(key=lambda page: page.document.date or OLDEST, reverse=True)
    ordered.sort(key=lambda page: (page.document.weight == 0, page.document.weight))
    return ordered


def home_info_html(config: SiteConfig) -> str:
    info = config.home_info
    if info is None:
        return ""
    body = MarkupRenderer(MarkupOptions.from_config(config)).convert(info.content, "homeInfoParams").html
    icons = "".join(
        f'<a href="{html.escape(icon.url)}" target="_blank" rel="noopener noreferrer me"'
        f' title="{html.escape(icon.name)}">{html.escape(icon.name)}</a>'
        for icon in config.social_icons
    )
    footer = f'<footer class="entry-footer"><div class="social-icons">{icons}</div></footer>' if icons else ""
    return (
        '<article class="first-entry home-info">'
        f'<header class="entry-header"><h1>{html.escape(info.title)}</h1></header>'
        f'<div class="entry-content">{body}</div>'
        f"{footer}"
        "</article>"
    )


class SiteAssembler:
    """Turns rendered pages into the full route table for one build."""

    def __init__(self, config: SiteConfig, theme: Theme, index: TaxonomyIndex) -> None:
        self.config = config
        self.theme = theme
        self.index = index
        self.routes = RouteTable()
        self._sitemap: list[tuple[str, Optional[object]]] = []

    def assemble(self, pages: Sequence[RenderedPage], assets: Sequence[Asset] = ()) -> RouteTable:
        pages = list_order(pages)
        self.add_single_pages(pages)
        self.add_home(pages)
        self.add_sections(pages)
        self.add_taxonomies(pages)
        for asset in sorted(assets, key=lambda item: item.url):
            content_type = mimetypes.guess_type(asset.url)[0] or "application/octet-stream"
            self.routes.add(
                Route(
                    url=asset.url,
                    output_format="STATIC",
                    kind=asset.kind,
                    content_type=content_type,
                    origin=asset.origin or str(asset.source),
                    source=asset.source,
                )
            )
        if self.config.enable_404:
            self.routes.add(text_route("/404.html", "HTML", "notfound", self.theme.render_not_found(self.config)))
        if self.config.enable_sitemap:
            self.routes.add(text_route("/sitemap.xml", "XML", "sitemap", build_sitemap(self._sitemap, self.config)))
        logger.info("Assembled %d routes", len(self.routes))
        return self.routes

    def add_single_pages(self, pages: Sequence[RenderedPage]) -> None:
        if "HTML" not in self.config.outputs_for("page"):
            return
        for page in pages:
            doc = page.document
            self.routes.add(text_route(doc.url, "HTML", "page", page.html, origin=doc.path))
            self._sitemap.append((doc.url, doc.lastmod or doc.date))

    def add_home(self, pages: Sequence[RenderedPage]) -> None:
        sections = self.config.main_sections
        if sections:
            pages = [page for page in pages if page.document.section in sections]
        self.add_list("home", self.config.title, "/", pages)

    def add_sections(self, pages: Sequence[RenderedPage]) -> None:
        sections: dict[str, list[RenderedPage]] = {}
        for page in pages:
            if page.document.section:
                sections.setdefault(page.document.section, []).append(page)
        for section in sorted(sections):
            self.add_list("section", section.replace("-", " ").title(), f"/{section}/", sections[section])

    def add_taxonomies(self, pages: Sequence[RenderedPage]) -> None:
        by_path = {page.document.path: page for page in pages}
        for kind in TAXONOMIES:
            terms = self.index.terms(kind)
            if not terms:
                continue
            # Documents that failed to render drop out of their terms here.
            rendered = []
            for term in terms:
                members = list_order(by_path[path] for path in term.members if path in by_path)
                if members:
                    rendered.append((term, members))
            if not rendered:
                continue
            tagged = [page for page in pages if page.document.terms(kind)]
            links = tuple(
                TermLink(kind=kind, name=term.value, url=self.config.rel_url(term.url), count=len(members))
                for term, members in rendered
            )
            self.add_list("taxonomy", kind.title(), f"/{kind}/", tagged, terms=links)
            for term, members in rendered:
                self.add_list("term", term.value, term.url, members)

    def add_list(
        self,
        kind: str,
        title: str,
        url: str,
        pages: Sequence[RenderedPage],
        terms: tuple[TermLink, ...] = (),
    ) -> None:
        outputs = self.config.outputs_for(kind)
        feeds = tuple((fmt, f"{url}{FEED_FILES[fmt]}") for fmt in outputs if fmt in FEED_FILES)
        if "HTML" in outputs:
            if kind == "taxonomy":
                pagers = [None]
            else:
                pagers = paginate([page.view for page in pages], self.config.paginate, url)
            for pager in pagers:
                first = pager is None or pager.number == 1
                listing = ListView(
                    kind=kind,
                    title=title,
                    url=url,
                    pager=pager,
                    terms=terms,
                    feeds=feeds,
                    home_info=home_info_html(self.config) if kind == "home" and first else "",
                )
                if kind == "home":
                    text = self.theme.render_home(listing, self.config)
                else:
                    text = self.theme.render_list(listing, self.config)
                page_url = pager.url if pager is not None else url
                self.routes.add(text_route(page_url, "HTML", kind, text, origin=f"{kind} list {url}"))
                self._sitemap.append((page_url, None))
        feed_title = self._feed_title(title)
        if "RSS" in outputs:
            rss = build_rss(pages, self.config, feed_title, url)
            self.routes.add(text_route(f"{url}index.xml", "RSS", "feed", rss, origin=f"{kind} feed {url}"))
        if "JSON" in outputs:
            feed = build_json_feed(pages, self.config, feed_title, url)
            self.routes.add(text_route(f"{url}index.json", "JSON", "feed", feed, origin=f"{kind} feed {url}"))

    def _feed_title(self, title: str) -> str:
        if title == self.config.title:
            return title
        return f"{title} on {self.config.title}"


def collect_static(static_root: Path) -> list[Asset]:
    assets = []
    if not static_root.is_dir():
        return assets
    for path in sorted(static_root.rglob("*")):
        if path.is_file() and not path.name.startswith("."):
            assets.append(Asset(url="/" + path.relative_to(static_root).as_posix(), source=path, kind="static"))
    return assets


def collect_resources(
    content_root: Path,
    resources: Iterable[str],
    documents: Sequence[Document],
    published: Iterable[str],
) -> list[Asset]:
    """Publish page resources next to their page.

    Files outside any leaf bundle keep their content path. Resources of a
    bundle whose document is not published are dropped with it.
    """
    bundles = {doc.bundle_dir: doc for doc in documents if doc.bundle_dir}
    published = set(published)
    assets = []
    for rel in resources:
        rel_path = PurePosixPath(rel)
        owner = None
        for parent in [rel_path.parent, *rel_path.parent.parents]:
            if parent.as_posix() in bundles:
                owner = bundles[parent.as_posix()]
                break
        if owner is None:
            assets.append(Asset(url=f"/{rel}", source=content_root / rel, kind="resource", origin=rel))
        elif owner.path in published:
            inner = rel_path.relative_to(owner.bundle_dir).as_posix()
            assets.append(
                Asset(url=f"{owner.url}{inner}", source=content_root / rel, kind="resource", origin=owner.path)
            )
    return assets
