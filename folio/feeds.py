from __future__ import annotations

import html
import json
from typing import Optional, Sequence

from .config import SiteConfig
from .pages import RenderedPage
from .utils import rfc822_date


def limit_items(pages: Sequence[RenderedPage], config: SiteConfig) -> Sequence[RenderedPage]:
    if config.rss_limit is not None and config.rss_limit >= 0:
        return pages[: config.rss_limit]
    return pages


def build_rss(pages: Sequence[RenderedPage], config: SiteConfig, title: str, list_url: str) -> str:
    """RSS 2.0 channel for a list page; ``pages`` are expected newest first."""
    site_link = config.abs_url(list_url)
    feed_link = config.abs_url(f"{list_url}index.xml")
    items = [page.rss_item for page in limit_items(pages, config) if page.rss_item]
    dated = [page.document.date for page in pages if page.document.date is not None]
    lines = [
        '<?xml version="1.0" encoding="utf-8" standalone="yes"?>',
        '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">',
        "<channel>",
        f"<title>{html.escape(title)}</title>",
        f"<link>{html.escape(site_link)}</link>",
        f"<description>Recent content in {html.escape(title)}</description>",
        f"<language>{html.escape(config.language_code)}</language>",
    ]
    if config.copyright:
        lines.append(f"<copyright>{html.escape(config.copyright)}</copyright>")
    if dated:
        lines.append(f"<lastBuildDate>{rfc822_date(max(dated))}</lastBuildDate>")
    lines.append(f'<atom:link href="{html.escape(feed_link)}" rel="self" type="application/rss+xml" />')
    lines.extend(items)
    lines.extend(["</channel>", "</rss>"])
    return "\n".join(lines) + "\n"


def build_json_feed(
    pages: Sequence[RenderedPage], config: SiteConfig, title: str, list_url: str
) -> str:
    """JSON Feed 1.1 document for a list page."""
    feed = {
        "version": "https://jsonfeed.org/version/1.1",
        "title": title,
        "home_page_url": config.abs_url(list_url),
        "feed_url": config.abs_url(f"{list_url}index.json"),
        "language": config.language_code,
    }
    description = config.param("description")
    if description:
        feed["description"] = str(description)
    if config.author:
        feed["authors"] = [{"name": config.author}]
    feed["items"] = [page.json_item for page in limit_items(pages, config) if page.json_item]
    return json.dumps(feed, indent=2, ensure_ascii=False, sort_keys=False) + "\n"


def build_sitemap(entries: Sequence[tuple[str, Optional[object]]], config: SiteConfig) -> str:
    items = []
    for url, lastmod in entries:
        parts = ["<url>", f"<loc>{html.escape(config.abs_url(url))}</loc>"]
        if lastmod is not None:
            parts.append(f"<lastmod>{lastmod.date().isoformat()}</lastmod>")
        parts.append("</url>")
        items.append("\n".join(parts))
    return "\n".join(
        [
            '<?xml version="1.0" encoding="utf-8" standalone="yes"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
        ]
    ) + "\n"
