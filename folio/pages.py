from __future__ import annotations

import html
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

from .config import SiteConfig
from .content import Document, count_words
from .errors import RenderError
from .markup import MORE_DIVIDER, MarkupOptions, MarkupRenderer
from .render import fix_relative_img_src, plain_text
from .tasks import Deadline, run_tasks
from .taxonomy import TaxonomyIndex
from .themes import PageView, TermLink, Theme
from .utils import iso_date, rfc822_date

logger = logging.getLogger(__name__)

LIST_KINDS = ("home", "section", "taxonomy", "term")


@dataclass(frozen=True)
class RenderedPage:
    view: PageView
    html: str
    rss_item: Optional[str] = None
    json_item: Optional[dict] = None

    @property
    def document(self) -> Document:
        return self.view.document


def feed_enabled(config: SiteConfig, output_format: str) -> bool:
    return any(output_format in config.outputs_for(kind) for kind in LIST_KINDS)


def reading_time(words: int) -> int:
    return (words + 212) // 213


def make_summary(doc: Document, body_html: str, length: int) -> str:
    if doc.summary:
        return doc.summary
    if MORE_DIVIDER in body_html:
        return plain_text(body_html.split(MORE_DIVIDER, 1)[0])
    words = plain_text(body_html).split()
    summary = " ".join(words[:length])
    if len(words) > length:
        summary += "..."
    return summary


def term_links(doc: Document, index: TaxonomyIndex, config: SiteConfig) -> tuple[TermLink, ...]:
    return tuple(
        TermLink(kind=term.kind, name=term.value, url=config.rel_url(term.url), count=len(term))
        for term in index.terms_for(doc)
    )


def rss_item(doc: Document, summary: str, config: SiteConfig) -> str:
    link = config.abs_url(doc.url)
    lines = [
        "<item>",
        f"<title>{html.escape(doc.title)}</title>",
        f"<link>{html.escape(link)}</link>",
    ]
    if doc.date is not None:
        lines.append(f"<pubDate>{rfc822_date(doc.date)}</pubDate>")
    lines.append(f'<guid isPermaLink="true">{html.escape(link)}</guid>')
    for value in doc.categories + doc.tags:
        lines.append(f"<category>{html.escape(value)}</category>")
    lines.append(f"<description>{html.escape(summary)}</description>")
    lines.append("</item>")
    return "\n".join(lines)


def json_item(doc: Document, body_html: str, summary: str, config: SiteConfig) -> dict:
    link = config.abs_url(doc.url)
    item = {
        "id": link,
        "url": link,
        "title": doc.title,
        "content_html": body_html,
        "summary": summary,
    }
    if doc.date is not None:
        item["date_published"] = iso_date(doc.date)
    if doc.lastmod is not None:
        item["date_modified"] = iso_date(doc.lastmod)
    author = doc.author or config.author
    if author:
        item["authors"] = [{"name": author}]
    tags = list(doc.categories) + [tag for tag in doc.tags if tag not in doc.categories]
    if tags:
        item["tags"] = tags
    return item


def render_document(
    doc: Document, index: TaxonomyIndex, config: SiteConfig, theme: Theme
) -> RenderedPage:
    """Render one document to its page HTML and feed items.

    Depends only on its arguments, so identical input gives identical bytes.
    """
    if doc.params.get("_format") == "html":
        body_html, toc_html = doc.body, ""
    else:
        renderer = MarkupRenderer(MarkupOptions.from_config(config, doc.params))
        markup = renderer.convert(doc.body, doc.path)
        body_html, toc_html = markup.html, markup.toc
    body_html = fix_relative_img_src(body_html, config.rel_url(doc.url))
    summary = make_summary(doc, body_html, config.summary_length)
    words = count_words(plain_text(body_html))
    view = PageView(
        document=doc,
        body=body_html,
        toc=toc_html,
        summary=summary,
        words=words,
        reading_time=reading_time(words),
        terms=term_links(doc, index, config),
    )
    page_html = theme.render_single(view, config) if "HTML" in config.outputs_for("page") else ""
    return RenderedPage(
        view=view,
        html=page_html,
        rss_item=rss_item(doc, summary, config) if feed_enabled(config, "RSS") else None,
        json_item=json_item(doc, body_html, summary, config) if feed_enabled(config, "JSON") else None,
    )


def render_documents(
    documents: Sequence[Document],
    index: TaxonomyIndex,
    config: SiteConfig,
    theme: Theme,
    workers: int = 1,
    cancel: Optional[threading.Event] = None,
    deadline: Optional[Deadline] = None,
) -> tuple[list[RenderedPage], list[RenderError]]:
    pages: list[RenderedPage] = []
    errors: list[RenderError] = []
    outcomes = run_tasks(
        lambda doc: render_document(doc, index, config, theme),
        documents,
        workers=workers,
        cancel=cancel,
        deadline=deadline,
        stage="rendering",
    )
    for outcome in outcomes:
        if outcome.ok:
            pages.append(outcome.value)
        elif isinstance(outcome.error, RenderError):
            logger.warning("Skipping %s", outcome.error)
            errors.append(outcome.error)
        else:
            raise outcome.error
    return pages, errors
