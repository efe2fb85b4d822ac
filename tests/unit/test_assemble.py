"""Unit tests for route assembly and feeds."""

import datetime as dt
import json
import xml.etree.ElementTree as ET

import pytest

from folio.assemble import Asset, Route, RouteTable, SiteAssembler, collect_resources, list_order
from folio.config import SiteConfig
from folio.content import Document
from folio.errors import RouteCollisionError
from folio.pages import render_document
from folio.taxonomy import build_index
from folio.themes import LayoutTheme


def document(name, day, section="posts", **fields):
    values = dict(
        path=f"{section}/{name}.md" if section else f"{name}.md",
        title=name.title(),
        body=f"Text of {name}.",
        slug=name,
        url=f"/{section}/{name}/" if section else f"/{name}/",
        section=section,
        date=dt.datetime(2024, 1, day, tzinfo=dt.timezone.utc) if day else None,
    )
    values.update(fields)
    return Document(**values)


def assemble(config, documents, assets=()):
    index = build_index(documents)
    theme = LayoutTheme("paper", {})
    pages = [render_document(doc, index, config, theme) for doc in documents]
    return SiteAssembler(config, theme, index).assemble(pages, assets)


def minimal(**data):
    data.setdefault("enableSitemap", False)
    data.setdefault("enable404", False)
    return SiteConfig.from_mapping(data)


@pytest.mark.unit
def test_one_published_post_gives_page_home_and_feed():
    config = minimal(outputs={"home": ["HTML", "RSS"], "section": []}, paginate=10)
    routes = assemble(config, [document("hello", 1, section="")])

    assert len(routes.by_kind("page")) == 1
    assert len(routes.by_kind("home")) == 1
    assert len(routes.by_kind("feed")) == 1
    assert routes.get("/index.xml").output_format == "RSS"
    assert [route.url for route in routes] == ["/", "/hello/", "/index.xml"]


@pytest.mark.unit
def test_sections_taxonomies_and_extras():
    docs = [
        document("a", 1, tags=("python",)),
        document("b", 2, tags=("python", "web")),
        document("about", None, section=""),
    ]
    routes = assemble(SiteConfig.from_mapping({"title": "Site"}), docs)

    urls = {route.url for route in routes}
    assert {"/", "/index.xml", "/posts/", "/posts/index.xml", "/tags/", "/tags/python/", "/tags/web/"} <= urls
    assert "/tags/python/index.xml" in urls
    assert "/tags/index.xml" not in urls
    assert {"/404.html", "/sitemap.xml"} <= urls
    assert routes.get("/tags/").kind == "taxonomy"
    assert routes.get("/tags/python/").kind == "term"
    assert routes.get("/posts/").kind == "section"


@pytest.mark.unit
def test_list_pages_are_paginated():
    docs = [document(f"p{day}", day) for day in range(1, 6)]
    routes = assemble(minimal(paginate=2), docs)
    assert [route.url for route in routes.by_kind("section")] == ["/posts/", "/posts/page/2/", "/posts/page/3/"]
    first = routes.get("/posts/").content.decode("utf-8")
    assert first.index("P5") < first.index("P4")
    assert 'href="/posts/page/2/"' in first


@pytest.mark.unit
def test_main_sections_filter_home():
    docs = [document("a", 1), document("n", 2, section="notes")]
    routes = assemble(minimal(params={"mainSections": ["notes"]}), docs)
    home = routes.get("/").content.decode("utf-8")
    assert "/notes/n/" in home
    assert "/posts/a/" not in home


@pytest.mark.unit
def test_feeds_are_valid():
    config = minimal(baseURL="https://example.org", outputs={"home": ["HTML", "RSS", "JSON"]})
    routes = assemble(config, [document("a", 1), document("b", 2)])

    channel = ET.fromstring(routes.get("/index.xml").content).find("channel")
    assert [item.findtext("title") for item in channel.findall("item")] == ["B", "A"]
    assert channel.findtext("link") == "https://example.org/"
    assert channel.findtext("lastBuildDate") == "Tue, 02 Jan 2024 00:00:00 +0000"

    feed = json.loads(routes.get("/index.json").content)
    assert feed["version"] == "https://jsonfeed.org/version/1.1"
    assert [item["url"] for item in feed["items"]] == ["https://example.org/posts/b/", "https://example.org/posts/a/"]


@pytest.mark.unit
def test_rss_limit():
    config = minimal(rssLimit=1)
    routes = assemble(config, [document("a", 1), document("b", 2)])
    channel = ET.fromstring(routes.get("/index.xml").content).find("channel")
    assert len(channel.findall("item")) == 1


@pytest.mark.unit
def test_list_order_prefers_weight_then_date():
    config = minimal()
    docs = [document("old", 1), document("new", 5), document("pinned", 2, weight=1), document("undated", None)]
    index = build_index(docs)
    pages = [render_document(doc, index, config, LayoutTheme("paper", {})) for doc in docs]
    assert [page.document.slug for page in list_order(pages)] == ["pinned", "new", "old", "undated"]


@pytest.mark.unit
def test_route_collision():
    table = RouteTable()
    table.add(Route(url="/a/", output_format="HTML", kind="page", origin="a.md"))
    with pytest.raises(RouteCollisionError, match="/a/"):
        table.add(Route(url="/a/", output_format="HTML", kind="page", origin="b.md"))


@pytest.mark.unit
def test_explicit_url_colliding_with_list_page():
    docs = [document("a", 1), document("hijack", 2, section="", url="/posts/", explicit_url=True)]
    with pytest.raises(RouteCollisionError):
        assemble(minimal(), docs)


@pytest.mark.unit
def test_static_assets_become_routes(tmp_path):
    source = tmp_path / "style.css"
    source.write_text("body{}", encoding="utf-8")
    routes = assemble(minimal(), [document("a", 1)], [Asset(url="/css/style.css", source=source)])
    route = routes.get("/css/style.css")
    assert route.output_format == "STATIC"
    assert route.content_type == "text/css"
    assert route.body() == b"body{}"


@pytest.mark.unit
def test_bundle_resources_follow_their_page(tmp_path):
    trip = document("trip", 1, bundle_dir="posts/trip", path="posts/trip/index.md")
    draft = document("wip", 2, bundle_dir="posts/wip", path="posts/wip/index.md", draft=True)
    assets = collect_resources(
        tmp_path,
        ["posts/trip/photo.jpg", "posts/wip/secret.png", "files/doc.pdf"],
        [trip, draft],
        ["posts/trip/index.md"],
    )
    assert [asset.url for asset in assets] == ["/posts/trip/photo.jpg", "/files/doc.pdf"]
