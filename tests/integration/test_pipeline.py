"""End-to-end builds through the pipeline."""

import threading
import time

import pytest

from folio.config import SiteConfig
from folio.emit import DirectoryEmitter, MemoryEmitter
from folio.errors import BuildTimeout, Cancelled, RouteCollisionError, SchemaError
from folio.pipeline import BuildOptions, BuildState, Builder
from folio.themes import LayoutTheme


def build(site, config=None, emitter=None, **options):
    config = config or SiteConfig.from_mapping({"title": "Test"})
    builder = Builder(config, site.root, BuildOptions(**options))
    return builder, builder.run(emitter if emitter is not None else MemoryEmitter())


@pytest.mark.integration
def test_published_post_and_draft(site):
    site.post("hello.md", "Hello", date="2024-01-01")
    site.post("later.md", "Later", draft=True)
    config = SiteConfig.from_mapping(
        {"outputs": {"home": ["HTML", "RSS"]}, "paginate": 10, "enableSitemap": False, "enable404": False}
    )
    builder, result = build(site, config)

    assert result.state is BuildState.DONE
    assert builder.state is BuildState.DONE
    assert result.ok
    assert (result.loaded, result.published, result.skipped, result.failed) == (2, 1, 1, 0)
    assert len(result.routes.by_kind("page")) == 1
    assert len(result.routes.by_kind("home")) == 1
    assert len(result.routes.by_kind("feed")) == 1
    assert "/later/" not in result.routes
    home = result.routes.get("/").content.decode("utf-8")
    feed = result.routes.get("/index.xml").content.decode("utf-8")
    assert "/hello/" in home and "Later" not in home
    assert "<title>Hello</title>" in feed and "Later" not in feed


@pytest.mark.integration
def test_include_drafts(site):
    site.post("hello.md", "Hello")
    site.post("later.md", "Later", draft=True)
    _, result = build(site, include_drafts=True)
    assert "/later/" in result.routes
    assert result.skipped == 0


@pytest.mark.integration
def test_missing_title_non_strict_builds_the_rest(site):
    site.post("posts/good.md", "Good")
    site.write("posts/bad.md", "---\ndate: 2024-01-01\n---\nNo title")
    _, result = build(site)

    assert result.state is BuildState.DONE
    assert "/posts/good/" in result.routes
    assert result.failed == 1
    assert isinstance(result.errors[0], SchemaError)
    assert "posts/bad.md" in result.summary()


@pytest.mark.integration
def test_missing_title_strict_fails(site):
    site.post("posts/good.md", "Good")
    site.write("posts/bad.md", "---\ndate: 2024-01-01\n---\nNo title")
    _, result = build(site, strict=True)

    assert result.state is BuildState.FAILED
    assert not result.ok
    assert isinstance(result.fatal, SchemaError)
    assert result.routes is None


@pytest.mark.integration
def test_render_error_strict_and_non_strict(site):
    site.post("posts/good.md", "Good")
    site.post("posts/broken.md", "Broken", body="```\nnever closed")

    _, lenient = build(site)
    assert lenient.state is BuildState.DONE
    assert "/posts/broken/" not in lenient.routes

    _, strict = build(site, strict=True)
    assert strict.state is BuildState.FAILED


@pytest.mark.integration
def test_nothing_to_publish_fails(site):
    site.post("wip.md", "WIP", draft=True)
    _, result = build(site)
    assert result.state is BuildState.FAILED
    assert "No publishable documents" in str(result.fatal)


@pytest.mark.integration
def test_slug_collision(site):
    site.post("posts/hello.md", "One")
    site.post("posts/hello.markdown", "Two")
    _, result = build(site)
    assert result.state is BuildState.FAILED
    assert isinstance(result.fatal, RouteCollisionError)

    config = SiteConfig.from_mapping({"slugCollision": "suffix"})
    _, result = build(site, config)
    assert result.state is BuildState.DONE
    assert "/posts/hello/" in result.routes
    assert len(result.routes.by_kind("page")) == 2


@pytest.mark.integration
def test_taxonomy_pages_cover_every_tag(site):
    site.post("posts/a.md", "A", tags=["python", "web"], date="2024-01-01")
    site.post("posts/b.md", "B", tags=["python"], date="2024-01-02")
    _, result = build(site)

    python = result.routes.get("/tags/python/").content.decode("utf-8")
    web = result.routes.get("/tags/web/").content.decode("utf-8")
    assert "/posts/a/" in python and "/posts/b/" in python
    assert "/posts/a/" in web and "/posts/b/" not in web


@pytest.mark.integration
def test_static_files_and_bundle_resources(site):
    (site.root / "static" / "css").mkdir(parents=True)
    (site.root / "static" / "css" / "style.css").write_text("body{}", encoding="utf-8")
    site.post("posts/trip/index.md", "Trip", body="![map](map.png)")
    site.write("posts/trip/map.png", "png")
    _, result = build(site)

    assert result.routes.get("/css/style.css").kind == "static"
    assert result.routes.get("/posts/trip/map.png").kind == "resource"
    page = result.routes.get("/posts/trip/").content.decode("utf-8")
    assert 'src="/posts/trip/map.png"' in page


@pytest.mark.integration
def test_writes_site_to_disk(site):
    site.post("posts/a.md", "A")
    destination = site.root / "public"
    _, result = build(site, emitter=DirectoryEmitter(destination, clean=True, project_root=site.root))

    assert result.ok
    assert (destination / "index.html").exists()
    assert (destination / "posts" / "a" / "index.html").exists()
    assert (destination / "index.xml").exists()
    assert (destination / "404.html").exists()
    assert sorted(result.emit_report.written) == [route.url for route in result.routes]


@pytest.mark.integration
def test_builds_are_reproducible(site):
    site.post("posts/a.md", "A", tags=["x"], date="2024-01-01")
    site.post("posts/b.md", "B", tags=["x", "y"], date="2024-02-01", body="# Code\n\n```python\nx = 1\n```")
    _, first = build(site, workers=4)
    _, second = build(site, workers=1)
    assert [(r.url, r.body()) for r in first.routes] == [(r.url, r.body()) for r in second.routes]


class SlowTheme(LayoutTheme):
    def __init__(self, delay, on_render=None):
        super().__init__("slow", {})
        self.delay = delay
        self.on_render = on_render

    def render_single(self, page, config):
        if self.on_render is not None:
            self.on_render()
        time.sleep(self.delay)
        return super().render_single(page, config)


@pytest.mark.integration
def test_cancellation(site):
    for number in range(6):
        site.post(f"posts/p{number}.md", f"P{number}")
    cancel = threading.Event()
    builder = Builder(
        SiteConfig(),
        site.root,
        BuildOptions(workers=1),
        cancel=cancel,
        theme=SlowTheme(0.01, on_render=cancel.set),
    )
    emitter = MemoryEmitter()
    result = builder.run(emitter)

    assert result.state is BuildState.CANCELLED
    assert isinstance(result.fatal, Cancelled)
    assert len(emitter) == 0


@pytest.mark.integration
def test_timeout(site):
    for number in range(4):
        site.post(f"posts/p{number}.md", f"P{number}")
    builder = Builder(SiteConfig(), site.root, BuildOptions(workers=1, timeout=0.05), theme=SlowTheme(0.2))
    result = builder.run(MemoryEmitter())

    assert result.state is BuildState.FAILED
    assert isinstance(result.fatal, BuildTimeout)


@pytest.mark.integration
def test_emit_failure_marks_result(site):
    site.post("posts/a.md", "A")
    destination = site.root / "public"
    destination.mkdir()
    (destination / "posts").write_text("not a directory")

    _, result = build(site, emitter=DirectoryEmitter(destination, project_root=site.root))
    assert result.state is BuildState.DONE
    assert not result.ok
    assert result.emit_report.failed
    assert "could not be written" in result.summary()
    assert (destination / "index.html").exists()

    _, strict = build(site, emitter=DirectoryEmitter(destination, project_root=site.root), strict=True)
    assert strict.state is BuildState.FAILED
