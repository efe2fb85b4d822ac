from __future__ import annotations

import logging
import threading
from functools import partial
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlsplit

from .cache import site_fingerprint
from .config import SiteConfig, load_site_config
from .emit import MemoryEmitter
from .errors import ConfigError
from .pipeline import BuildOptions, BuildResult, Builder

logger = logging.getLogger(__name__)


class SiteRequestHandler(BaseHTTPRequestHandler):
    server_version = "folio"

    def __init__(self, *args, emitter: MemoryEmitter, **kwargs) -> None:
        self.emitter = emitter
        super().__init__(*args, **kwargs)

    def do_GET(self) -> None:
        self._respond(head=False)

    def do_HEAD(self) -> None:
        self._respond(head=True)

    def _respond(self, head: bool) -> None:
        path = unquote(urlsplit(self.path).path) or "/"
        route = self.emitter.lookup(path)
        status = HTTPStatus.OK
        if route is None:
            status = HTTPStatus.NOT_FOUND
            route = self.emitter.lookup("/404.html")
        if route is None:
            self.send_error(HTTPStatus.NOT_FOUND)
            return
        try:
            body = route.body()
        except OSError as exc:
            logger.error("Could not read %s: %s", route.url, exc)
            self.send_error(HTTPStatus.INTERNAL_SERVER_ERROR)
            return
        self.send_response(status)
        self.send_header("Content-Type", route.content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        if not head:
            self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class Watcher:
    """Rebuilds into the emitter whenever the site's input files change."""

    def __init__(
        self,
        config: SiteConfig,
        project_root: Path,
        config_path: Optional[Path],
        options: BuildOptions,
        emitter: MemoryEmitter,
        on_build: Optional[Callable[[BuildResult], None]] = None,
    ) -> None:
        self.config = config
        self.project_root = project_root
        self.config_path = config_path
        self.options = options
        self.emitter = emitter
        self.on_build = on_build
        self.stop_event = threading.Event()
        self.fingerprint = ""

    def watched(self) -> list[Path]:
        roots = [
            self.project_root / self.config.content_dir,
            self.project_root / self.config.static_dir,
            self.project_root / self.config.themes_dir / self.config.theme,
        ]
        if self.config_path is not None:
            roots.append(self.config_path)
        return roots

    def changed(self) -> bool:
        current = site_fingerprint(self.watched(), self.project_root)
        if current == self.fingerprint:
            return False
        self.fingerprint = current
        return True

    def rebuild(self) -> BuildResult:
        if self.config_path is not None:
            self.config = load_site_config(self.config_path)
        result = Builder(self.config, self.project_root, self.options, cancel=self.stop_event).run(self.emitter)
        if self.on_build is not None:
            self.on_build(result)
        return result

    def poll(self, interval: float) -> None:
        while not self.stop_event.wait(interval):
            if not self.changed():
                continue
            logger.info("Change detected, rebuilding")
            try:
                self.rebuild()
            except ConfigError as exc:
                logger.error("Keeping previous build: %s", exc)

    def stop(self) -> None:
        self.stop_event.set()


def serve(
    config: SiteConfig,
    project_root: Path,
    host: str = "127.0.0.1",
    port: int = 1313,
    options: Optional[BuildOptions] = None,
    config_path: Optional[Path] = None,
    poll: float = 1.0,
    on_build: Optional[Callable[[BuildResult], None]] = None,
) -> None:
    """Build into memory, serve it, and rebuild on changes until interrupted."""
    emitter = MemoryEmitter()
    watcher = Watcher(config, project_root, config_path, options or BuildOptions(), emitter, on_build)
    watcher.changed()
    watcher.rebuild()

    handler = partial(SiteRequestHandler, emitter=emitter)
    httpd = ThreadingHTTPServer((host, port), handler)
    thread = threading.Thread(target=watcher.poll, args=(poll,), name="folio-watch", daemon=True)
    thread.start()
    logger.info("Serving on http://%s:%d/ (Ctrl+C to stop)", host, httpd.server_address[1])
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info("Stopping server")
    finally:
        watcher.stop()
        httpd.server_close()
        thread.join(timeout=poll + 1)
