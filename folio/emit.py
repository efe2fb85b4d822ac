from __future__ import annotations

import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from .assemble import Route
from .errors import EmitError
from .tasks import Deadline, run_tasks
from .utils import clean_output_dir, default_workers

logger = logging.getLogger(__name__)

# mkstemp creates 0600 files; published files get the usual umask-derived mode.
_UMASK = os.umask(0)
os.umask(_UMASK)
FILE_MODE = 0o666 & ~_UMASK


@dataclass
class EmitReport:
    written: list[str] = field(default_factory=list)
    failed: list[EmitError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def url_to_path(url: str) -> PurePosixPath:
    """Map a route URL to its file: ``/a/b/`` becomes ``a/b/index.html``."""
    path = PurePosixPath(url.lstrip("/"))
    if url.endswith("/") or not url.strip("/"):
        path = path / "index.html"
    if any(part in {"..", "."} for part in path.parts):
        raise ValueError(f"Route URL escapes the destination: {url}")
    return path


def write_atomic(path: Path, data: bytes) -> None:
    """Write via a temp file in the same directory and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.chmod(tmp_name, FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class DirectoryEmitter:
    def __init__(
        self,
        destination: Path,
        workers: int = 0,
        clean: bool = False,
        project_root: Optional[Path] = None,
    ) -> None:
        self.destination = destination
        self.workers = default_workers(workers)
        self.clean = clean
        self.project_root = project_root or Path.cwd()

    def emit(
        self,
        routes: Iterable[Route],
        cancel: Optional[threading.Event] = None,
        deadline: Optional[Deadline] = None,
    ) -> EmitReport:
        if self.clean:
            clean_output_dir(self.destination, self.project_root)
        self.destination.mkdir(parents=True, exist_ok=True)

        def write(route: Route) -> str:
            try:
                target = self.destination / url_to_path(route.url)
                write_atomic(target, route.body())
            except (OSError, ValueError) as exc:
                raise EmitError(route.url, exc) from exc
            return route.url

        report = EmitReport()
        ordered = sorted(routes, key=lambda route: route.url)
        for outcome in run_tasks(write, ordered, self.workers, cancel, deadline, stage="emitting"):
            if outcome.ok:
                report.written.append(outcome.value)
            else:
                logger.error("Failed to write %s", outcome.error)
                report.failed.append(outcome.error)
        logger.info("Wrote %d routes to %s (%d failed)", len(report.written), self.destination, len(report.failed))
        return report


class MemoryEmitter:
    """Keeps the latest route table in memory for the development server."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._routes: dict[str, Route] = {}

    def emit(
        self,
        routes: Iterable[Route],
        cancel: Optional[threading.Event] = None,
        deadline: Optional[Deadline] = None,
    ) -> EmitReport:
        table = {route.url: route for route in routes}
        with self._lock:
            self._routes = table
        return EmitReport(written=sorted(table))

    def lookup(self, url: str) -> Optional[Route]:
        with self._lock:
            routes = self._routes
        route = routes.get(url)
        if route is None and not url.endswith("/") and not PurePosixPath(url).suffix:
            route = routes.get(url + "/")
        if route is None and url.endswith("/index.html"):
            route = routes.get(url[: -len("index.html")])
        return route

    def __len__(self) -> int:
        with self._lock:
            return len(self._routes)

