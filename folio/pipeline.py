from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from .assemble import RouteTable, SiteAssembler, collect_resources, collect_static
from .config import SiteConfig
from .content import load_documents
from .emit import EmitReport
from .errors import BuildTimeout, Cancelled, DocumentError, FolioError, RouteCollisionError
from .pages import render_documents
from .tasks import Deadline
from .taxonomy import assign_slugs, build_index
from .themes import Theme, load_theme
from .utils import default_workers

logger = logging.getLogger(__name__)


class BuildState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    INDEXING = "indexing"
    RENDERING = "rendering"
    ASSEMBLING = "assembling"
    EMITTING = "emitting"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {BuildState.DONE, BuildState.FAILED, BuildState.CANCELLED}


class Emitter(Protocol):
    def emit(self, routes, cancel=None, deadline=None) -> EmitReport: ...


@dataclass(frozen=True)
class BuildOptions:
    strict: bool = False
    include_drafts: bool = False
    workers: int = 0
    timeout: Optional[float] = None


@dataclass
class BuildResult:
    state: BuildState = BuildState.IDLE
    errors: list[FolioError] = field(default_factory=list)
    routes: Optional[RouteTable] = None
    emit_report: Optional[EmitReport] = None
    loaded: int = 0
    published: int = 0
    skipped: int = 0
    failed: int = 0
    fatal: Optional[FolioError] = None

    @property
    def ok(self) -> bool:
        if self.state is not BuildState.DONE:
            return False
        return self.emit_report is None or self.emit_report.ok

    def summary(self) -> str:
        lines = [
            f"Build {self.state.value}: {self.loaded} documents loaded, "
            f"{self.published} published, {self.skipped} skipped, {self.failed} failed."
        ]
        if self.routes is not None:
            lines.append(f"{len(self.routes)} routes assembled.")
        if self.emit_report is not None and self.emit_report.failed:
            lines.append(f"{len(self.emit_report.failed)} routes could not be written:")
            lines.extend(f"  - {error}" for error in self.emit_report.failed)
        if self.errors:
            lines.append("Errors:")
            lines.extend(f"  - {type(error).__name__}: {error}" for error in self.errors)
        if self.fatal is not None and self.fatal not in self.errors:
            lines.append(f"Fatal: {type(self.fatal).__name__}: {self.fatal}")
        return "\n".join(lines)


class Builder:
    """Runs one build: load, index, render, assemble, emit.

    Per-document work (loading, rendering) and per-route writes run on a
    thread pool; indexing and assembling wait for the whole previous stage.
    """

    def __init__(
        self,
        config: SiteConfig,
        project_root: Path,
        options: Optional[BuildOptions] = None,
        cancel: Optional[threading.Event] = None,
        theme: Optional[Theme] = None,
    ) -> None:
        self.config = config
        self.project_root = project_root
        self.options = options or BuildOptions()
        self.cancel = cancel or threading.Event()
        self.theme = theme
        self.state = BuildState.IDLE
        self.workers = default_workers(self.options.workers)

    def _enter(self, state: BuildState, result: BuildResult) -> None:
        logger.debug("Build state %s -> %s", self.state.value, state.value)
        self.state = state
        result.state = state
        if state not in TERMINAL_STATES and self.cancel.is_set():
            raise Cancelled(f"Build cancelled before {state.value}")

    def _fail(self, result: BuildResult, error: FolioError) -> BuildResult:
        result.fatal = error
        if error not in result.errors:
            result.errors.append(error)
        self._enter(BuildState.FAILED, result)
        logger.error("Build failed: %s", error)
        return result

    def run(self, emitter: Optional[Emitter] = None) -> BuildResult:
        result = BuildResult()
        timeout = self.options.timeout if self.options.timeout is not None else self.config.timeout
        deadline = Deadline(timeout)
        include_drafts = self.options.include_drafts or self.config.build_drafts
        try:
            self._enter(BuildState.LOADING, result)
            content_root = self.project_root / self.config.content_dir
            loaded = load_documents(
                content_root,
                self.config.ignore_files,
                workers=self.workers,
                cancel=self.cancel,
                deadline=deadline,
            )
            result.errors.extend(loaded.errors)
            result.loaded = len(loaded.documents)
            result.failed = len(loaded.errors)
            published = [doc for doc in loaded.documents if include_drafts or not doc.draft]
            result.skipped = len(loaded.documents) - len(published)
            if not published:
                return self._fail(result, FolioError(f"No publishable documents found in {content_root}"))
            if self.options.strict and loaded.errors:
                return self._fail(result, loaded.errors[0])
            deadline.check("loading")

            self._enter(BuildState.INDEXING, result)
            published, _ = assign_slugs(published, self.config.slug_collision)
            index = build_index(published)
            theme = self.theme or load_theme(self.config, self.project_root)

            self._enter(BuildState.RENDERING, result)
            pages, render_errors = render_documents(
                published,
                index,
                self.config,
                theme,
                workers=self.workers,
                cancel=self.cancel,
                deadline=deadline,
            )
            result.errors.extend(render_errors)
            result.failed += len(render_errors)
            if self.options.strict and render_errors:
                return self._fail(result, render_errors[0])
            result.published = len(pages)
            deadline.check("rendering")

            self._enter(BuildState.ASSEMBLING, result)
            assets = collect_static(self.project_root / self.config.static_dir)
            theme_static = self.project_root / self.config.themes_dir / self.config.theme / "static"
            static_urls = {asset.url for asset in assets}
            assets.extend(asset for asset in collect_static(theme_static) if asset.url not in static_urls)
            documents = {doc.path: doc for doc in loaded.documents}
            documents.update((doc.path, doc) for doc in published)
            assets.extend(
                collect_resources(
                    content_root,
                    loaded.resources,
                    list(documents.values()),
                    (page.document.path for page in pages),
                )
            )
            routes = SiteAssembler(self.config, theme, index).assemble(pages, assets)
            result.routes = routes
            deadline.check("assembling")

            if emitter is not None:
                self._enter(BuildState.EMITTING, result)
                report = emitter.emit(list(routes), cancel=self.cancel, deadline=deadline)
                result.emit_report = report
                result.errors.extend(report.failed)
                if self.options.strict and report.failed:
                    return self._fail(result, report.failed[0])
        except Cancelled as exc:
            result.fatal = exc
            self._enter(BuildState.CANCELLED, result)
            logger.warning("%s", exc)
            return result
        except (RouteCollisionError, BuildTimeout) as exc:
            return self._fail(result, exc)
        except FolioError as exc:
            if isinstance(exc, DocumentError):
                result.failed += 1
            return self._fail(result, exc)
        self._enter(BuildState.DONE, result)
        return result
