from __future__ import annotations

import datetime as dt
import html as html_lib
import json
import logging
import os
import re
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, Mapping, Optional

import yaml

try:
    import tomllib as toml
except ImportError:
    import tomli as toml

from .errors import ConfigError, LoadError, SchemaError
from .tasks import Deadline, run_tasks
from .utils import as_utc, parse_bool, parse_int

logger = logging.getLogger(__name__)

CONTENT_EXTENSIONS = {".md", ".markdown", ".html", ".htm"}
# Authoring formats that must be pre-rendered (or listed in ignoreFiles).
UNSUPPORTED_EXTENSIONS = {
    ".rmd",
    ".rmarkdown",
    ".rst",
    ".adoc",
    ".asciidoc",
    ".org",
    ".ipynb",
    ".pandoc",
}
BUNDLE_INDEX = {"index"}
# Section list pages are generated, so _index files carry nothing to render.
LIST_INDEX = "_index"
CORE_KEYS = {
    "title",
    "author",
    "date",
    "lastmod",
    "slug",
    "url",
    "categories",
    "tags",
    "draft",
    "summary",
    "description",
    "weight",
}

CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")
LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
FENCE_RE = re.compile(r"^(?P<indent>[ \t]*)(`{3,}|~{3,})")


@dataclass(frozen=True)
class Document:
    path: str
    title: str
    body: str
    slug: str
    url: str
    section: str = ""
    author: str = ""
    date: Optional[dt.datetime] = None
    lastmod: Optional[dt.datetime] = None
    categories: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    summary: str = ""
    weight: int = 0
    draft: bool = False
    params: Mapping[str, object] = field(default_factory=dict)
    bundle_dir: Optional[str] = None
    explicit_url: bool = False

    def with_slug(self, slug: str) -> "Document":
        if self.explicit_url:
            return replace(self, slug=slug)
        return replace(self, slug=slug, url=document_url(self.section, slug))

    def terms(self, kind: str) -> tuple[str, ...]:
        if kind == "categories":
            return self.categories
        if kind == "tags":
            return self.tags
        raise KeyError(kind)


@dataclass
class LoadResult:
    documents: list[Document]
    errors: list[LoadError]
    resources: list[str]


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_list(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.strip()
        if value.startswith("[") and value.endswith("]"):
            value = value[1:-1]
        items = [item.strip().strip("'\"") for item in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value]
    else:
        items = [str(value).strip()]
    seen = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


def parse_front_matter(text: str, path: str = "<string>") -> tuple[dict, str]:
    """Split a document into its front-matter mapping and its body.

    YAML is fenced by ``---``, TOML by ``+++``; a JSON object may also open the
    file. Returns an empty mapping when there is no front-matter at all and
    raises ``LoadError`` when a block is present but cannot be parsed.
    """
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines:
        return {}, ""
    opener = lines[0].strip()
    if opener in {"---", "+++"}:
        end = None
        for i in range(1, len(lines)):
            if lines[i].strip() == opener:
                end = i
                break
        if end is None:
            raise LoadError(path, f"front-matter opened with {opener} is never closed")
        raw = "\n".join(lines[1:end])
        body = "\n".join(lines[end + 1 :])
        try:
            meta = yaml.safe_load(raw) if opener == "---" else toml.loads(raw)
        except (yaml.YAMLError, toml.TOMLDecodeError) as exc:
            raise LoadError(path, f"malformed front-matter: {exc}") from exc
        if meta is None:
            meta = {}
    elif opener.startswith("{"):
        decoder = json.JSONDecoder()
        try:
            meta, end = decoder.raw_decode(clean_text)
        except json.JSONDecodeError as exc:
            raise LoadError(path, f"malformed JSON front-matter: {exc}") from exc
        body = clean_text[end:].lstrip("\n")
    else:
        return {}, clean_text
    if not isinstance(meta, dict):
        raise LoadError(path, "front-matter must be a mapping")
    return {str(key).lower(): value for key, value in meta.items()}, body


def parse_date(value: object, path: str, key: str = "date") -> Optional[dt.datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return as_utc(value)
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time(), tzinfo=dt.timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(dt.datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return dt.datetime.combine(dt.date.fromisoformat(text), dt.time(), tzinfo=dt.timezone.utc)
    except ValueError as exc:
        raise LoadError(path, f"invalid {key} {value!r}") from exc


def document_url(section: str, slug: str) -> str:
    if section:
        return f"/{section}/{slug}/"
    return f"/{slug}/"


def normalize_url(value: str) -> str:
    value = "/" + value.strip().strip("/")
    if value != "/" and not PurePosixPath(value).suffix:
        value += "/"
    return value


def derive_slug(rel: PurePosixPath) -> str:
    if rel.stem in BUNDLE_INDEX and rel.parent.name:
        return slugify(rel.parent.name)
    return slugify(rel.stem)


def normalize_list_spacing(text: str) -> str:
    """Insert the blank line Python-Markdown needs before a list that follows a paragraph."""
    out: list[str] = []
    in_fence = False
    fence_marker = ""
    for line in text.splitlines():
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(2)
            if not in_fence:
                in_fence = True
                fence_marker = marker
            elif marker == fence_marker:
                in_fence = False
                fence_marker = ""
            out.append(line)
            continue
        if in_fence:
            out.append(line)
            continue
        list_match = LIST_MARKER_RE.match(line)
        if list_match and not list_match.group("indent"):
            if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                out.append("")
        out.append(line)
    return "\n".join(out)


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count


def is_ignored(rel: str, patterns: Iterable[re.Pattern]) -> bool:
    return any(pattern.search(rel) for pattern in patterns)


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ConfigError(f"Invalid ignoreFiles pattern {pattern!r}: {exc}") from exc
    return compiled


def discover(root: Path, ignore_patterns: Iterable[str] = ()) -> Iterator[Path]:
    """Yield every non-hidden, non-ignored file under ``root`` in sorted order."""
    patterns = compile_patterns(ignore_patterns)
    if not root.exists():
        return
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        kept = []
        for name in sorted(dirnames):
            rel = (current / name).relative_to(root).as_posix()
            if name.startswith(".") or is_ignored(rel, patterns):
                continue
            kept.append(name)
        dirnames[:] = kept
        for name in sorted(filenames):
            path = current / name
            rel = path.relative_to(root).as_posix()
            if name.startswith(".") or is_ignored(rel, patterns):
                logger.debug("Ignoring %s", rel)
                continue
            yield path


def is_document(path: Path) -> bool:
    suffix = path.suffix.lower()
    return suffix in CONTENT_EXTENSIONS or suffix in UNSUPPORTED_EXTENSIONS


def load_document(path: Path, root: Path) -> Document:
    rel = PurePosixPath(path.relative_to(root).as_posix())
    rel_str = rel.as_posix()
    suffix = path.suffix.lower()
    if suffix not in CONTENT_EXTENSIONS:
        raise LoadError(rel_str, f"unsupported extension {path.suffix}")
    try:
        raw_text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadError(rel_str, f"unreadable file: {exc}") from exc

    meta, body = parse_front_matter(raw_text, rel_str)
    title = str(meta.get("title") or "").strip()
    if not title:
        raise SchemaError(rel_str, "missing required field 'title'")

    # A leaf bundle (post/foo/index.md) is addressed like post/foo.md.
    anchor = rel.parent if rel.stem == "index" and rel.parent.name else rel
    section = anchor.parts[0] if len(anchor.parts) > 1 else ""
    explicit_slug = str(meta.get("slug") or "").strip()
    slug = slugify(explicit_slug) if explicit_slug else derive_slug(rel)
    explicit_url = str(meta.get("url") or "").strip()
    url = normalize_url(explicit_url) if explicit_url else document_url(section, slug)

    bundle_dir = None
    if rel.stem == "index" and rel.parent.name:
        bundle_dir = rel.parent.as_posix()

    params = {key: value for key, value in meta.items() if key not in CORE_KEYS}
    if suffix in {".html", ".htm"}:
        params.setdefault("_format", "html")

    return Document(
        path=rel_str,
        title=title,
        body=body,
        slug=slug,
        url=url,
        section=section,
        author=str(meta.get("author") or "").strip(),
        date=parse_date(meta.get("date"), rel_str),
        lastmod=parse_date(meta.get("lastmod"), rel_str, "lastmod"),
        categories=parse_list(meta.get("categories")),
        tags=parse_list(meta.get("tags")),
        summary=str(meta.get("summary") or meta.get("description") or "").strip(),
        weight=parse_int(meta.get("weight"), 0),
        draft=parse_bool(meta.get("draft")),
        params=params,
        bundle_dir=bundle_dir,
        explicit_url=bool(explicit_url),
    )


def load_documents(
    root: Path,
    ignore_patterns: Iterable[str] = (),
    workers: int = 1,
    cancel: Optional[threading.Event] = None,
    deadline: Optional[Deadline] = None,
) -> LoadResult:
    """Load every document under ``root``, collecting per-file errors instead of stopping."""
    documents: list[Document] = []
    errors: list[LoadError] = []
    resources: list[str] = []
    candidates = []
    for path in discover(root, ignore_patterns):
        if path.stem == LIST_INDEX:
            logger.debug("Skipping list page source %s", path)
            continue
        if is_document(path):
            candidates.append(path)
        else:
            resources.append(path.relative_to(root).as_posix())

    outcomes = run_tasks(
        lambda path: load_document(path, root),
        candidates,
        workers=workers,
        cancel=cancel,
        deadline=deadline,
        stage="loading",
    )
    for outcome in outcomes:
        if outcome.ok:
            documents.append(outcome.value)
        elif isinstance(outcome.error, LoadError):
            logger.warning("Skipping %s", outcome.error)
            errors.append(outcome.error)
        else:
            raise outcome.error
    documents.sort(key=lambda doc: doc.path)
    logger.info("Loaded %d documents (%d errors) from %s", len(documents), len(errors), root)
    return LoadResult(documents=documents, errors=errors, resources=resources)
