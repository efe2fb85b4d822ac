from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional
from urllib.parse import urlsplit

import yaml
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

try:
    import tomllib as toml
except ImportError:
    import tomli as toml

from .errors import ConfigError
from .utils import is_absolute_url, join_url, parse_bool, parse_int

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("HTML", "RSS", "JSON")
PAGE_KINDS = ("home", "section", "taxonomy", "term", "page")
DEFAULT_OUTPUTS = {
    "home": ("HTML", "RSS"),
    "section": ("HTML", "RSS"),
    "taxonomy": ("HTML",),
    "term": ("HTML", "RSS"),
    "page": ("HTML",),
}
SLUG_POLICIES = ("error", "suffix")
DEFAULT_PAGINATE = 10
DEFAULT_TIMEOUT = 60.0


def load_config(path: Path) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = toml.loads(text)
        except toml.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in config file {path}: {exc}") from exc
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
        if data is None:
            data = {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping: {path}")
    return data


@dataclass(frozen=True)
class MenuEntry:
    name: str
    url: str
    weight: int = 0
    identifier: str = ""

    @property
    def is_external(self) -> bool:
        return is_absolute_url(self.url)


@dataclass(frozen=True)
class SocialIcon:
    name: str
    url: str


@dataclass(frozen=True)
class HomeInfo:
    title: str
    content: str


@dataclass(frozen=True)
class SiteConfig:
    """Site-wide settings, read once per build and never mutated."""

    base_url: str = ""
    theme: str = "paper"
    language_code: str = "en-us"
    title: str = "My Site"
    author: str = ""
    copyright: str = ""
    content_dir: str = "content"
    static_dir: str = "static"
    themes_dir: str = "themes"
    publish_dir: str = "public"
    ignore_files: tuple[str, ...] = ()
    menu: tuple[MenuEntry, ...] = ()
    outputs: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_OUTPUTS))
    )
    paginate: int = DEFAULT_PAGINATE
    slug_collision: str = "error"
    build_drafts: bool = False
    summary_length: int = 70
    rss_limit: int = -1
    timeout: float = DEFAULT_TIMEOUT
    enable_sitemap: bool = True
    enable_404: bool = True
    params: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))
    home_info: Optional[HomeInfo] = None
    social_icons: tuple[SocialIcon, ...] = ()
    unsafe_html: bool = False
    highlight_style: str = "monokai"
    highlight_no_classes: bool = False
    toc_start: int = 2
    toc_end: int = 4

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "SiteConfig":
        params = _mapping(data.get("params"), "params")
        markup = _mapping(data.get("markup"), "markup")
        goldmark = _mapping(markup.get("goldmark"), "markup.goldmark")
        renderer = _mapping(goldmark.get("renderer"), "markup.goldmark.renderer")
        highlight = _mapping(markup.get("highlight"), "markup.highlight")
        toc = _mapping(markup.get("tableOfContents"), "markup.tableOfContents")

        slug_collision = str(data.get("slugCollision") or "error").strip().lower()
        if slug_collision not in SLUG_POLICIES:
            raise ConfigError(
                f"slugCollision must be one of {', '.join(SLUG_POLICIES)}, got {slug_collision!r}"
            )

        base_url = str(data.get("baseURL") or data.get("baseurl") or "").strip()
        if base_url and not is_absolute_url(base_url):
            raise ConfigError(f"baseURL must be an absolute URL, got {base_url!r}")

        timeout = data.get("timeout", DEFAULT_TIMEOUT)
        try:
            timeout = float(str(timeout).strip().rstrip("s"))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"timeout must be a number of seconds, got {timeout!r}") from exc

        return cls(
            base_url=base_url.rstrip("/"),
            theme=str(data.get("theme") or "paper"),
            language_code=str(data.get("languageCode") or "en-us"),
            title=str(data.get("title") or "My Site"),
            author=str(data.get("author") or params.get("author") or ""),
            copyright=str(data.get("copyright") or ""),
            content_dir=str(data.get("contentDir") or "content"),
            static_dir=str(data.get("staticDir") or "static"),
            themes_dir=str(data.get("themesDir") or "themes"),
            publish_dir=str(data.get("publishDir") or "public"),
            ignore_files=tuple(str(item) for item in _list(data.get("ignoreFiles"), "ignoreFiles")),
            menu=parse_menu(_mapping(data.get("menu"), "menu").get("main")),
            outputs=parse_outputs(data.get("outputs")),
            paginate=max(1, parse_int(data.get("paginate"), DEFAULT_PAGINATE)),
            slug_collision=slug_collision,
            build_drafts=parse_bool(data.get("buildDrafts")),
            summary_length=max(1, parse_int(data.get("summaryLength"), 70)),
            rss_limit=parse_int(data.get("rssLimit"), -1),
            timeout=max(0.0, timeout),
            enable_sitemap=parse_bool(data.get("enableSitemap", True)),
            enable_404=parse_bool(data.get("enable404", True)),
            params=MappingProxyType(dict(params)),
            home_info=parse_home_info(params.get("homeInfoParams")),
            social_icons=parse_social_icons(params.get("socialIcons")),
            unsafe_html=parse_bool(renderer.get("unsafe")),
            highlight_style=parse_highlight_style(highlight.get("style")),
            highlight_no_classes=parse_bool(highlight.get("noClasses")),
            toc_start=parse_int(toc.get("startLevel"), 2),
            toc_end=parse_int(toc.get("endLevel"), 4),
        )

    def outputs_for(self, kind: str) -> tuple[str, ...]:
        return self.outputs.get(kind, DEFAULT_OUTPUTS.get(kind, ("HTML",)))

    def param(self, name: str, default: object = None) -> object:
        """Look up a site param; keys are case-insensitive, as in the config file format."""
        return _lookup(self.params, name, default)

    def feature(self, name: str, page_params: Optional[Mapping[str, object]] = None) -> bool:
        """Resolve a boolean theme toggle, letting front-matter override the site value."""
        missing = object()
        if page_params is not None:
            value = _lookup(page_params, name, missing)
            if value is not missing:
                return parse_bool(value)
        return parse_bool(self.param(name))

    @property
    def base_path(self) -> str:
        path = urlsplit(self.base_url).path.strip("/")
        return f"/{path}/" if path else "/"

    def rel_url(self, url: str) -> str:
        if is_absolute_url(url):
            return url
        return self.base_path.rstrip("/") + "/" + url.lstrip("/")

    def abs_url(self, url: str) -> str:
        if is_absolute_url(url):
            return url
        if not self.base_url:
            return self.rel_url(url)
        return join_url(self.base_url, url)

    @property
    def main_sections(self) -> tuple[str, ...]:
        value = self.param("mainSections")
        if not value:
            return ()
        if isinstance(value, str):
            return (value,)
        return tuple(str(item) for item in value)


def load_site_config(path: Path) -> SiteConfig:
    config = SiteConfig.from_mapping(load_config(path))
    logger.debug("Loaded config %s (theme=%s, baseURL=%s)", path, config.theme, config.base_url or "-")
    return config


def parse_menu(value: object) -> tuple[MenuEntry, ...]:
    entries = []
    for position, item in enumerate(_list(value, "menu.main")):
        if not isinstance(item, dict):
            raise ConfigError(f"menu.main[{position}] must be a mapping")
        name = str(item.get("name") or "").strip()
        url = str(item.get("url") or item.get("pageRef") or "").strip()
        if not name or not url:
            raise ConfigError(f"menu.main[{position}] needs both name and url")
        entries.append(
            MenuEntry(
                name=name,
                url=url,
                weight=parse_int(item.get("weight"), 0),
                identifier=str(item.get("identifier") or name.lower()),
            )
        )
    return resolve_menu(entries)


def resolve_menu(entries: list[MenuEntry]) -> tuple[MenuEntry, ...]:
    # sorted() is stable, so equal weights keep their declaration order.
    return tuple(sorted(entries, key=lambda entry: entry.weight))


def parse_highlight_style(value: object) -> str:
    style = str(value or "monokai").strip()
    try:
        get_style_by_name(style)
    except ClassNotFound as exc:
        raise ConfigError(f"markup.highlight.style: unknown Pygments style {style!r}") from exc
    return style


def parse_outputs(value: object) -> Mapping[str, tuple[str, ...]]:
    outputs = dict(DEFAULT_OUTPUTS)
    for kind, formats in _mapping(value, "outputs").items():
        kind = str(kind).lower()
        if kind not in PAGE_KINDS:
            raise ConfigError(f"Unknown page kind in outputs: {kind}")
        normalized = []
        for item in _list(formats, f"outputs.{kind}"):
            name = str(item).strip().upper()
            if name not in OUTPUT_FORMATS:
                raise ConfigError(f"Unknown output format {item!r} for {kind}")
            if name not in normalized:
                normalized.append(name)
        outputs[kind] = tuple(normalized)
    return MappingProxyType(outputs)


def parse_home_info(value: object) -> Optional[HomeInfo]:
    if not value:
        return None
    data = _mapping(value, "params.homeInfoParams")
    title = str(data.get("Title") or data.get("title") or "").strip()
    content = str(data.get("Content") or data.get("content") or "").strip()
    if not title and not content:
        return None
    return HomeInfo(title=title, content=content)


def parse_social_icons(value: object) -> tuple[SocialIcon, ...]:
    icons = []
    for item in _list(value, "params.socialIcons"):
        if not isinstance(item, dict) or not item.get("name") or not item.get("url"):
            raise ConfigError("params.socialIcons entries need a name and a url")
        icons.append(SocialIcon(name=str(item["name"]), url=str(item["url"])))
    return tuple(icons)


def _mapping(value: object, key: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping")
    return value


def _list(value: object, key: str) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        return [value]
    raise ConfigError(f"{key} must be a list")


def _lookup(mapping: Mapping[str, object], name: str, default: object = None) -> object:
    if name in mapping:
        return mapping[name]
    key = name.lower()
    for candidate, value in mapping.items():
        if str(candidate).lower() == key:
            return value
    return default
