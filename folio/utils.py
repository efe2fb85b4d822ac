from __future__ import annotations

import datetime as dt
import logging
import os
import shutil
from pathlib import Path

from .errors import FolioError

logger = logging.getLogger(__name__)


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def parse_int(value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def default_workers(requested: int = 0) -> int:
    if requested <= 0:
        requested = os.cpu_count() or 1
    return max(1, min(requested, 32))


def join_url(base: str, path: str) -> str:
    base = base.rstrip("/")
    path = path.lstrip("/")
    if not path:
        return f"{base}/"
    return f"{base}/{path}"


def is_absolute_url(url: str) -> bool:
    return url.startswith(("http://", "https://", "mailto:", "//"))


def as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def rfc822_date(value: dt.datetime) -> str:
    return as_utc(value).strftime("%a, %d %b %Y %H:%M:%S %z")


def iso_date(value: dt.datetime) -> str:
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def clean_output_dir(output_dir: Path, project_root: Path) -> bool:
    """Remove the output directory. Directories outside the project are left alone."""
    if not output_dir.exists():
        return False
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise FolioError("Refusing to clean project root.")
    if not output_resolved.is_relative_to(root_resolved):
        logger.warning("Not cleaning %s: it is outside the project root, stale files may remain.", output_dir)
        return False
    shutil.rmtree(output_dir)
    return True
