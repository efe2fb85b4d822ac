from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Optional


def list_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    if root.is_file():
        return [root]
    return [path for path in root.rglob("*") if path.is_file()]


def hash_paths(paths: Iterable[Path], base: Optional[Path] = None) -> str:
    """Digest of file names, sizes and mtimes.

    Cheap enough to poll every second; a file rewritten with identical
    size within the same mtime tick goes unnoticed.
    """
    digest = hashlib.sha256()
    for path in sorted(paths, key=lambda p: p.as_posix()):
        rel = path
        if base is not None:
            try:
                rel = path.relative_to(base)
            except ValueError:
                rel = path
        try:
            stat = path.stat()
        except FileNotFoundError:
            continue
        digest.update(rel.as_posix().encode("utf-8"))
        digest.update(b"\0")
        digest.update(f"{stat.st_size}:{stat.st_mtime_ns}".encode("ascii"))
        digest.update(b"\0")
    return digest.hexdigest()


def site_fingerprint(roots: Iterable[Path], base: Optional[Path] = None) -> str:
    files: list[Path] = []
    for root in roots:
        files.extend(list_files(root))
    return hash_paths(files, base)
