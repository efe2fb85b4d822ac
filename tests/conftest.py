"""Shared fixtures for building small sites on disk."""

from pathlib import Path

import pytest

from folio.config import SiteConfig


def make_document(title: str, body: str = "Body text.", **front_matter) -> str:
    lines = ["---", f"title: {title}"]
    for key, value in front_matter.items():
        if isinstance(value, (list, tuple)):
            value = "[" + ", ".join(str(item) for item in value) + "]"
        elif isinstance(value, bool):
            value = "true" if value else "false"
        lines.append(f"{key}: {value}")
    lines.extend(["---", "", body, ""])
    return "\n".join(lines)


class SiteDir:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.content = root / "content"
        self.content.mkdir()

    def write(self, rel: str, text: str) -> Path:
        path = self.content / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    def post(self, rel: str, title: str, body: str = "Body text.", **front_matter) -> Path:
        return self.write(rel, make_document(title, body, **front_matter))


@pytest.fixture
def site(tmp_path):
    return SiteDir(tmp_path)


@pytest.fixture
def config():
    return SiteConfig.from_mapping({"title": "Test Site", "baseURL": "https://example.org/"})
