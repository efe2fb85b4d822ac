from __future__ import annotations

import datetime as dt
import hashlib
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence

from .content import Document, slugify
from .errors import RouteCollisionError

logger = logging.getLogger(__name__)

TAXONOMIES = ("categories", "tags")
OLDEST = dt.datetime.min.replace(tzinfo=dt.timezone.utc)


@dataclass(frozen=True)
class TaxonomyTerm:
    kind: str
    value: str
    slug: str
    members: tuple[str, ...]

    @property
    def url(self) -> str:
        return f"/{self.kind}/{self.slug}/"

    def __len__(self) -> int:
        return len(self.members)


def newest_first(documents: Iterable[Document]) -> list[Document]:
    """Order by date descending, undated last, then by path so ties are stable."""
    ordered = sorted(documents, key=lambda doc: doc.path)
    return sorted(ordered, key=lambda doc: doc.date or OLDEST, reverse=True)


class TaxonomyIndex:
    """Term membership for one build. Built once, read-only afterwards."""

    def __init__(self, terms: dict[tuple[str, str], TaxonomyTerm]) -> None:
        self._terms = terms

    def __contains__(self, key: tuple[str, str]) -> bool:
        kind, value = key
        return (kind, value.casefold()) in self._terms

    def __len__(self) -> int:
        return len(self._terms)

    def get(self, kind: str, value: str) -> Optional[TaxonomyTerm]:
        return self._terms.get((kind, value.casefold()))

    def terms(self, kind: str) -> list[TaxonomyTerm]:
        """Terms of one kind, most used first, then alphabetically."""
        selected = [term for (term_kind, _), term in self._terms.items() if term_kind == kind]
        return sorted(selected, key=lambda term: (-len(term), term.value.lower(), term.value))

    def __iter__(self) -> Iterator[TaxonomyTerm]:
        for kind in TAXONOMIES:
            yield from self.terms(kind)

    def members(self, kind: str, value: str) -> tuple[str, ...]:
        term = self.get(kind, value)
        return term.members if term else ()

    def terms_for(self, document: Document) -> list[TaxonomyTerm]:
        found = []
        for kind in TAXONOMIES:
            for value in document.terms(kind):
                term = self.get(kind, value)
                if term is not None and term not in found:
                    found.append(term)
        return found


def term_slug(value: str) -> str:
    """Slug for a term value. ``+`` and ``#`` are spelled out so C, C++ and C# differ."""
    return slugify(value.replace("+", " plus ").replace("#", " sharp "))


def term_slugs(spellings: dict[tuple[str, str], str]) -> dict[tuple[str, str], str]:
    """Give every term a slug that is unique within its kind.

    Terms are visited in (kind, casefolded value) order. A term whose slug
    is already taken gets ``-2``, ``-3``, ... appended.
    """
    taken: dict[tuple[str, str], tuple[str, str]] = {}
    slugs = {}
    for key in sorted(spellings):
        kind = key[0]
        base = term_slug(spellings[key])
        slug = base
        counter = 2
        while (kind, slug) in taken:
            slug = f"{base}-{counter}"
            counter += 1
        if slug != base:
            logger.warning(
                "%s %r and %r share the slug %r, using %r for the second",
                kind,
                spellings[taken[(kind, base)]],
                spellings[key],
                base,
                slug,
            )
        taken[(kind, slug)] = key
        slugs[key] = slug
    return slugs


def build_index(documents: Sequence[Document]) -> TaxonomyIndex:
    """Group documents by term value, ignoring case. The first spelling in path order names the term."""
    grouped: dict[tuple[str, str], list[Document]] = {}
    spellings: dict[tuple[str, str], str] = {}
    for doc in sorted(documents, key=lambda item: item.path):
        for kind in TAXONOMIES:
            for value in doc.terms(kind):
                key = (kind, value.casefold())
                spellings.setdefault(key, value)
                members = grouped.setdefault(key, [])
                if not members or members[-1] is not doc:
                    members.append(doc)
    slugs = term_slugs(spellings)
    terms = {
        key: TaxonomyTerm(
            kind=key[0],
            value=spellings[key],
            slug=slugs[key],
            members=tuple(doc.path for doc in newest_first(members)),
        )
        for key, members in grouped.items()
    }
    logger.debug("Indexed %d taxonomy terms", len(terms))
    return TaxonomyIndex(terms)


def suffixed_slug(slug: str, path: str, used: set[str]) -> str:
    digest = hashlib.sha256(path.encode("utf-8")).hexdigest()
    candidate = f"{slug}-{digest[:8]}"
    if candidate not in used:
        return candidate
    counter = 2
    while f"{slug}-{counter}" in used:
        counter += 1
    return f"{slug}-{counter}"


def assign_slugs(
    documents: Sequence[Document], policy: str = "error"
) -> tuple[list[Document], dict[str, Document]]:
    """Make slugs unique across the site.

    With ``policy="error"`` a repeated slug raises ``RouteCollisionError``.
    With ``"suffix"`` the first document in path order keeps its slug and
    every later one becomes ``<slug>-<first 8 hex digits of sha256(path)>``.
    """
    by_slug: dict[str, Document] = {}
    result = []
    for doc in sorted(documents, key=lambda item: item.path):
        if doc.slug in by_slug:
            if policy != "suffix":
                raise RouteCollisionError(f"slug {doc.slug!r}", by_slug[doc.slug].path, doc.path)
            new_slug = suffixed_slug(doc.slug, doc.path, set(by_slug))
            logger.warning("Slug %r of %s already taken, using %r", doc.slug, doc.path, new_slug)
            doc = doc.with_slug(new_slug)
        by_slug[doc.slug] = doc
        result.append(doc)
    return result, by_slug
