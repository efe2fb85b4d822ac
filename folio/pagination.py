from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Pager:
    number: int
    total: int
    items: tuple
    base_url: str

    def url_for(self, number: int) -> str:
        if number == 1:
            return self.base_url
        return f"{self.base_url}page/{number}/"

    @property
    def url(self) -> str:
        return self.url_for(self.number)

    @property
    def prev_url(self) -> Optional[str]:
        return self.url_for(self.number - 1) if self.number > 1 else None

    @property
    def next_url(self) -> Optional[str]:
        return self.url_for(self.number + 1) if self.number < self.total else None


def paginate(items: Sequence[T], size: int, base_url: str) -> list[Pager]:
    """Split ``items`` into fixed-size pages; the last one may be short, an empty list gives one page."""
    size = max(1, size)
    total = max(1, math.ceil(len(items) / size))
    return [
        Pager(
            number=number,
            total=total,
            items=tuple(items[(number - 1) * size : number * size]),
            base_url=base_url,
        )
        for number in range(1, total + 1)
    ]
