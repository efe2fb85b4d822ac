from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, TypeVar

from .errors import BuildTimeout, Cancelled, FolioError

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class Outcome(Generic[T, R]):
    item: T
    value: Optional[R] = None
    error: Optional[FolioError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Deadline:
    """Wall-clock budget shared by every stage of one build."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self._expires = time.monotonic() + seconds if seconds > 0 else None

    def remaining(self) -> Optional[float]:
        if self._expires is None:
            return None
        return max(0.0, self._expires - time.monotonic())

    def check(self, stage: str) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise BuildTimeout(f"Build exceeded {self.seconds:g}s during {stage}")


def run_tasks(
    func: Callable[[T], R],
    items: Iterable[T],
    workers: int = 1,
    cancel: Optional[threading.Event] = None,
    deadline: Optional[Deadline] = None,
    stage: str = "build",
) -> list[Outcome[T, R]]:
    """Run ``func`` over ``items`` and return one outcome per item, in input order.

    ``FolioError`` raised by a task is recorded on its outcome; anything else
    propagates. At most ``workers`` tasks are in flight, so setting ``cancel``
    stops new dispatch while running tasks are allowed to finish, after which
    ``Cancelled`` is raised. ``BuildTimeout`` is raised once ``deadline``
    passes.
    """
    pending = list(enumerate(items))
    outcomes: dict[int, Outcome[T, R]] = {}
    deadline = deadline or Deadline(0)

    def call(item: T) -> Outcome[T, R]:
        try:
            return Outcome(item, value=func(item))
        except FolioError as exc:
            return Outcome(item, error=exc)

    executor = ThreadPoolExecutor(max_workers=max(1, workers))
    running: dict[Future, int] = {}
    cancelled = False
    try:
        pending.reverse()
        while pending or running:
            if cancel is not None and cancel.is_set():
                cancelled = True
            while pending and not cancelled and len(running) < max(1, workers):
                index, item = pending.pop()
                running[executor.submit(call, item)] = index
            if not running:
                break
            done, _ = wait(running, timeout=deadline.remaining(), return_when=FIRST_COMPLETED)
            if not done:
                deadline.check(stage)
            for future in done:
                outcomes[running.pop(future)] = future.result()
    finally:
        executor.shutdown(wait=not running, cancel_futures=True)
    if cancelled:
        raise Cancelled(f"Build cancelled during {stage}")
    return [outcomes[index] for index in sorted(outcomes)]
