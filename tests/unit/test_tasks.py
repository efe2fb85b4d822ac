"""Unit tests for the bounded worker pool."""

import threading
import time

import pytest

from folio.errors import BuildTimeout, Cancelled, LoadError
from folio.tasks import Deadline, run_tasks


@pytest.mark.unit
def test_results_keep_input_order():
    def slow_square(n):
        time.sleep(0.01 * (5 - n))
        return n * n

    outcomes = run_tasks(slow_square, range(5), workers=4)
    assert [outcome.value for outcome in outcomes] == [0, 1, 4, 9, 16]
    assert all(outcome.ok for outcome in outcomes)


@pytest.mark.unit
def test_folio_errors_are_recorded():
    def check(n):
        if n == 2:
            raise LoadError(f"doc{n}.md", "broken")
        return n

    outcomes = run_tasks(check, range(4), workers=2)
    assert [outcome.ok for outcome in outcomes] == [True, True, False, True]
    assert outcomes[2].error.path == "doc2.md"


@pytest.mark.unit
def test_other_errors_propagate():
    def explode(n):
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        run_tasks(explode, [1], workers=1)


@pytest.mark.unit
def test_cancel_stops_dispatch_and_lets_running_tasks_finish():
    cancel = threading.Event()
    started = []
    finished = []

    def work(n):
        started.append(n)
        if n == 0:
            cancel.set()
        time.sleep(0.02)
        finished.append(n)
        return n

    with pytest.raises(Cancelled):
        run_tasks(work, range(10), workers=2, cancel=cancel)
    assert len(started) < 10
    assert sorted(finished) == sorted(started)


@pytest.mark.unit
def test_deadline_raises_timeout():
    def sleepy(n):
        time.sleep(0.3)
        return n

    with pytest.raises(BuildTimeout) as excinfo:
        run_tasks(sleepy, range(4), workers=1, deadline=Deadline(0.05), stage="rendering")
    assert isinstance(excinfo.value, TimeoutError)
    assert "rendering" in str(excinfo.value)


@pytest.mark.unit
def test_zero_deadline_means_no_limit():
    deadline = Deadline(0)
    assert deadline.remaining() is None
    deadline.check("loading")
