"""
Tests for the per-job progress aggregator.
"""

import threading

import pytest

from rollout.errors import ProgressInvariantError
from rollout.services.progress import ProgressAggregator


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestProgressAggregator:

    def test_initial_snapshot(self):
        progress = ProgressAggregator(3)
        snap = progress.snapshot()
        assert (snap.started, snap.completed) == (0, 0)
        assert snap.duration >= 0
        assert not progress.all_completed()

    def test_counts(self):
        progress = ProgressAggregator(2)
        assert progress.mark_started()
        assert progress.mark_started()
        assert progress.mark_completed()
        snap = progress.snapshot()
        assert (snap.started, snap.completed) == (2, 1)
        assert progress.mark_completed()
        assert progress.all_completed()

    def test_started_cannot_exceed_total(self):
        progress = ProgressAggregator(1)
        progress.mark_started()
        with pytest.raises(ProgressInvariantError):
            progress.mark_started()

    def test_completed_cannot_exceed_started(self):
        progress = ProgressAggregator(2)
        with pytest.raises(ProgressInvariantError):
            progress.mark_completed()
        progress.mark_started()
        progress.mark_completed()
        with pytest.raises(ProgressInvariantError):
            progress.mark_completed()

    def test_invariant_error_is_a_programming_error(self):
        assert issubclass(ProgressInvariantError, RuntimeError)

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            ProgressAggregator(-1)

    def test_duration_runs_until_frozen(self):
        clock = FakeClock()
        progress = ProgressAggregator(1, clock=clock)
        clock.now += 4.7
        assert progress.snapshot().duration == 4
        clock.now += 1.0
        assert progress.freeze() == 5
        clock.now += 60.0
        assert progress.snapshot().duration == 5
        assert progress.freeze() == 5

    def test_marks_ignored_after_freeze(self):
        progress = ProgressAggregator(2)
        progress.mark_started()
        progress.freeze()
        assert progress.frozen
        assert not progress.mark_started()
        assert not progress.mark_completed()
        snap = progress.snapshot()
        assert (snap.started, snap.completed) == (1, 0)

    def test_concurrent_marks(self):
        total = 200
        progress = ProgressAggregator(total)

        def worker():
            progress.mark_started()
            progress.mark_completed()

        threads = [threading.Thread(target=worker) for _ in range(total)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snap = progress.snapshot()
        assert snap.started == total
        assert snap.completed == total
