"""
Tests for the single-shot job state gate.
"""

import threading

import pytest

from rollout.models import State, TERMINAL_STATES
from rollout.services.state_machine import JobStateMachine


class TestJobStateMachine:

    def test_starts_in_started(self):
        machine = JobStateMachine("job-1")
        assert machine.state == State.STARTED
        assert not machine.is_terminal
        assert machine.finished_at is None

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.number))
    def test_started_to_each_terminal_state(self, terminal):
        machine = JobStateMachine("job-1")
        assert machine.attempt(terminal, reason="done")
        assert machine.state == terminal
        assert machine.is_terminal
        assert machine.finished_at is not None

    def test_first_transition_wins(self):
        machine = JobStateMachine("job-1")
        assert machine.attempt(State.FAILED, reason="d1 failed")
        assert not machine.attempt(State.TIMED_OUT, reason="deadline")
        assert not machine.attempt(State.CANCELLED)
        assert machine.state == State.FAILED
        assert len(machine.history) == 1
        assert machine.history[0]["from"] == "started"
        assert machine.history[0]["to"] == "failed"
        assert machine.history[0]["reason"] == "d1 failed"

    def test_no_transition_back_to_started(self):
        machine = JobStateMachine("job-1")
        assert not machine.attempt(State.STARTED)
        machine.attempt(State.COMPLETED)
        assert not machine.attempt(State.STARTED)
        assert machine.state == State.COMPLETED

    def test_unset_only_moves_to_started(self):
        machine = JobStateMachine("job-1", initial=State.UNSET)
        assert not machine.attempt(State.COMPLETED)
        assert machine.attempt(State.STARTED)
        assert machine.attempt(State.COMPLETED)

    def test_on_accept_runs_only_for_the_winner(self):
        machine = JobStateMachine("job-1")
        calls = []
        machine.attempt(State.CANCELLED, on_accept=lambda: calls.append("cancelled"))
        machine.attempt(State.COMPLETED, on_accept=lambda: calls.append("completed"))
        assert calls == ["cancelled"]

    def test_on_accept_sees_new_state(self):
        machine = JobStateMachine("job-1")
        seen = []
        machine.attempt(State.TIMED_OUT, on_accept=lambda: seen.append(machine.state))
        assert seen == [State.TIMED_OUT]

    def test_concurrent_attempts_accept_exactly_one(self):
        machine = JobStateMachine("job-1")
        barrier = threading.Barrier(8)
        results = []
        lock = threading.Lock()
        states = [State.COMPLETED, State.FAILED, State.CANCELLED, State.TIMED_OUT] * 2

        def contender(state):
            barrier.wait()
            accepted = machine.attempt(state)
            with lock:
                results.append((state, accepted))

        threads = [threading.Thread(target=contender, args=(s,)) for s in states]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [s for s, accepted in results if accepted]
        assert len(winners) == 1
        assert machine.state == winners[0]
        assert len(machine.history) == 1

    def test_state_numbers_follow_schema_order(self):
        assert [s.number for s in State] == [0, 1, 2, 3, 4, 5]
        assert State.UNSET.number == 0
        assert State.TIMED_OUT.number == 5
        assert not State.STARTED.is_terminal
        assert State.CANCELLED.is_terminal
