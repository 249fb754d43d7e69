import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from rollout.models import State, TERMINAL_STATES

logger = logging.getLogger(__name__)


class JobStateMachine:
    """Single-shot gate over a job's lifecycle state.

    A job starts in ``STARTED`` and may leave it exactly once. Every producer
    of a terminal decision (destination results, the deadline timer, the
    cancellation handler) goes through :meth:`attempt`; the first accepted
    transition wins and every later attempt is a no-op returning ``False``.
    """

    VALID_TRANSITIONS = {
        State.UNSET: {State.STARTED},
        State.STARTED: set(TERMINAL_STATES),
        State.COMPLETED: set(),
        State.CANCELLED: set(),
        State.FAILED: set(),
        State.TIMED_OUT: set(),
    }

    def __init__(self, job_id: str, lock: Optional[threading.RLock] = None,
                 initial: State = State.STARTED):
        self.job_id = job_id
        self.lock = lock or threading.RLock()
        self._state = initial
        self.history: List[Dict[str, Any]] = []
        self.finished_at: Optional[datetime] = None

    @staticmethod
    def can_transition(current: State, new_state: State) -> bool:
        return new_state in JobStateMachine.VALID_TRANSITIONS.get(current, set())

    @property
    def state(self) -> State:
        with self.lock:
            return self._state

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def attempt(self, new_state: State, reason: Optional[str] = None,
                on_accept: Optional[Callable[[], None]] = None) -> bool:
        """Try to move to ``new_state``; return whether the transition was accepted.

        ``on_accept`` runs while the gate is still held, so anything it
        finalizes becomes visible together with the new state.
        """
        with self.lock:
            if not self.can_transition(self._state, new_state):
                logger.debug("Job %s: ignored transition %s -> %s",
                             self.job_id, self._state.value, new_state.value)
                return False

            now = datetime.now()
            self.history.append({
                "from": self._state.value,
                "to": new_state.value,
                "timestamp": now.isoformat(),
                "reason": reason or "",
            })
            previous = self._state
            self._state = new_state
            if new_state in TERMINAL_STATES:
                self.finished_at = now
            if on_accept is not None:
                on_accept()

        logger.info("Job %s: %s -> %s %s", self.job_id, previous.value, new_state.value, reason or "")
        return True
