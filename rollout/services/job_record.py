import asyncio
import threading
import time
from datetime import datetime
from typing import Optional

from rollout.models import Job, Options, State
from rollout.services.progress import ProgressAggregator
from rollout.services.state_machine import JobStateMachine


class JobRecord:
    """Mutable, registry-owned record of one rollout job.

    Only the job's own coordinator mutates it. Everybody else reads it
    through :meth:`snapshot`, which copies state, progress and message under
    the same lock the state machine uses for its terminal gate.
    """

    def __init__(self, job_id: str, options: Options, timeout_seconds: float):
        self.id = job_id
        # a private copy so callers cannot mutate the request after submission
        self.options = options.model_copy(deep=True)
        self.destinations = [d.model_copy(deep=True) for d in self.options.destinations]
        self.timeout_seconds = timeout_seconds
        self.created_at = datetime.now()
        self.deadline = time.monotonic() + timeout_seconds

        self._lock = threading.RLock()
        self.machine = JobStateMachine(job_id, lock=self._lock)
        self.progress = ProgressAggregator(len(self.destinations), lock=self._lock)
        self.message = ""
        self.cancel_requested = asyncio.Event()

    @property
    def state(self) -> State:
        return self.machine.state

    @property
    def is_terminal(self) -> bool:
        return self.machine.is_terminal

    @property
    def finished_at(self) -> Optional[datetime]:
        return self.machine.finished_at

    def finish(self, state: State, message: str) -> bool:
        """Attempt the terminal transition; freeze progress and set the message if accepted."""
        def _finalize():
            self.progress.freeze()
            self.message = message

        return self.machine.attempt(state, reason=message, on_accept=_finalize)

    def snapshot(self) -> Job:
        with self._lock:
            return Job(
                id=self.id,
                options=self.options.model_copy(deep=True),
                state=self.machine.state,
                destinations=[d.model_copy(deep=True) for d in self.destinations],
                progress=self.progress.snapshot(),
                message=self.message,
            )
