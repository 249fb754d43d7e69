import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from rollout.errors import DestinationFailure
from rollout.models import Destination, State
from rollout.services.executor import DestinationExecutor, Outcome, OutcomeKind
from rollout.services.job_record import JobRecord

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str, Dict[str, Any]], Awaitable[None]]


def merge_parameters(job_extra: Dict[str, Any], destination_extra: Dict[str, Any]) -> Dict[str, Any]:
    """Job-wide parameters overlaid by destination parameters."""
    merged = dict(job_extra)
    merged.update(destination_extra)
    return merged


class RolloutCoordinator:
    """Drives one job from STARTED to a terminal state.

    One task is spawned per destination, plus a deadline timer and a
    cancellation watcher. After every wake-up the coordinator re-evaluates
    the decision rule (cancelled, timed out, failed, completed, in that
    order) and tries the job's terminal gate. Once the gate is closed the
    destinations are told to stop and given ``grace_period`` seconds
    before their tasks are cancelled.
    """

    def __init__(self, job: JobRecord, executor: DestinationExecutor,
                 abort_on_failure: bool = False, grace_period: float = 5.0,
                 destination_concurrency: int = 0, notifier: Optional[Notifier] = None):
        self.job = job
        self.executor = executor
        self.abort_on_failure = abort_on_failure
        self.grace_period = grace_period
        self.notifier = notifier
        self.failures: List[Tuple[str, str]] = []
        # signalled to executors once a terminal decision is reached
        self.stop = asyncio.Event()
        self._slots = asyncio.Semaphore(destination_concurrency) if destination_concurrency > 0 else None
        self._deadline_reached = False

    async def run(self) -> State:
        job = self.job
        dispatch_tasks = [
            asyncio.create_task(self._dispatch(d), name=f"rollout-{job.id}-{d.id}")
            for d in job.destinations
        ]
        cancel_watch = asyncio.create_task(job.cancel_requested.wait())
        timer = asyncio.create_task(self._deadline_timer())
        pending = set(dispatch_tasks) | {cancel_watch, timer}

        try:
            while True:
                self._decide()
                if job.is_terminal:
                    break
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                finished = [t for t in done if t in dispatch_tasks]
                for task in finished:
                    if not task.cancelled() and task.exception() is not None:
                        raise task.exception()
                if finished:
                    await self._notify("progress", job.progress.snapshot().model_dump())
        except asyncio.CancelledError:
            job.finish(State.CANCELLED,
                       f"rollout cancelled after {job.progress.completed} of "
                       f"{job.progress.total} destination(s) completed (coordinator stopped)")
            raise
        except Exception as e:
            job.finish(State.FAILED, f"internal error: {type(e).__name__}: {e}")
            logger.critical("Job %s: coordinator crashed", job.id, exc_info=True)
            raise
        finally:
            self.stop.set()
            cancel_watch.cancel()
            timer.cancel()
            await self._drain(dispatch_tasks)

        snapshot = job.snapshot()
        await self._notify(f"job_{snapshot.state}", {
            "state": snapshot.state,
            "message": snapshot.message,
            "progress": snapshot.progress.model_dump(),
        })
        return job.state

    def _decide(self):
        job = self.job
        progress = job.progress
        total = progress.total

        if job.cancel_requested.is_set():
            job.finish(State.CANCELLED,
                       f"rollout cancelled after {progress.completed} of {total} destination(s) completed")
        elif self._deadline_reached or time.monotonic() >= job.deadline:
            job.finish(State.TIMED_OUT,
                       f"deadline of {job.timeout_seconds:g} s exceeded after "
                       f"{progress.completed} of {total} destination(s) completed")
        elif self.failures and (self.abort_on_failure or progress.all_completed()):
            details = "; ".join(f"{dest_id}: {reason}" for dest_id, reason in self.failures)
            job.finish(State.FAILED,
                       f"{len(self.failures)} of {total} destination(s) failed: {details}")
        elif progress.all_completed():
            job.finish(State.COMPLETED,
                       f"rolled out {job.options.image} to {total} destination(s)")

    async def _deadline_timer(self):
        remaining = self.job.deadline - time.monotonic()
        if remaining > 0:
            await asyncio.sleep(remaining)
        self._deadline_reached = True

    async def _dispatch(self, destination: Destination):
        if self._slots is None:
            await self._run_destination(destination)
            return
        async with self._slots:
            await self._run_destination(destination)

    async def _run_destination(self, destination: Destination):
        job = self.job
        if self.stop.is_set() or not job.progress.mark_started():
            return

        parameters = merge_parameters(job.options.extra, destination.extra)
        try:
            outcome = await self.executor.execute(job.options.image, destination.id, parameters, self.stop)
        except asyncio.CancelledError:
            raise
        except DestinationFailure as e:
            outcome = Outcome.failure(e.reason)
        except Exception as e:
            logger.exception("Job %s: executor error on destination %s", job.id, destination.id)
            outcome = Outcome.failure(f"{type(e).__name__}: {e}")

        if outcome is None or not isinstance(outcome, Outcome):
            outcome = Outcome.failure(f"executor returned {outcome!r}")
        self._record(destination, outcome)

    def _record(self, destination: Destination, outcome: Outcome):
        job = self.job
        # results arriving after the terminal decision leave the job untouched
        if job.is_terminal or not job.progress.mark_completed():
            logger.debug("Job %s: late result from %s ignored (%s)", job.id, destination.id, outcome.kind.value)
            return
        if outcome.kind != OutcomeKind.SUCCESS:
            self.failures.append((destination.id, outcome.reason))
            logger.warning("Job %s: destination %s failed: %s", job.id, destination.id, outcome.reason)
        else:
            logger.info("Job %s: destination %s updated", job.id, destination.id)

        if self.notifier is not None:
            asyncio.create_task(self._notify("destination_done", {
                "id": destination.id,
                "outcome": outcome.kind.value,
                "reason": outcome.reason,
            }))

    async def _drain(self, tasks: List[asyncio.Task]):
        outstanding = [t for t in tasks if not t.done()]
        if not outstanding:
            return
        _, still_running = await asyncio.wait(outstanding, timeout=self.grace_period)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.info("Job %s: cancelled %d straggling destination task(s)", self.job.id, len(still_running))

    async def _notify(self, message_type: str, data: Dict[str, Any]):
        if self.notifier is None:
            return
        try:
            await self.notifier(self.job.id, message_type, data)
        except Exception as e:
            logger.warning("Job %s: failed to publish %s update: %s", self.job.id, message_type, e)
