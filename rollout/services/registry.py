import asyncio
import logging
import math
import numbers
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from rollout.config import settings
from rollout.errors import InvalidRequest, NotFound, ResourceExhausted
from rollout.models import Job, Options, State
from rollout.services.coordinator import Notifier, RolloutCoordinator
from rollout.services.executor import DestinationExecutor, SimulatedExecutor
from rollout.services.job_record import JobRecord

logger = logging.getLogger(__name__)


def validate_options(options: Options, default_timeout: float) -> float:
    """Check a rollout request and return the timeout (seconds) it should run with."""
    if not options.image or not options.image.strip():
        raise InvalidRequest("image must not be empty")
    if not options.destinations:
        raise InvalidRequest("at least one destination is required")

    seen = set()
    for destination in options.destinations:
        if not destination.id:
            raise InvalidRequest("destination id must not be empty")
        if destination.id in seen:
            raise InvalidRequest(f"duplicate destination id: {destination.id}")
        seen.add(destination.id)

    # a missing, zero or non-numeric timeout means "use the default"
    timeout = options.extra.get("timeout")
    if isinstance(timeout, bool) or not isinstance(timeout, numbers.Real) or timeout == 0:
        return default_timeout
    if not math.isfinite(timeout):
        raise InvalidRequest(f"timeout must be a finite number of seconds, got {timeout!r}")
    if timeout < 0:
        raise InvalidRequest(f"timeout must not be negative, got {timeout!r}")
    return float(timeout)


class JobRegistry:
    """Process-wide table of rollout jobs.

    Writes to the table (create, prune) are serialized by a lock; reads take
    a snapshot of the table without locking it and copy each job under that
    job's own lock. A job's state is only ever changed by its coordinator.
    """

    def __init__(self, executor: DestinationExecutor,
                 default_timeout_seconds: float = 3600.0,
                 max_active_jobs: int = 0,
                 abort_on_failure: bool = False,
                 grace_period_seconds: float = 5.0,
                 destination_concurrency: int = 0,
                 retention_seconds: Optional[float] = None,
                 notifier: Optional[Notifier] = None,
                 id_factory: Callable[[], str] = lambda: str(uuid.uuid4())):
        self.executor = executor
        self.default_timeout_seconds = default_timeout_seconds
        self.max_active_jobs = max_active_jobs
        self.abort_on_failure = abort_on_failure
        self.grace_period_seconds = grace_period_seconds
        self.destination_concurrency = destination_concurrency
        self.retention_seconds = retention_seconds
        self.notifier = notifier
        self._id_factory = id_factory

        self._jobs: Dict[str, JobRecord] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._write_lock = threading.Lock()

    @classmethod
    def from_settings(cls, executor: DestinationExecutor, notifier: Optional[Notifier] = None) -> "JobRegistry":
        return cls(
            executor,
            default_timeout_seconds=settings.default_timeout_seconds,
            max_active_jobs=settings.max_active_jobs,
            abort_on_failure=settings.abort_on_failure,
            grace_period_seconds=settings.grace_period_seconds,
            destination_concurrency=settings.destination_concurrency,
            retention_seconds=settings.job_retention_seconds,
            notifier=notifier,
        )

    async def create(self, options: Options) -> str:
        timeout = validate_options(options, self.default_timeout_seconds)

        if self.retention_seconds:
            self.prune(self.retention_seconds)

        with self._write_lock:
            if self.max_active_jobs and self.active_count() >= self.max_active_jobs:
                logger.warning("Rejecting rollout of %s: %d jobs already active",
                               options.image, self.max_active_jobs)
                raise ResourceExhausted("no workers available")

            job_id = self._id_factory()
            while job_id in self._jobs:
                job_id = self._id_factory()
            job = JobRecord(job_id, options, timeout)
            self._jobs[job_id] = job

        coordinator = RolloutCoordinator(
            job,
            self.executor,
            abort_on_failure=self.abort_on_failure,
            grace_period=self.grace_period_seconds,
            destination_concurrency=self.destination_concurrency,
            notifier=self.notifier,
        )
        task = asyncio.create_task(coordinator.run(), name=f"rollout-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, job_id=job_id: self._on_coordinator_done(job_id, t))

        logger.info("Created job %s: %s to %d destination(s), timeout %gs",
                    job_id, options.image, len(job.destinations), timeout)
        if self.notifier is not None:
            try:
                await self.notifier(job_id, "job_created", {"id": job_id, "state": State.STARTED.value})
            except Exception as e:
                logger.warning("Job %s: failed to publish creation: %s", job_id, e)
        return job_id

    def _on_coordinator_done(self, job_id: str, task: asyncio.Task):
        if task.cancelled():
            logger.warning("Job %s: coordinator task cancelled", job_id)
            return
        if task.exception() is not None:
            logger.error("Job %s: coordinator finished with %r", job_id, task.exception())

    def _find(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning("Job %s not found", job_id)
            raise NotFound(job_id)
        return job

    def get(self, job_id: str) -> Job:
        return self._find(job_id).snapshot()

    def list(self) -> List[Job]:
        return [job.snapshot() for job in list(self._jobs.values())]

    def active_count(self) -> int:
        return sum(1 for job in list(self._jobs.values()) if not job.is_terminal)

    def __len__(self) -> int:
        return len(self._jobs)

    async def cancel(self, job_id: str) -> Job:
        job = self._find(job_id)
        if job.is_terminal:
            logger.info("Cancel of job %s ignored: already %s", job_id, job.state.value)
        else:
            logger.info("Cancelling job %s", job_id)
            job.cancel_requested.set()
        return job.snapshot()

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Wait for the job's coordinator to finish and return the final snapshot."""
        job = self._find(job_id)
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return job.snapshot()

    def prune(self, max_age_seconds: float) -> int:
        """Evict terminal jobs that finished more than ``max_age_seconds`` ago."""
        cutoff = datetime.now() - timedelta(seconds=max_age_seconds)
        with self._write_lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.is_terminal and job.finished_at is not None and job.finished_at <= cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
                self._tasks.pop(job_id, None)
        if expired:
            logger.info("Evicted %d finished job(s)", len(expired))
        return len(expired)

    async def shutdown(self):
        """Cancel all active jobs and wait for their coordinators."""
        tasks = [t for t in list(self._tasks.values()) if not t.done()]
        for job in list(self._jobs.values()):
            if not job.is_terminal:
                job.cancel_requested.set()
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=self.grace_period_seconds + 1.0)
            for task in pending:
                task.cancel()


# Global registry instance for app
registry: Optional[JobRegistry] = None

async def init_registry(executor: Optional[DestinationExecutor] = None,
                        notifier: Optional[Notifier] = None) -> JobRegistry:
    global registry
    if registry is None:
        if notifier is None:
            from rollout.routes.websocket import broadcast_job_update
            notifier = broadcast_job_update
        registry = JobRegistry.from_settings(executor or SimulatedExecutor(), notifier=notifier)
        logger.info("Job registry initialized with %s", type(registry.executor).__name__)
    return registry

async def shutdown_registry():
    global registry
    if registry is not None:
        logger.info("Shutting down job registry")
        await registry.shutdown()
        registry = None
