"""
Destination executor capability.

The orchestrator never pushes images itself; it calls an injected
``DestinationExecutor`` once per destination and observes the ``Outcome``.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from rollout.config import settings

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class Outcome:
    """Result of updating a single destination"""
    kind: OutcomeKind
    reason: str = ""

    @classmethod
    def success(cls) -> "Outcome":
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def failure(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.FAILURE, reason or "unknown failure")

    @classmethod
    def interrupted(cls) -> "Outcome":
        return cls(OutcomeKind.INTERRUPTED, "interrupted")

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


class DestinationExecutor:
    """Performs the update of one destination.

    Implementations should return promptly once ``stop`` is set; they may
    raise ``rollout.errors.DestinationFailure`` instead of returning a
    failure outcome.
    """

    async def execute(self, image: str, destination_id: str,
                      parameters: Dict[str, Any], stop: asyncio.Event) -> Outcome:
        raise NotImplementedError


class SimulatedExecutor(DestinationExecutor):
    """Simulates an update by ticking through a fixed number of steps.

    Per-destination parameters ``steps``, ``step_seconds`` and ``fail``
    override the defaults; ``fail`` may be ``True`` or a reason string.
    """

    def __init__(self, steps: Optional[int] = None, step_seconds: Optional[float] = None):
        self.steps = settings.simulated_steps if steps is None else steps
        self.step_seconds = settings.simulated_step_seconds if step_seconds is None else step_seconds

    async def execute(self, image: str, destination_id: str,
                      parameters: Dict[str, Any], stop: asyncio.Event) -> Outcome:
        steps = int(parameters.get("steps", self.steps))
        step_seconds = float(parameters.get("step_seconds", self.step_seconds))

        for i in range(steps):
            try:
                await asyncio.wait_for(stop.wait(), timeout=step_seconds)
            except asyncio.TimeoutError:
                logger.debug("Destination %s: pushing %s, step %d/%d",
                             destination_id, image, i + 1, steps)
                continue
            return Outcome.interrupted()

        fail = parameters.get("fail")
        if fail:
            reason = fail if isinstance(fail, str) else "simulated failure"
            return Outcome.failure(reason)
        return Outcome.success()
