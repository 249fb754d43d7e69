"""
Shared fixtures: scripted executors and a registry wired to them.
"""

import asyncio
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio

from rollout.errors import DestinationFailure
from rollout.services.executor import DestinationExecutor, Outcome
from rollout.services.registry import JobRegistry


class ScriptedExecutor(DestinationExecutor):
    """Executor whose behaviour per destination id is given by a script.

    Script entries are ``(action, delay[, reason])`` with action one of
    ``ok``, ``fail``, ``raise``, ``reject`` (raises DestinationFailure),
    ``hang`` (waits for the stop signal) and ``stubborn`` (ignores the
    stop signal for ``delay`` seconds, then succeeds).
    """

    def __init__(self, script: Dict[str, Tuple] = None, default: Tuple = ("ok", 0.0)):
        self.script = script or {}
        self.default = default
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.stopped: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, image, destination_id, parameters, stop):
        self.calls.append((image, destination_id, dict(parameters)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return await self._perform(destination_id, stop)
        finally:
            self.in_flight -= 1

    async def _perform(self, destination_id, stop):
        action, delay, *rest = self.script.get(destination_id, self.default)
        reason = rest[0] if rest else "boom"

        if action == "hang":
            await stop.wait()
            self.stopped.append(destination_id)
            return Outcome.interrupted()
        if action == "stubborn":
            await asyncio.sleep(delay)
            return Outcome.success()

        if delay:
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            else:
                self.stopped.append(destination_id)
                return Outcome.interrupted()

        if action == "ok":
            return Outcome.success()
        if action == "fail":
            return Outcome.failure(reason)
        if action == "reject":
            raise DestinationFailure(reason)
        if action == "raise":
            raise RuntimeError(reason)
        raise AssertionError(f"unknown scripted action {action}")


class RecordingNotifier:
    """Collects (job_id, type, data) updates published by the orchestrator."""

    def __init__(self):
        self.messages: List[Tuple[str, str, Dict[str, Any]]] = []

    async def __call__(self, job_id, message_type, data):
        self.messages.append((job_id, message_type, data))

    def types(self, job_id=None):
        return [t for j, t, _ in self.messages if job_id is None or j == job_id]


@pytest.fixture
def scripted_executor():
    return ScriptedExecutor


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def make_registry(notifier):
    """Factory for registries; every registry is shut down after the test."""
    registries = []

    def _make(executor=None, **kwargs):
        kwargs.setdefault("grace_period_seconds", 0.5)
        kwargs.setdefault("notifier", notifier)
        registry = JobRegistry(executor or ScriptedExecutor(), **kwargs)
        registries.append(registry)
        return registry

    yield _make

    for registry in registries:
        await registry.shutdown()
