"""Update-rollout orchestrator service."""

__version__ = "1.0.0"
