from rollout.models.job import (
    Destination,
    Job,
    JobId,
    Jobs,
    Options,
    Progress,
    State,
    TERMINAL_STATES,
)

__all__ = [
    "Destination",
    "Job",
    "JobId",
    "Jobs",
    "Options",
    "Progress",
    "State",
    "TERMINAL_STATES",
]
