from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
from enum import Enum


class State(str, Enum):
    """Job state enumeration"""
    UNSET = "unset"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def number(self) -> int:
        return _STATE_NUMBERS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


_STATE_NUMBERS = {state: i for i, state in enumerate(State)}

TERMINAL_STATES = frozenset({
    State.COMPLETED,
    State.CANCELLED,
    State.FAILED,
    State.TIMED_OUT,
})


class Destination(BaseModel):
    """One target of a rollout"""
    id: str
    extra: Dict[str, Any] = Field(default_factory=dict)


class Options(BaseModel):
    """Rollout request: what to roll out and where"""
    image: str
    destinations: List[Destination] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)


class Progress(BaseModel):
    started: int = 0
    completed: int = 0
    # whole seconds since the job started, frozen at the terminal transition
    duration: int = 0


class Job(BaseModel):
    """Point-in-time snapshot of a rollout job"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    options: Options
    state: State
    destinations: List[Destination] = Field(default_factory=list)
    progress: Progress = Field(default_factory=Progress)
    message: str = ""


class Jobs(BaseModel):
    jobs: List[Job] = Field(default_factory=list)


class JobId(BaseModel):
    id: str
    message: Optional[str] = None
