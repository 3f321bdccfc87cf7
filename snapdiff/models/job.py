"""Per-request job state machine."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from snapdiff.models.capture import ArtifactKeySet, CaptureRequest, CaptureResponse


class JobState(str, Enum):
    QUEUED = "queued"
    CAPTURING = "capturing"
    BASELINE_ESTABLISHED = "baseline_established"
    COMPARING = "comparing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = {JobState.COMPLETED, JobState.FAILED}

_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.QUEUED: {JobState.CAPTURING, JobState.FAILED},
    JobState.CAPTURING: {JobState.BASELINE_ESTABLISHED, JobState.COMPARING, JobState.FAILED},
    JobState.BASELINE_ESTABLISHED: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPARING: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
}


@dataclass
class Job:
    request: CaptureRequest
    keys: ArtifactKeySet
    future: asyncio.Future
    job_id: str = field(default_factory=lambda: f"job_{uuid.uuid4().hex[:8]}")
    state: JobState = JobState.QUEUED
    history: list[JobState] = field(default_factory=lambda: [JobState.QUEUED])
    enqueued_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    changed_pixels: Optional[int] = None
    response: Optional[CaptureResponse] = None
    error: Optional[BaseException] = None
    written_keys: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: JobState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal job transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
