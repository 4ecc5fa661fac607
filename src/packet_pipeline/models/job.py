"""Generation job models and the job state machine.

Transitions:
    pending -> active                  (claimed by a worker)
    active -> completed                (packet rendered and saved)
    active -> retry_scheduled          (failed, attempts < max_attempts)
    active -> failed_escalated         (failed, attempts == max_attempts)
    retry_scheduled -> pending         (backoff elapsed)
    pending | retry_scheduled -> superseded
                                       (a newer answer snapshot replaced it)

``completed``, ``failed_escalated`` and ``superseded`` are terminal.
"""

from __future__ import annotations

import enum
import hashlib
import json
import uuid
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobState(str, enum.Enum):
    """Lifecycle states for a generation job."""

    PENDING = "pending"
    ACTIVE = "active"
    RETRY_SCHEDULED = "retry_scheduled"
    COMPLETED = "completed"
    FAILED_ESCALATED = "failed_escalated"
    SUPERSEDED = "superseded"


ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.PENDING: frozenset({JobState.ACTIVE, JobState.SUPERSEDED}),
    JobState.ACTIVE: frozenset(
        {JobState.COMPLETED, JobState.RETRY_SCHEDULED, JobState.FAILED_ESCALATED}
    ),
    JobState.RETRY_SCHEDULED: frozenset({JobState.PENDING, JobState.SUPERSEDED}),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED_ESCALATED: frozenset(),
    JobState.SUPERSEDED: frozenset(),
}

TERMINAL_STATES: frozenset[JobState] = frozenset(
    s for s, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# At most one job per (client_id, packet_type) may be in one of these.
IN_FLIGHT_STATES: frozenset[JobState] = frozenset(
    {JobState.PENDING, JobState.ACTIVE, JobState.RETRY_SCHEDULED}
)


def can_transition(current: JobState, target: JobState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class AnswerSnapshot(BaseModel):
    """Answers frozen at submission time; the only input a job renders from.

    ``answers`` holds the visible answers.  ``hidden_answers`` holds answers
    to questions that were hidden at submission (empty under the purge
    policy); templates reach them only by naming them explicitly.
    """

    model_config = ConfigDict(frozen=True)

    client_type: str
    answers: dict[str, Any]
    hidden_answers: dict[str, Any] = Field(default_factory=dict)
    submitted_at: datetime

    def fingerprint(self) -> str:
        """Digest of the answer content, independent of submission time."""
        payload = json.dumps(
            {
                "client_type": self.client_type,
                "answers": self.answers,
                "hidden_answers": self.hidden_answers,
            },
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class Job(BaseModel):
    """One attempt-tracked unit of packet generation."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    client_id: str
    packet_type: str
    state: JobState = JobState.PENDING
    attempts: int = 0
    max_attempts: int
    last_error: Optional[str] = None
    snapshot: AnswerSnapshot
    fingerprint: str = ""
    created_at: datetime
    updated_at: datetime
    next_run_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    # Opaque reference returned by the packet sink on success
    output_ref: Optional[str] = None
    superseded_by: Optional[str] = None

    def model_post_init(self, __context: Any) -> None:
        if not self.fingerprint:
            self.fingerprint = self.snapshot.fingerprint()

    @property
    def key(self) -> tuple[str, str]:
        return (self.client_id, self.packet_type)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class JobStats(BaseModel):
    """Point-in-time counts per state."""

    pending: int = 0
    active: int = 0
    retry_scheduled: int = 0
    completed: int = 0
    failed: int = 0
    superseded: int = 0
    oldest_pending_at: Optional[datetime] = None
    # started_at of the longest-running ACTIVE attempt
    oldest_active_at: Optional[datetime] = None

    @property
    def in_flight(self) -> int:
        return self.pending + self.active + self.retry_scheduled


class JobOutcomes(BaseModel):
    """Terminal outcomes recorded since some instant."""

    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.completed + self.failed

    @property
    def failure_rate(self) -> float:
        return self.failed / self.total if self.total else 0.0


class EscalationPayload(BaseModel):
    """Everything a human needs to pick up a terminally failed job.

    Serialises with camelCase keys (``jobId``, ``clientName``, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    client_id: str
    client_name: str
    client_email: str
    packet_type: str
    error_message: str
    retry_count: int


class HealthIssue(BaseModel):
    kind: Literal["backlog", "failure_rate", "stalled", "stuck"]
    severity: Literal["warning", "critical"]
    message: str


class HealthReport(BaseModel):
    """Result of one queue health check."""

    status: Literal["healthy", "warning", "critical"]
    issues: List[HealthIssue] = Field(default_factory=list)
    stats: JobStats
    failure_rate: float = 0.0
    checked_at: datetime

    @property
    def summary(self) -> str:
        if not self.issues:
            return "Queue is operating normally"
        return "; ".join(i.message for i in self.issues)
