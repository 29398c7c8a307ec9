"""Render job state model."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..errors import InvalidTransitionError


class JobStatus(str, Enum):
    """Render job status."""
    QUEUED = "queued"
    VALIDATING = "validating"
    SUBMITTED = "submitted"
    RENDERING = "rendering"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETRY_WAIT = "retry_wait"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

# Main progression; a job may skip ahead but never move back.
PIPELINE = (
    JobStatus.QUEUED,
    JobStatus.VALIDATING,
    JobStatus.SUBMITTED,
    JobStatus.RENDERING,
    JobStatus.UPLOADING,
    JobStatus.COMPLETED,
)


def _allowed_transitions() -> Dict[JobStatus, frozenset]:
    allowed: Dict[JobStatus, frozenset] = {}
    escape = {JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.RETRY_WAIT}
    for i, status in enumerate(PIPELINE[:-1]):
        allowed[status] = frozenset(set(PIPELINE[i + 1:]) | escape)
    allowed[JobStatus.RETRY_WAIT] = frozenset({JobStatus.SUBMITTED, JobStatus.FAILED, JobStatus.CANCELLED})
    for status in TERMINAL_STATUSES:
        allowed[status] = frozenset()
    return allowed


ALLOWED_TRANSITIONS = _allowed_transitions()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RenderJob(BaseModel):
    """One render submission."""

    id: str = Field(..., description="Job identifier")
    project_id: str = Field(..., description="Project being rendered")
    idempotency_key: str = Field(..., description="Shared by a job and its explicit retries")
    attempt: int = Field(default=1, ge=1, description="1 for the first job under the key")
    status: JobStatus = Field(default=JobStatus.QUEUED)
    retry_count: int = Field(default=0, ge=0, description="Automatic retries used")
    progress: int = Field(default=0, ge=0, le=100)
    remote_id: Optional[str] = Field(None, description="Render service job id")
    spec_hash: Optional[str] = Field(None)
    spec: Optional[Dict[str, Any]] = Field(None, description="Submitted render specification")
    output_url: Optional[str] = Field(None)
    error_code: Optional[str] = Field(None)
    error_message: Optional[str] = Field(None)
    raw_error: Optional[Any] = Field(None, description="Renderer error payload, unmodified")
    next_retry_at: Optional[datetime] = Field(None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    revision: int = Field(default=0, ge=0, description="Incremented on every change")

    class Config:
        """Pydantic config."""
        frozen = True

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


def transition(
    job: RenderJob,
    status: JobStatus,
    now: Optional[datetime] = None,
    **changes: Any,
) -> RenderJob:
    """Return a copy of ``job`` moved to ``status``.

    Staying in the same non-terminal status is allowed and only applies
    ``changes``. Terminal jobs never change.

    Raises:
        InvalidTransitionError: If the state machine forbids the move.
    """
    if job.is_terminal:
        raise InvalidTransitionError(job.id, job.status, status)
    if status != job.status and status not in ALLOWED_TRANSITIONS[job.status]:
        raise InvalidTransitionError(job.id, job.status, status)
    update = dict(changes)
    update["status"] = status
    update["updated_at"] = now or utcnow()
    update["revision"] = job.revision + 1
    return job.model_copy(update=update)
