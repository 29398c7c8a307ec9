"""Render job lifecycle: submission, status refresh, retry and cancellation."""

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from ..compiler.timeline import TimelineCompiler
from ..config import config
from ..errors import (
    BuildBlockedError,
    BuildConflictError,
    InvalidTransitionError,
    JobNotFoundError,
    RenderServiceError,
)
from ..models import JobStatus, ProjectSnapshot, RenderJob, transition
from ..models.job import PIPELINE, utcnow
from .job_store import JobStore
from .renderer import RemoteState, RenderClient

logger = logging.getLogger(__name__)

BUILD_BLOCKED = "BUILD_BLOCKED"
RENDER_FAILED = "RENDER_FAILED"
RENDER_SUBMIT_FAILED = "RENDER_SUBMIT_FAILED"
RENDER_TIMEOUT = "RENDER_TIMEOUT"

_REMOTE_TO_STATUS = {
    RemoteState.QUEUED: JobStatus.SUBMITTED,
    RemoteState.RENDERING: JobStatus.RENDERING,
    RemoteState.UPLOADING: JobStatus.UPLOADING,
    RemoteState.COMPLETED: JobStatus.COMPLETED,
}


class RenderJobManager:
    """Owns every render job status change.

    At most one non-terminal job exists per project: creation is a
    check-and-set inside a store transaction. Compiling and renderer calls run
    without any lock held; their results are committed only if the job has
    not changed in the meantime (its ``revision`` still matches), so a cancel
    that lands during a slow submit wins. Status refresh is pull-based and
    idempotent; a terminal job is never touched again.
    """

    def __init__(
        self,
        store: JobStore,
        renderer: RenderClient,
        compiler: Optional[TimelineCompiler] = None,
        max_retries: Optional[int] = None,
        retry_base_delay_sec: Optional[float] = None,
        retry_max_delay_sec: Optional[float] = None,
        stuck_job_minutes: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Job persistence.
            renderer: Render service client.
            compiler: Compiler used to validate and build specifications.
            max_retries: Automatic retries after a renderer failure.
            retry_base_delay_sec: Backoff base delay.
            retry_max_delay_sec: Backoff upper bound.
            stuck_job_minutes: Minutes without change before a job times out.
            clock: Returns the current UTC time.
        """
        self._store = store
        self._renderer = renderer
        self._compiler = compiler or TimelineCompiler()
        self.max_retries = config.max_render_retries if max_retries is None else max_retries
        self.retry_base_delay_sec = (
            config.retry_base_delay_sec if retry_base_delay_sec is None else retry_base_delay_sec
        )
        self.retry_max_delay_sec = (
            config.retry_max_delay_sec if retry_max_delay_sec is None else retry_max_delay_sec
        )
        self.stuck_job_minutes = (
            config.stuck_job_minutes if stuck_job_minutes is None else stuck_job_minutes
        )
        self._clock = clock or utcnow
        self._lock = threading.RLock()
        self._resubmitting: Set[str] = set()

    # Public operations

    def submit(self, snapshot: ProjectSnapshot, check_reachability: bool = False) -> RenderJob:
        """Create a job for the project and hand its specification to the renderer.

        Args:
            snapshot: Project snapshot to build.
            check_reachability: Probe visual locators during validation.

        Returns:
            The job after submission (``submitted``), ``failed`` with
            ``BUILD_BLOCKED`` when preflight found blocking errors, or the
            job's current state if it was cancelled while in flight.

        Raises:
            BuildConflictError: If the project already has a non-terminal job.
        """
        job = self._create(snapshot.project_id, uuid.uuid4().hex, attempt=1)
        return self._validate_and_send(job, snapshot, check_reachability)

    def retry(
        self,
        job_id: str,
        snapshot: Optional[ProjectSnapshot] = None,
        check_reachability: bool = False,
    ) -> RenderJob:
        """Start a new attempt for a failed or cancelled job.

        The new job shares the old job's idempotency key. With a snapshot the
        project is compiled again; without one the old job's specification is
        resubmitted as-is.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidTransitionError: If the job is not failed or cancelled.
            BuildConflictError: If the project already has a non-terminal job.
            ValueError: If there is neither a snapshot nor a stored specification.
        """
        with self._lock, self._store.transaction():
            old = self.get(job_id)
            if old.status not in (JobStatus.FAILED, JobStatus.CANCELLED):
                raise InvalidTransitionError(old.id, old.status, JobStatus.QUEUED)
            if snapshot is None and old.spec is None:
                raise ValueError(
                    f"Job {old.id} has no stored render specification; pass a project snapshot"
                )
            attempt = max(
                j.attempt for j in self._store.all() if j.idempotency_key == old.idempotency_key
            ) + 1
            job = self._create(old.project_id, old.idempotency_key, attempt=attempt)
        logger.info(f"Job {job.id}: retry of {old.id} (attempt {attempt})")
        if snapshot is not None:
            return self._validate_and_send(job, snapshot, check_reachability)
        job = self._move(job, JobStatus.VALIDATING, spec=old.spec, spec_hash=old.spec_hash)
        if job.status != JobStatus.VALIDATING:
            return job
        return self._send(job)

    def refresh(self, job_id: str) -> RenderJob:
        """Pull the renderer's view of a job and apply it.

        Terminal jobs are returned unchanged. A job waiting for a retry is
        resubmitted once its backoff has elapsed, by one caller at a time.
        """
        job = self.get(job_id)
        if job.is_terminal:
            return job

        if job.status == JobStatus.RETRY_WAIT:
            if job.next_retry_at is None or self._clock() < job.next_retry_at:
                return job
            with self._lock:
                if job.id in self._resubmitting:
                    return job
                current = self.get(job.id)
                if current.revision != job.revision:
                    return current
                self._resubmitting.add(job.id)
            try:
                return self._send(job)
            finally:
                with self._lock:
                    self._resubmitting.discard(job.id)

        if job.remote_id is None:
            return job

        try:
            state = self._renderer.poll(job.remote_id)
        except RenderServiceError as e:
            logger.warning(f"Job {job.id}: status poll failed: {e}")
            return job

        if state.state == RemoteState.FAILED:
            message = state.error if isinstance(state.error, str) else "Render failed"
            return self._fail(job, RENDER_FAILED, message, state.error)

        status = self._forward(job.status, _REMOTE_TO_STATUS[state.state])
        progress = max(job.progress, min(100, max(0, state.progress)))
        changes: Dict[str, Any] = {}
        if status == JobStatus.COMPLETED:
            progress = 100
            changes["output_url"] = state.output_url
        if status == job.status and progress == job.progress:
            return job
        return self._move(job, status, progress=progress, **changes)

    def cancel(self, job_id: str) -> RenderJob:
        """Cancel a non-terminal job, releasing the project's slot.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidTransitionError: If the job is already terminal.
        """
        with self._lock, self._store.transaction():
            return self._move(self.get(job_id), JobStatus.CANCELLED, next_retry_at=None)

    def get(self, job_id: str) -> RenderJob:
        """Job by id.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def status(self, job_id: str) -> Dict[str, Any]:
        job = self.get(job_id)
        return {
            "job_id": job.id,
            "status": job.status.value,
            "progress": job.progress,
            "output_url": job.output_url if job.status == JobStatus.COMPLETED else None,
        }

    def fail_stuck_jobs(self, now: Optional[datetime] = None) -> List[RenderJob]:
        """Time out in-flight jobs that have not changed for too long.

        Returns:
            The jobs that were routed through the failure path.
        """
        now = now or self._clock()
        cutoff = now - timedelta(minutes=self.stuck_job_minutes)
        swept: List[RenderJob] = []
        with self._lock, self._store.transaction():
            for job in self._store.all():
                if job.is_terminal or job.status == JobStatus.RETRY_WAIT:
                    continue
                if job.updated_at >= cutoff:
                    continue
                message = f"No progress for more than {self.stuck_job_minutes} minutes"
                swept.append(self._fail(job, RENDER_TIMEOUT, message, None))
        return swept

    def backoff_delay(self, retry_count: int) -> float:
        """Seconds to wait before automatic retry number ``retry_count + 1``."""
        return min(self.retry_max_delay_sec, self.retry_base_delay_sec * 2 ** retry_count)

    # Internals

    def _create(self, project_id: str, idempotency_key: str, attempt: int) -> RenderJob:
        with self._lock, self._store.transaction():
            active = self._store.active_for_project(project_id)
            if active is not None:
                logger.info(f"Rejected build for {project_id}: job {active.id} is {active.status.value}")
                raise BuildConflictError(active.id, project_id)
            now = self._clock()
            job = RenderJob(
                id=uuid.uuid4().hex,
                project_id=project_id,
                idempotency_key=idempotency_key,
                attempt=attempt,
                created_at=now,
                updated_at=now,
            )
            self._store.put(job)
        logger.info(f"Job {job.id}: created for {project_id} (queued)")
        return job

    def _validate_and_send(
        self,
        job: RenderJob,
        snapshot: ProjectSnapshot,
        check_reachability: bool,
    ) -> RenderJob:
        job = self._move(job, JobStatus.VALIDATING)
        if job.status != JobStatus.VALIDATING:
            return job
        try:
            spec = self._compiler.build_spec(snapshot, check_reachability)
        except BuildBlockedError as e:
            return self._move(
                job,
                JobStatus.FAILED,
                error_code=BUILD_BLOCKED,
                error_message=str(e),
                raw_error=[issue.model_dump(mode="json") for issue in e.report.errors],
            )
        job = self._move(
            job,
            JobStatus.VALIDATING,
            spec=spec.model_dump(mode="json"),
            spec_hash=spec.content_hash,
        )
        if job.status != JobStatus.VALIDATING:
            return job
        return self._send(job)

    def _send(self, job: RenderJob) -> RenderJob:
        try:
            remote_id = self._renderer.submit(job.spec)
        except RenderServiceError as e:
            return self._fail(job, RENDER_SUBMIT_FAILED, str(e), e.raw)
        moved = self._move(
            job,
            JobStatus.SUBMITTED,
            remote_id=remote_id,
            progress=0,
            next_retry_at=None,
        )
        if moved.remote_id != remote_id:
            logger.warning(f"Job {job.id}: render {remote_id} started after the job became {moved.status.value}")
        return moved

    def _fail(self, job: RenderJob, code: str, message: str, raw: Any) -> RenderJob:
        if job.spec is not None and job.retry_count < self.max_retries:
            delay = self.backoff_delay(job.retry_count)
            logger.warning(
                f"Job {job.id}: {code}: {message}; retry {job.retry_count + 1}/"
                f"{self.max_retries} in {delay:.0f}s"
            )
            return self._move(
                job,
                JobStatus.RETRY_WAIT,
                retry_count=job.retry_count + 1,
                error_code=code,
                error_message=message,
                raw_error=raw,
                next_retry_at=self._clock() + timedelta(seconds=delay),
            )
        logger.error(f"Job {job.id}: {code}: {message}")
        return self._move(
            job,
            JobStatus.FAILED,
            error_code=code,
            error_message=message,
            raw_error=raw,
            next_retry_at=None,
        )

    @staticmethod
    def _forward(current: JobStatus, reported: JobStatus) -> JobStatus:
        if current in PIPELINE and PIPELINE.index(reported) < PIPELINE.index(current):
            return current
        return reported

    def _move(self, job: RenderJob, status: JobStatus, **changes: Any) -> RenderJob:
        """Commit a transition computed from ``job``.

        Returns the stored job unchanged when it moved on since ``job`` was
        read.
        """
        with self._lock, self._store.transaction():
            current = self.get(job.id)
            if current.revision != job.revision:
                logger.info(
                    f"Job {job.id}: now {current.status.value}; "
                    f"dropping stale move to {status.value}"
                )
                return current
            moved = transition(current, status, now=self._clock(), **changes)
            self._store.put(moved)
        if moved.status != job.status:
            logger.info(f"Job {job.id}: {job.status.value} -> {moved.status.value}")
        return moved
