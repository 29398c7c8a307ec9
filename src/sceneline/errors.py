"""Exception types raised by the compiler and the render job manager."""

from typing import Any, Optional


class SceneLineError(Exception):
    """Base class for all sceneline errors."""


class AssetResolutionError(SceneLineError):
    """A scene has no usable visual for its declared mode."""

    def __init__(self, issue: Any) -> None:
        self.issue = issue
        super().__init__(issue.message)


class BuildBlockedError(SceneLineError):
    """Preflight reported blocking errors; no render specification was emitted."""

    def __init__(self, report: Any) -> None:
        self.report = report
        codes = ", ".join(sorted({issue.code.value for issue in report.errors}))
        super().__init__(f"Build blocked by {len(report.errors)} error(s): {codes}")


class BuildConflictError(SceneLineError):
    """A non-terminal render job already exists for the project."""

    def __init__(self, job_id: str, project_id: str) -> None:
        self.job_id = job_id
        self.project_id = project_id
        super().__init__(
            f"Project {project_id} already has an in-flight render job: {job_id}"
        )


class InvalidTransitionError(SceneLineError):
    """A render job status change is not allowed by the state machine."""

    def __init__(self, job_id: str, from_status: Any, to_status: Any) -> None:
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Job {job_id}: cannot move from {getattr(from_status, 'value', from_status)} "
            f"to {getattr(to_status, 'value', to_status)}"
        )


class JobNotFoundError(SceneLineError):
    """No render job with the given id exists."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Render job not found: {job_id}")


class RenderServiceError(SceneLineError):
    """The external render service rejected a request or could not be reached."""

    def __init__(self, message: str, raw: Optional[Any] = None) -> None:
        self.raw = raw
        super().__init__(message)
