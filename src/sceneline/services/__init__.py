"""External service clients and the render job manager."""

from .job_store import InMemoryJobStore, JobStore, JsonFileJobStore
from .probe import ProbeResult, UrlProber
from .render_jobs import RenderJobManager
from .renderer import HttpRenderClient, RemoteRenderState, RemoteState, RenderClient

__all__ = [
    "InMemoryJobStore",
    "JobStore",
    "JsonFileJobStore",
    "ProbeResult",
    "UrlProber",
    "RenderJobManager",
    "HttpRenderClient",
    "RemoteRenderState",
    "RemoteState",
    "RenderClient",
]
