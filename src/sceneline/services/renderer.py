"""Clients for the external render service."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import requests

from ..config import config
from ..errors import RenderServiceError

logger = logging.getLogger(__name__)


class RemoteState(str, Enum):
    """Job state as reported by the render service."""
    QUEUED = "queued"
    RENDERING = "rendering"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RemoteRenderState:
    """One poll result from the render service."""

    state: RemoteState
    progress: int = 0
    output_url: Optional[str] = None
    error: Optional[Any] = None


class RenderClient(ABC):
    """Interface to a render service."""

    @abstractmethod
    def submit(self, spec: Dict[str, Any]) -> str:
        """Submit a render specification.

        Args:
            spec: The render specification as JSON-compatible data.

        Returns:
            The service's job id.

        Raises:
            RenderServiceError: If the service rejects the submission.
        """

    @abstractmethod
    def poll(self, remote_id: str) -> RemoteRenderState:
        """Fetch the current state of a submitted job.

        Raises:
            RenderServiceError: If the service cannot be queried.
        """


class HttpRenderClient(RenderClient):
    """Render service reached over HTTP.

    ``POST {endpoint}/renders`` submits a specification and returns ``{"id"}``;
    ``GET {endpoint}/renders/{id}`` returns ``{"status", "progress",
    "output_url", "error"}``.
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._endpoint = (endpoint or config.render_endpoint).rstrip("/")
        self._api_key = api_key if api_key is not None else config.render_api_key
        self._timeout = timeout
        if not self._endpoint:
            raise ValueError(
                "Missing required render configuration: SCENELINE_RENDER_ENDPOINT. "
                "Set the corresponding environment variable."
            )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self._endpoint}{path}"
        try:
            response = requests.request(
                method, url, headers=self._headers(), timeout=self._timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"Render service request failed: {method} {url}: {e}")
            raise RenderServiceError(f"Render service unreachable: {e}") from e

        if response.status_code >= 400:
            error_msg = f"{response.status_code}: {response.text[:500]}"
            logger.error(f"Render service error: {error_msg}")
            try:
                raw = response.json()
            except ValueError:
                raw = response.text
            raise RenderServiceError(f"Render service returned {error_msg}", raw=raw)

        try:
            return response.json()
        except ValueError as e:
            raise RenderServiceError(
                "Render service returned a non-JSON response", raw=response.text
            ) from e

    def submit(self, spec: Dict[str, Any]) -> str:
        data = self._request("POST", "/renders", json=spec)
        remote_id = data.get("id")
        if not remote_id:
            raise RenderServiceError("Render service response has no job id", raw=data)
        logger.info(f"Submitted render job {remote_id}")
        return str(remote_id)

    def poll(self, remote_id: str) -> RemoteRenderState:
        data = self._request("GET", f"/renders/{remote_id}")
        try:
            state = RemoteState(data.get("status", ""))
        except ValueError as e:
            raise RenderServiceError(
                f"Render service reported unknown status: {data.get('status')!r}", raw=data
            ) from e
        return RemoteRenderState(
            state=state,
            progress=int(data.get("progress") or 0),
            output_url=data.get("output_url"),
            error=data.get("error"),
        )
