"""Render job persistence."""

import json
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from filelock import FileLock

from ..models import RenderJob


class JobStore(ABC):
    """Keyed storage for render jobs.

    Reads and writes that must not interleave with another writer (the
    one-active-job check followed by an insert, a compare-and-set of a job)
    run inside ``transaction()``.
    """

    @abstractmethod
    def get(self, job_id: str) -> Optional[RenderJob]:
        """Job by id, or None."""

    @abstractmethod
    def put(self, job: RenderJob) -> None:
        """Insert or replace a job."""

    @abstractmethod
    def all(self) -> List[RenderJob]:
        """All jobs in insertion order."""

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Exclusive section across every user of the store."""
        yield

    def for_project(self, project_id: str) -> List[RenderJob]:
        return [job for job in self.all() if job.project_id == project_id]

    def active_for_project(self, project_id: str) -> Optional[RenderJob]:
        """The project's non-terminal job, if any."""
        for job in self.for_project(project_id):
            if not job.is_terminal:
                return job
        return None


class InMemoryJobStore(JobStore):
    """Jobs of a single process; the job manager's lock covers transactions."""

    def __init__(self) -> None:
        self._jobs: Dict[str, RenderJob] = {}

    def get(self, job_id: str) -> Optional[RenderJob]:
        return self._jobs.get(job_id)

    def put(self, job: RenderJob) -> None:
        self._jobs[job.id] = job

    def all(self) -> List[RenderJob]:
        return list(self._jobs.values())


class JsonFileJobStore(JobStore):
    """Jobs kept in one JSON file, shared safely between processes.

    Every read loads the file and every write is a load-modify-replace,
    all under an inter-process lock on ``<path>.lock``.
    """

    def __init__(self, path: Path, lock_timeout: float = 30) -> None:
        """Initialize the store.

        Args:
            path: JSON file holding the jobs.
            lock_timeout: Seconds to wait for another process to release the
                lock before ``filelock.Timeout`` is raised.
        """
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(str(self.lock_path), timeout=lock_timeout)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            yield

    def _load(self) -> Dict[str, RenderJob]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return {item["id"]: RenderJob.model_validate(item) for item in data.get("jobs", [])}

    def _save(self, jobs: Dict[str, RenderJob]) -> None:
        payload = {"jobs": [job.model_dump(mode="json") for job in jobs.values()]}
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=True, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, job_id: str) -> Optional[RenderJob]:
        with self._lock:
            return self._load().get(job_id)

    def put(self, job: RenderJob) -> None:
        with self._lock:
            jobs = self._load()
            jobs[job.id] = job
            self._save(jobs)

    def all(self) -> List[RenderJob]:
        with self._lock:
            return list(self._load().values())
