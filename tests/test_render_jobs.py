from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from filelock import FileLock, Timeout

from conftest import FakeRenderer, buildable_project, three_scene_project
from sceneline.compiler import TimelineCompiler
from sceneline.errors import (
    BuildConflictError,
    InvalidTransitionError,
    JobNotFoundError,
    RenderServiceError,
)
from sceneline.models import JobStatus
from sceneline.services import InMemoryJobStore, JsonFileJobStore, RenderJobManager
from sceneline.services.renderer import RemoteState


def _manager(renderer, clock, store=None, **kwargs):
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("retry_base_delay_sec", 30)
    kwargs.setdefault("retry_max_delay_sec", 600)
    kwargs.setdefault("stuck_job_minutes", 30)
    return RenderJobManager(
        store=store or InMemoryJobStore(),
        renderer=renderer,
        compiler=TimelineCompiler(asset_base_url=""),
        clock=clock,
        **kwargs,
    )


def test_submit_sends_spec_to_renderer(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.submit(buildable_project())

    assert job.status == JobStatus.SUBMITTED
    assert job.remote_id == "r-1"
    assert job.attempt == 1
    assert job.spec_hash == renderer.submitted[0]["content_hash"]
    assert manager.status(job.id) == {
        "job_id": job.id,
        "status": "submitted",
        "progress": 0,
        "output_url": None,
    }


def test_second_submission_conflicts_with_in_flight_job(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.submit(buildable_project())
    with pytest.raises(BuildConflictError) as exc:
        manager.submit(buildable_project())
    assert exc.value.job_id == job.id
    assert len(renderer.submitted) == 1


def test_concurrent_submissions_create_one_job(renderer, clock):
    store = InMemoryJobStore()
    manager = _manager(renderer, clock, store=store)
    barrier = threading.Barrier(2)
    jobs, conflicts = [], []

    def submit():
        barrier.wait()
        try:
            jobs.append(manager.submit(buildable_project()))
        except BuildConflictError as e:
            conflicts.append(e)

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(jobs) == 1
    assert len(conflicts) == 1
    assert conflicts[0].job_id == jobs[0].id
    assert len(store.all()) == 1


def test_blocked_build_fails_without_retry(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.submit(three_scene_project())

    assert job.status == JobStatus.FAILED
    assert job.error_code == "BUILD_BLOCKED"
    assert job.raw_error[0]["code"] == "VISUAL_VIDEO_MISSING"
    assert job.retry_count == 0
    assert renderer.submitted == []
    assert manager.submit(buildable_project()).status == JobStatus.SUBMITTED


def test_refresh_tracks_progress_without_regressing(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.submit(buildable_project())

    renderer.report("r-1", RemoteState.RENDERING, progress=40)
    job = manager.refresh(job.id)
    assert (job.status, job.progress) == (JobStatus.RENDERING, 40)

    renderer.report("r-1", RemoteState.QUEUED, progress=10)
    job = manager.refresh(job.id)
    assert (job.status, job.progress) == (JobStatus.RENDERING, 40)

    renderer.report("r-1", RemoteState.COMPLETED, progress=100, output_url="https://cdn.example.com/out.mp4")
    job = manager.refresh(job.id)
    assert job.status == JobStatus.COMPLETED
    assert manager.status(job.id)["output_url"] == "https://cdn.example.com/out.mp4"

    renderer.report("r-1", RemoteState.FAILED, error="late failure")
    assert manager.refresh(job.id) == job


def test_unchanged_refresh_does_not_touch_the_job(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.submit(buildable_project())
    clock.advance(minutes=5)
    assert manager.refresh(job.id) == job


def test_renderer_failures_back_off_then_fail(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.submit(buildable_project())
    raw = {"code": "E_DECODE", "detail": "bad frame"}

    renderer.report("r-1", RemoteState.FAILED, error=raw)
    job = manager.refresh(job.id)
    assert job.status == JobStatus.RETRY_WAIT
    assert job.retry_count == 1
    assert job.next_retry_at == clock.now + timedelta(seconds=30)
    assert job.raw_error == raw

    clock.advance(seconds=10)
    assert manager.refresh(job.id).status == JobStatus.RETRY_WAIT

    clock.advance(seconds=25)
    job = manager.refresh(job.id)
    assert (job.status, job.remote_id) == (JobStatus.SUBMITTED, "r-2")

    renderer.report("r-2", RemoteState.FAILED, error=raw)
    job = manager.refresh(job.id)
    assert job.retry_count == 2
    assert job.next_retry_at == clock.now + timedelta(seconds=60)

    clock.advance(seconds=61)
    job = manager.refresh(job.id)
    renderer.report(job.remote_id, RemoteState.FAILED, error=raw)
    job = manager.refresh(job.id)
    assert job.status == JobStatus.FAILED
    assert job.error_code == "RENDER_FAILED"
    assert job.raw_error == raw
    assert len(renderer.submitted) == 3


def test_submit_errors_enter_retry_wait(renderer, clock):
    renderer.fail_submit = RenderServiceError("503: busy", raw={"status": 503})
    manager = _manager(renderer, clock)
    job = manager.submit(buildable_project())
    assert job.status == JobStatus.RETRY_WAIT
    assert job.error_code == "RENDER_SUBMIT_FAILED"
    assert job.raw_error == {"status": 503}

    renderer.fail_submit = None
    clock.advance(seconds=30)
    assert manager.refresh(job.id).status == JobStatus.SUBMITTED


def test_backoff_is_capped():
    manager = RenderJobManager(
        store=InMemoryJobStore(),
        renderer=None,
        compiler=TimelineCompiler(asset_base_url=""),
        retry_base_delay_sec=30,
        retry_max_delay_sec=100,
    )
    assert [manager.backoff_delay(n) for n in range(4)] == [30, 60, 100, 100]


def test_cancel_releases_the_project_slot(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.submit(buildable_project())
    cancelled = manager.cancel(job.id)
    assert cancelled.status == JobStatus.CANCELLED

    with pytest.raises(InvalidTransitionError):
        manager.cancel(job.id)

    assert manager.submit(buildable_project()).id != job.id


def test_retry_creates_new_attempt_under_same_key(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.cancel(manager.submit(buildable_project()).id)

    retried = manager.retry(job.id)
    assert retried.id != job.id
    assert retried.idempotency_key == job.idempotency_key
    assert retried.attempt == 2
    assert retried.status == JobStatus.SUBMITTED
    assert retried.spec_hash == job.spec_hash
    assert manager.get(job.id).status == JobStatus.CANCELLED

    with pytest.raises(BuildConflictError):
        manager.retry(job.id)


def test_retry_rules(renderer, clock):
    manager = _manager(renderer, clock)
    blocked = manager.submit(three_scene_project())
    with pytest.raises(ValueError):
        manager.retry(blocked.id)

    job = manager.submit(buildable_project())
    with pytest.raises(InvalidTransitionError):
        manager.retry(job.id)

    with pytest.raises(JobNotFoundError):
        manager.retry("missing")


def test_stuck_jobs_time_out(renderer, clock):
    manager = _manager(renderer, clock, max_retries=0)
    job = manager.submit(buildable_project())

    assert manager.fail_stuck_jobs(clock.now + timedelta(minutes=10)) == []

    swept = manager.fail_stuck_jobs(clock.now + timedelta(minutes=31))
    assert [j.id for j in swept] == [job.id]
    assert swept[0].status == JobStatus.FAILED
    assert swept[0].error_code == "RENDER_TIMEOUT"


def test_json_store_persists_jobs(renderer, clock, tmp_path):
    path = tmp_path / "jobs" / "render_jobs.json"
    manager = _manager(renderer, clock, store=JsonFileJobStore(path))
    job = manager.submit(buildable_project())

    reloaded = JsonFileJobStore(path)
    assert reloaded.get(job.id) == job
    assert reloaded.active_for_project("proj-1").id == job.id


class _GatedRenderer(FakeRenderer):
    """Holds submissions for one project until released."""

    def __init__(self, gated_project: str) -> None:
        super().__init__()
        self.gated_project = gated_project
        self.entered = threading.Event()
        self.release = threading.Event()

    def submit(self, spec: dict) -> str:
        if spec["project"]["id"] == self.gated_project:
            self.entered.set()
            assert self.release.wait(5)
        return super().submit(spec)


def test_slow_submit_does_not_hold_up_other_work(clock):
    renderer = _GatedRenderer("proj-a")
    store = InMemoryJobStore()
    manager = _manager(renderer, clock, store=store)
    results = {}

    def submit_a():
        results["a"] = manager.submit(buildable_project(project_id="proj-a"))

    worker = threading.Thread(target=submit_a)
    worker.start()
    try:
        assert renderer.entered.wait(5)

        other = manager.submit(buildable_project(project_id="proj-b"))
        assert other.status == JobStatus.SUBMITTED

        [pending] = store.for_project("proj-a")
        assert pending.status == JobStatus.VALIDATING
        assert manager.cancel(pending.id).status == JobStatus.CANCELLED
    finally:
        renderer.release.set()
        worker.join(5)

    assert results["a"].status == JobStatus.CANCELLED
    assert results["a"].remote_id is None
    assert manager.get(pending.id).status == JobStatus.CANCELLED
    assert len(renderer.submitted) == 2


def test_stale_results_are_not_applied(renderer, clock):
    manager = _manager(renderer, clock)
    job = manager.submit(buildable_project())
    manager.cancel(job.id)

    renderer.report("r-1", RemoteState.RENDERING, progress=50)
    assert manager.refresh(job.id).status == JobStatus.CANCELLED
    assert manager._move(job, JobStatus.RENDERING, progress=50).status == JobStatus.CANCELLED


def test_separate_json_stores_share_the_one_job_rule(renderer, clock, tmp_path):
    path = tmp_path / "render_jobs.json"
    first = _manager(renderer, clock, store=JsonFileJobStore(path))
    second = _manager(renderer, clock, store=JsonFileJobStore(path))

    job = first.submit(buildable_project())
    with pytest.raises(BuildConflictError) as exc:
        second.submit(buildable_project())
    assert exc.value.job_id == job.id

    second.cancel(job.id)
    assert first.get(job.id).status == JobStatus.CANCELLED
    assert first.submit(buildable_project()).status == JobStatus.SUBMITTED


def test_json_store_transaction_holds_the_file_lock(tmp_path):
    store = JsonFileJobStore(tmp_path / "render_jobs.json")
    with store.transaction():
        with pytest.raises(Timeout):
            FileLock(str(store.lock_path), timeout=0).acquire()
        assert store.all() == []
    with FileLock(str(store.lock_path), timeout=0):
        pass
