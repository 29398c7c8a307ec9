from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from conftest import buildable_project, clip, image_scene, scene, snapshot, visual
from sceneline.errors import InvalidTransitionError
from sceneline.models import (
    AssetStatus,
    Envelope,
    JobStatus,
    Keyframe,
    ProjectSnapshot,
    RenderJob,
    TimelineAutomationEntry,
    transition,
)


def test_scene_ordinals_must_be_contiguous():
    with pytest.raises(ValidationError):
        snapshot([image_scene(1), image_scene(3)])


def test_scene_ids_must_be_unique():
    with pytest.raises(ValidationError):
        snapshot([image_scene(1, id="dup"), image_scene(2, id="dup")])


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        ProjectSnapshot(project_id="p", scenes=[], colour_grade="warm")


def test_automation_entry_needs_positive_window():
    with pytest.raises(ValidationError):
        TimelineAutomationEntry(id="a", start_ms=1000, end_ms=1000, volume=0.1)


def test_eligibility_requires_active_completed_and_locator():
    assert visual("a").is_eligible
    assert not visual("b", is_active=False).is_eligible
    assert not visual("c", status=AssetStatus.FAILED).is_eligible
    assert not visual("d", url="  ").is_eligible
    assert clip("n").is_eligible
    assert not clip("m", status=AssetStatus.PENDING).is_eligible


def test_snapshot_yaml_round_trip(tmp_path):
    project = buildable_project(title="Demo")
    path = tmp_path / "project.yaml"
    project.to_yaml(path)
    assert ProjectSnapshot.from_yaml(path) == project


def test_envelope_interpolates_and_holds():
    env = Envelope(keyframes=[
        Keyframe(t_ms=1000, volume=0.2),
        Keyframe(t_ms=2000, volume=0.6),
    ])
    assert env.value_at(0) == 0.2
    assert env.value_at(1500) == pytest.approx(0.4)
    assert env.value_at(5000) == 0.6


def test_envelope_step_is_right_continuous():
    env = Envelope(keyframes=[
        Keyframe(t_ms=0, volume=0.3),
        Keyframe(t_ms=1000, volume=0.3),
        Keyframe(t_ms=1000, volume=0.8),
        Keyframe(t_ms=2000, volume=0.8),
    ])
    assert env.value_at(1000) == 0.8
    assert env.left_limit(1000) == 0.3


def _job(**kwargs) -> RenderJob:
    return RenderJob(id="job-1", project_id="proj-1", idempotency_key="key-1", **kwargs)


def test_transition_moves_forward_and_stamps_time():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    job = transition(_job(), JobStatus.VALIDATING, now=now)
    assert job.status == JobStatus.VALIDATING
    assert job.updated_at == now
    assert job.revision == 1
    assert transition(job, JobStatus.RENDERING).status == JobStatus.RENDERING


def test_transition_never_moves_back():
    job = _job(status=JobStatus.RENDERING)
    with pytest.raises(InvalidTransitionError):
        transition(job, JobStatus.SUBMITTED)


def test_terminal_jobs_are_immutable():
    for status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED):
        with pytest.raises(InvalidTransitionError):
            transition(_job(status=status), status, progress=50)


def test_retry_wait_only_resubmits_or_ends():
    job = _job(status=JobStatus.RETRY_WAIT)
    assert transition(job, JobStatus.SUBMITTED).status == JobStatus.SUBMITTED
    with pytest.raises(InvalidTransitionError):
        transition(job, JobStatus.RENDERING)


def test_same_status_transition_applies_changes_only():
    job = transition(_job(status=JobStatus.RENDERING), JobStatus.RENDERING, progress=40)
    assert job.status == JobStatus.RENDERING
    assert job.progress == 40


def test_scene_orders_utterances():
    from sceneline.models import Utterance

    s = scene(1, utterances=[
        Utterance(id="b", order=2),
        Utterance(id="a", order=1),
    ])
    assert [u.id for u in s.ordered_utterances()] == ["a", "b"]
