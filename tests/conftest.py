from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from sceneline.errors import RenderServiceError
from sceneline.models import (
    AssetStatus,
    AudioClip,
    BackgroundTrack,
    ProjectSnapshot,
    Scene,
    Utterance,
    VisualAsset,
    VisualKind,
    VisualMode,
)
from sceneline.services.renderer import RemoteRenderState, RemoteState, RenderClient

CDN = "https://cdn.example.com"


def visual(asset_id: str, kind: VisualKind = VisualKind.IMAGE, **kwargs) -> VisualAsset:
    ext = {VisualKind.IMAGE: "png", VisualKind.COMIC: "png", VisualKind.VIDEO: "mp4"}[kind]
    kwargs.setdefault("url", f"{CDN}/{asset_id}.{ext}")
    kwargs.setdefault("is_active", True)
    return VisualAsset(id=asset_id, kind=kind, **kwargs)


def clip(clip_id: str, duration_ms: Optional[int] = 1000, **kwargs) -> AudioClip:
    kwargs.setdefault("url", f"{CDN}/{clip_id}.mp3")
    return AudioClip(id=clip_id, duration_ms=duration_ms, **kwargs)


def scene(idx: int, mode: VisualMode = VisualMode.IMAGE, **kwargs) -> Scene:
    kwargs.setdefault("id", f"scene-{idx}")
    return Scene(idx=idx, visual_mode=mode, **kwargs)


def image_scene(idx: int, **kwargs) -> Scene:
    kwargs.setdefault("visuals", [visual(f"img-{idx}")])
    return scene(idx, VisualMode.IMAGE, **kwargs)


def track(track_id: str = "bgm-1", **kwargs) -> BackgroundTrack:
    kwargs.setdefault("url", f"{CDN}/{track_id}.mp3")
    return BackgroundTrack(id=track_id, **kwargs)


def snapshot(scenes: List[Scene], **kwargs) -> ProjectSnapshot:
    kwargs.setdefault("project_id", "proj-1")
    return ProjectSnapshot(scenes=scenes, **kwargs)


def three_scene_project() -> ProjectSnapshot:
    """Image scene without narration, voiced comic scene, video scene still generating."""
    return snapshot([
        image_scene(1),
        scene(
            2,
            VisualMode.COMIC,
            visuals=[visual("comic-2", VisualKind.COMIC)],
            utterances=[
                Utterance(id="u-2", order=1, text="Second line", voice=clip("v-2", 1500)),
                Utterance(id="u-1", order=0, text="First line", voice=clip("v-1", 2000)),
            ],
        ),
        scene(
            3,
            VisualMode.VIDEO,
            visuals=[visual("vid-3", VisualKind.VIDEO, status=AssetStatus.GENERATING)],
        ),
    ])


def buildable_project(**kwargs) -> ProjectSnapshot:
    return snapshot([
        image_scene(1, narration_clips=[clip("n-1", 2500)]),
        scene(
            2,
            VisualMode.COMIC,
            visuals=[visual("comic-2", VisualKind.COMIC)],
            utterances=[
                Utterance(id="u-1", order=0, text="First line", voice=clip("v-1", 2000)),
                Utterance(id="u-2", order=1, text="Second line", voice=clip("v-2", 1500)),
            ],
        ),
        scene(
            3,
            VisualMode.VIDEO,
            visuals=[visual("vid-3", VisualKind.VIDEO, duration_ms=5000)],
            narration_clips=[clip("n-3", 4000)],
        ),
    ], **kwargs)


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRenderer(RenderClient):
    """In-memory render service; tests set ``states`` to drive polling."""

    def __init__(self) -> None:
        self.submitted: List[dict] = []
        self.states: Dict[str, RemoteRenderState] = {}
        self.fail_submit: Optional[RenderServiceError] = None

    def submit(self, spec: dict) -> str:
        if self.fail_submit is not None:
            raise self.fail_submit
        self.submitted.append(spec)
        remote_id = f"r-{len(self.submitted)}"
        self.states[remote_id] = RemoteRenderState(state=RemoteState.QUEUED)
        return remote_id

    def poll(self, remote_id: str) -> RemoteRenderState:
        return self.states[remote_id]

    def report(self, remote_id: str, state: RemoteState, **kwargs) -> None:
        self.states[remote_id] = RemoteRenderState(state=state, **kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()
