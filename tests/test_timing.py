from __future__ import annotations

from conftest import clip, image_scene, scene, visual
from sceneline.compiler.resolver import resolve_visual
from sceneline.compiler.timing import (
    DEFAULT_SCENE_DURATION_MS,
    DurationSource,
    SceneDuration,
    compute_scene_duration,
    estimate_from_text,
    layout,
    total_duration_ms,
)
from sceneline.models import Utterance, VisualKind, VisualMode


def test_video_duration_beats_manual_override():
    s = scene(
        1,
        VisualMode.VIDEO,
        visuals=[visual("vid", VisualKind.VIDEO, duration_ms=5000)],
        duration_override_ms=9999,
    )
    result = compute_scene_duration(s, resolve_visual(s))
    assert result == SceneDuration(5000, DurationSource.VIDEO)


def test_manual_override_beats_text_estimate():
    narration = "x" * 20
    assert estimate_from_text(narration) == 6000
    s = image_scene(1, narration=narration, duration_override_ms=4000)
    assert compute_scene_duration(s) == SceneDuration(4000, DurationSource.MANUAL)


def test_comic_voices_are_summed_with_padding():
    s = scene(2, VisualMode.COMIC, duration_override_ms=9000, utterances=[
        Utterance(id="a", order=0, voice=clip("va", 2000)),
        Utterance(id="b", order=1, voice=clip("vb", 1500)),
    ])
    assert compute_scene_duration(s) == SceneDuration(4000, DurationSource.VOICE)


def test_narration_clip_outranks_override():
    s = image_scene(1, narration_clips=[clip("n", 2500)], duration_override_ms=10000)
    assert compute_scene_duration(s) == SceneDuration(3000, DurationSource.VOICE)


def test_override_is_clamped():
    assert compute_scene_duration(image_scene(1, duration_override_ms=500)).duration_ms == 2000
    assert compute_scene_duration(image_scene(1, duration_override_ms=900_000)).duration_ms == 600_000


def test_estimate_has_a_floor_and_a_cap():
    assert estimate_from_text("  ") is None
    assert estimate_from_text("Hi") == 2000
    assert estimate_from_text("x" * 5000) == 600_000


def test_comic_text_estimate_uses_utterances():
    s = scene(1, VisualMode.COMIC, utterances=[
        Utterance(id="a", order=0, text="x" * 10),
        Utterance(id="b", order=1, text="y" * 10),
    ])
    assert compute_scene_duration(s) == SceneDuration(6000, DurationSource.ESTIMATE)


def test_default_when_nothing_else_applies():
    result = compute_scene_duration(image_scene(1))
    assert result == SceneDuration(DEFAULT_SCENE_DURATION_MS, DurationSource.DEFAULT)


def test_video_without_clip_falls_through():
    s = scene(1, VisualMode.VIDEO, narration="x" * 10)
    assert compute_scene_duration(s, None) == SceneDuration(3000, DurationSource.ESTIMATE)


def test_layout_is_back_to_back():
    scenes = [image_scene(i) for i in (1, 2, 3)]
    durations = [
        SceneDuration(3000, DurationSource.DEFAULT),
        SceneDuration(4000, DurationSource.VOICE),
        SceneDuration(2500, DurationSource.MANUAL),
    ]
    timings = layout(scenes, durations)
    assert [t.start_ms for t in timings] == [0, 3000, 7000]
    for current, following in zip(timings, timings[1:]):
        assert current.end_ms == following.start_ms
    assert timings[1].source == "voice"
    assert total_duration_ms(timings) == 9500
