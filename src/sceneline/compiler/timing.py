"""Scene durations and timeline placement."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from ..models import ResolvedVisual, Scene, SceneTiming, VisualMode
from .resolver import is_usable_clip, resolve_narration

AUDIO_PADDING_MS = 500
TEXT_MS_PER_CHAR = 300
MIN_DURATION_MS = 2000
MAX_DURATION_MS = 600_000
DEFAULT_SCENE_DURATION_MS = 3000


class DurationSource(str, Enum):
    """Rule that decided a scene duration."""
    VIDEO = "video"
    VOICE = "voice"
    MANUAL = "manual"
    ESTIMATE = "estimate"
    DEFAULT = "default"


@dataclass(frozen=True)
class SceneDuration:
    duration_ms: int
    source: DurationSource


def estimate_from_text(text: str) -> Optional[int]:
    """Reading-time estimate for narration text, or None for empty text."""
    length = len(text.strip())
    if length == 0:
        return None
    return min(max(MIN_DURATION_MS, length * TEXT_MS_PER_CHAR), MAX_DURATION_MS)


def compute_scene_duration(scene: Scene, visual: Optional[ResolvedVisual] = None) -> SceneDuration:
    """Duration of one scene; the first applicable rule wins.

    1. video mode: the resolved clip's duration
    2. comic mode: sum of utterance voice clips + padding
    3. a usable narration clip: its duration + padding
    4. manual override (clamped)
    5. estimate from the narration text
    6. fixed default

    Voice and video never get truncated by a text estimate or a default.

    Args:
        scene: Scene to time.
        visual: The scene's resolved visual, if resolution succeeded.

    Returns:
        Duration in milliseconds and the rule that produced it.
    """
    if scene.visual_mode == VisualMode.VIDEO and visual is not None and visual.duration_ms:
        return SceneDuration(visual.duration_ms, DurationSource.VIDEO)

    if scene.visual_mode == VisualMode.COMIC:
        voiced = sum(
            u.voice.duration_ms for u in scene.utterances if is_usable_clip(u.voice)
        )
        if voiced > 0:
            return SceneDuration(voiced + AUDIO_PADDING_MS, DurationSource.VOICE)

    narration = resolve_narration(scene)
    if narration is not None:
        return SceneDuration(narration.duration_ms + AUDIO_PADDING_MS, DurationSource.VOICE)

    if scene.duration_override_ms:
        clamped = min(max(scene.duration_override_ms, MIN_DURATION_MS), MAX_DURATION_MS)
        return SceneDuration(clamped, DurationSource.MANUAL)

    text = scene.narration or "".join(u.text for u in scene.ordered_utterances())
    estimate = estimate_from_text(text)
    if estimate is not None:
        return SceneDuration(estimate, DurationSource.ESTIMATE)

    return SceneDuration(DEFAULT_SCENE_DURATION_MS, DurationSource.DEFAULT)


def layout(scenes: Sequence[Scene], durations: Sequence[SceneDuration]) -> List[SceneTiming]:
    """Place scenes back to back in declared order."""
    if len(scenes) != len(durations):
        raise ValueError("scenes and durations must have the same length")
    timings: List[SceneTiming] = []
    cursor = 0
    for scene, duration in zip(scenes, durations):
        timings.append(SceneTiming(
            scene_id=scene.id,
            idx=scene.idx,
            start_ms=cursor,
            duration_ms=duration.duration_ms,
            source=duration.source.value,
        ))
        cursor += duration.duration_ms
    return timings


def total_duration_ms(timings: Sequence[SceneTiming]) -> int:
    return sum(t.duration_ms for t in timings)
