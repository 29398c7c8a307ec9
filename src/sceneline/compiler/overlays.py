"""Scene overlays: speech balloons, captions, telop and transitions.

Balloons and captions follow the voice placement of their utterance, so a
balloon appears exactly while its line is spoken.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import CaptionSettings, Scene
from ..models.render_spec import BalloonLayer, CaptionLayer, TelopSpec, TransitionSpec
from ..models.scene import Balloon, BalloonPolicy, TransitionSettings
from .resolver import PlacedClip

logger = logging.getLogger(__name__)


def _spoken(voices: Sequence[PlacedClip]) -> Dict[str, PlacedClip]:
    return {placed.utterance.id: placed for placed in voices if placed.utterance is not None}


def balloon_window(
    balloon: Balloon,
    spoken: Dict[str, PlacedClip],
    duration_ms: int,
) -> Tuple[int, int]:
    """Scene-relative span of a balloon.

    A voice-window balloon whose utterance has no placed voice is shown for
    the whole scene. Manual windows are cut to the scene.
    """
    if balloon.display_policy == BalloonPolicy.ALWAYS_ON:
        return 0, duration_ms
    if balloon.display_policy == BalloonPolicy.MANUAL_WINDOW:
        start = 0 if balloon.start_ms is None else balloon.start_ms
        end = duration_ms if balloon.end_ms is None else balloon.end_ms
        return min(start, duration_ms), min(end, duration_ms)

    placed = spoken.get(balloon.utterance_id) if balloon.utterance_id else None
    if placed is None:
        logger.warning(
            f"Balloon {balloon.id}: no voice for utterance {balloon.utterance_id}; "
            f"showing it for the whole scene"
        )
        return 0, duration_ms
    return placed.start_ms, placed.end_ms


def place_balloons(
    scene: Scene,
    voices: Sequence[PlacedClip],
    duration_ms: int,
) -> List[BalloonLayer]:
    """Balloon layers of a scene; balloons with an empty window are dropped."""
    spoken = _spoken(voices)
    utterances = {u.id: u for u in scene.utterances}
    layers: List[BalloonLayer] = []
    for balloon in scene.balloons:
        start, end = balloon_window(balloon, spoken, duration_ms)
        if end <= start:
            logger.warning(f"Balloon {balloon.id}: empty window {start}-{end} ms, skipped")
            continue
        text = balloon.text
        if text is None:
            utterance = utterances.get(balloon.utterance_id) if balloon.utterance_id else None
            text = utterance.text if utterance is not None else ""
        layers.append(BalloonLayer(
            id=f"balloon-{balloon.id}",
            utterance_id=balloon.utterance_id,
            text=text,
            start_ms=start,
            end_ms=end,
            display_policy=balloon.display_policy.value,
            shape=balloon.shape.value,
            x=balloon.x,
            y=balloon.y,
            width=balloon.width,
            height=balloon.height,
            z_index=balloon.z_index,
        ))
    return sorted(layers, key=lambda layer: (layer.start_ms, layer.z_index, layer.id))


def place_captions(voices: Sequence[PlacedClip], settings: CaptionSettings) -> List[CaptionLayer]:
    """One caption per voiced utterance with text, while its clip plays."""
    if not settings.enabled:
        return []
    return [
        CaptionLayer(
            id=f"caption-{placed.utterance.id}",
            utterance_id=placed.utterance.id,
            text=placed.utterance.text,
            start_ms=placed.start_ms,
            end_ms=placed.end_ms,
        )
        for placed in voices
        if placed.utterance is not None and placed.utterance.text and placed.end_ms > placed.start_ms
    ]


def scene_telop(scene: Scene, settings: CaptionSettings) -> TelopSpec:
    if not settings.telop:
        return TelopSpec()
    text: Optional[str] = scene.telop_text if scene.telop_text is not None else scene.narration
    return TelopSpec(enabled=bool(text), text=text or None)


def scene_transition(scene: Scene, default: TransitionSettings) -> TransitionSpec:
    """The scene's own transition, or the project default."""
    settings = scene.transition or default
    return TransitionSpec(kind=settings.kind.value, duration_ms=settings.duration_ms)
