"""Asset resolution: picks the one visual and the audio layers of each scene.

The declared visual mode is the only thing that decides which visual kind a
scene uses. Candidates are filtered to eligible ones (active, completed, with
a locator); an empty or ambiguous eligible set is reported, never papered
over with another kind or a default asset.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from ..errors import AssetResolutionError
from ..models import (
    AudioClip,
    BackgroundTrack,
    Issue,
    IssueCategory,
    IssueCode,
    ResolvedVisual,
    Scene,
    SoundEffectCue,
    Utterance,
    VisualAsset,
    VisualKind,
    VisualMode,
)
from ..models.render_spec import Motion
from .locators import to_absolute_url

logger = logging.getLogger(__name__)

MISSING_CODES = {
    VisualMode.IMAGE: IssueCode.VISUAL_IMAGE_MISSING,
    VisualMode.COMIC: IssueCode.VISUAL_COMIC_MISSING,
    VisualMode.VIDEO: IssueCode.VISUAL_VIDEO_MISSING,
}

MISSING_HINTS = {
    VisualMode.IMAGE: "Generate an image for this scene and adopt it, or switch the scene's visual mode.",
    VisualMode.COMIC: "Publish the comic panel for this scene, or switch the scene's visual mode.",
    VisualMode.VIDEO: "Wait for the video clip to finish generating (or regenerate it), or switch the scene to image mode.",
}

KEN_BURNS = Motion(type="zoom", start_scale=1.0, end_scale=1.05)


@dataclass(frozen=True)
class PlacedClip:
    """A voice clip positioned inside its scene."""

    clip: AudioClip
    start_ms: int
    utterance: Optional[Utterance] = None

    @property
    def end_ms(self) -> int:
        return self.start_ms + (self.clip.duration_ms or 0)


@dataclass(frozen=True)
class PlacedCue:
    """A sound effect clamped to its scene."""

    cue: SoundEffectCue
    start_ms: int
    end_ms: int


@dataclass
class ResolvedScene:
    """Everything the later stages need to know about one scene."""

    scene: Scene
    visual: Optional[ResolvedVisual] = None
    issue: Optional[Issue] = None
    voices: List[PlacedClip] = field(default_factory=list)
    bgm: Optional[BackgroundTrack] = None


def is_usable_clip(clip: Optional[AudioClip]) -> bool:
    """Eligible and with a known, positive duration."""
    return clip is not None and clip.is_eligible and bool(clip.duration_ms)


def eligible_visuals(scene: Scene, kind: VisualKind) -> List[VisualAsset]:
    """Eligible candidates of one kind, in candidate order."""
    return [v for v in scene.visuals if v.kind == kind and v.is_eligible]


def populated_kinds(scene: Scene) -> Set[VisualKind]:
    """Visual kinds that have at least one eligible candidate."""
    return {v.kind for v in scene.visuals if v.is_eligible}


def resolve_visual(scene: Scene, base_url: str = "") -> ResolvedVisual:
    """Select the visual for the scene's declared mode.

    Args:
        scene: Scene to resolve.
        base_url: Base for relative locators.

    Returns:
        The resolved visual.

    Raises:
        AssetResolutionError: If the declared mode has no eligible asset, or
            more than one.
    """
    mode = scene.visual_mode
    candidates = eligible_visuals(scene, mode.kind)

    if not candidates:
        raise AssetResolutionError(Issue(
            code=MISSING_CODES[mode],
            category=IssueCategory.INPUT,
            scene_idx=scene.idx,
            scene_id=scene.id,
            message=f"Scene {scene.idx}: no completed, active {mode.value} asset",
            hint=MISSING_HINTS[mode],
        ))

    if len(candidates) > 1:
        ids = ", ".join(v.id for v in candidates)
        raise AssetResolutionError(Issue(
            code=IssueCode.VISUAL_ACTIVE_DUPLICATE,
            category=IssueCategory.INTERNAL,
            scene_idx=scene.idx,
            scene_id=scene.id,
            message=f"Scene {scene.idx}: {len(candidates)} active {mode.value} assets ({ids})",
            hint="Internal problem: the asset activation state is inconsistent. Re-adopt one asset and retry.",
        ))

    asset = candidates[0]
    motion = KEN_BURNS if mode == VisualMode.IMAGE else Motion()
    return ResolvedVisual(
        scene_id=scene.id,
        kind=asset.kind,
        asset_id=asset.id,
        url=to_absolute_url(asset.url, base_url),
        duration_ms=asset.duration_ms if asset.kind == VisualKind.VIDEO else None,
        motion=motion,
    )


def resolve_narration(scene: Scene) -> Optional[AudioClip]:
    """The scene's narration clip; the first usable candidate wins."""
    for clip in scene.narration_clips:
        if is_usable_clip(clip):
            return clip
    return None


def resolve_voices(scene: Scene) -> List[PlacedClip]:
    """Voice clips laid out inside the scene.

    Comic scenes speak their utterances back to back in utterance order,
    skipping utterances without a usable clip. Other modes play the narration
    clip from the scene start.
    """
    if scene.visual_mode == VisualMode.COMIC:
        placed: List[PlacedClip] = []
        cursor = 0
        for utterance in scene.ordered_utterances():
            if not is_usable_clip(utterance.voice):
                continue
            placed.append(PlacedClip(clip=utterance.voice, start_ms=cursor, utterance=utterance))
            cursor += utterance.voice.duration_ms
        if placed:
            return placed

    narration = resolve_narration(scene)
    if narration is None:
        return []
    return [PlacedClip(clip=narration, start_ms=0)]


def resolve_scene_bgm(scene: Scene) -> Optional[BackgroundTrack]:
    """The scene-scoped track, if it is active."""
    if scene.bgm is not None and scene.bgm.is_active:
        return scene.bgm
    return None


def place_sfx(scene: Scene, duration_ms: int) -> List[PlacedCue]:
    """Active sound effects clamped to the scene.

    Cues starting at or after the scene end are dropped.
    """
    placed: List[PlacedCue] = []
    for cue in scene.sfx:
        if not cue.is_active or cue.start_ms >= duration_ms:
            continue
        if cue.end_ms is not None:
            end = cue.end_ms
        elif cue.duration_ms:
            end = cue.start_ms + cue.duration_ms
        else:
            end = duration_ms
        end = min(end, duration_ms)
        if end <= cue.start_ms:
            continue
        placed.append(PlacedCue(cue=cue, start_ms=cue.start_ms, end_ms=end))
    return placed


def resolve_scene(scene: Scene, base_url: str = "") -> ResolvedScene:
    """Resolve one scene without raising.

    A visual resolution failure is recorded on the result so that the caller
    can keep going and report every scene in one pass.
    """
    resolved = ResolvedScene(
        scene=scene,
        voices=resolve_voices(scene),
        bgm=resolve_scene_bgm(scene),
    )
    try:
        resolved.visual = resolve_visual(scene, base_url)
    except AssetResolutionError as e:
        logger.debug(f"Scene {scene.idx}: {e}")
        resolved.issue = e.issue
    return resolved
