"""Preflight validation: decides whether a project can be built.

Every check runs on every scene; issues are collected, never raised. Errors
and warnings come out in a fixed order (project-level first, then by scene
ordinal, then by check) so that repeated runs over the same snapshot return
identical reports.
"""

import logging
from typing import List, Mapping, Optional, Sequence

from ..models import (
    Issue,
    IssueCategory,
    IssueCode,
    PreflightReport,
    ProjectSnapshot,
    Scene,
    SceneTiming,
    Severity,
    VisualMode,
)
from .locators import is_valid_locator, to_absolute_url
from .resolver import ResolvedScene, is_usable_clip, populated_kinds, resolve_narration
from .timing import total_duration_ms

logger = logging.getLogger(__name__)

HINTS = {
    IssueCode.NO_SCENES: "Add at least one scene to the project.",
    IssueCode.VISUAL_ASSET_URL_INVALID: "Regenerate or re-upload the visual; its storage locator is not a valid http(s) URL.",
    IssueCode.VISUAL_ASSET_URL_UNREACHABLE: "The visual could not be fetched. Check storage permissions or regenerate it.",
    IssueCode.VISUAL_CONFLICT_BOTH_PRESENT: "Internal problem: assets of another visual kind are also active. Deactivate them and retry.",
    IssueCode.AUDIO_ASSET_URL_INVALID: "Regenerate or re-upload the audio; its storage locator is not a valid http(s) URL.",
    IssueCode.NARRATION_AUDIO_MISSING: "Generate narration audio; the scene duration falls back to a text estimate.",
    IssueCode.UTTERANCE_AUDIO_MISSING: "Generate a voice clip for this utterance; it will be silent in the render.",
    IssueCode.BGM_MISSING: "Select or generate a background track, or turn background music off.",
    IssueCode.SFX_CUE_OUT_OF_RANGE: "Move the sound effect inside the scene; it is left out of the render.",
}


def _issue(
    code: IssueCode,
    message: str,
    scene: Optional[Scene] = None,
    severity: Severity = Severity.ERROR,
    category: IssueCategory = IssueCategory.INPUT,
) -> Issue:
    return Issue(
        code=code,
        severity=severity,
        category=category,
        scene_idx=scene.idx if scene else None,
        scene_id=scene.id if scene else None,
        message=message,
        hint=HINTS.get(code, ""),
    )


def _check_project(snapshot: ProjectSnapshot, base_url: str) -> List[Issue]:
    issues: List[Issue] = []
    if not snapshot.scenes:
        issues.append(_issue(IssueCode.NO_SCENES, "Project has no scenes"))

    track = snapshot.bgm
    if track is not None and track.is_active:
        if not is_valid_locator(to_absolute_url(track.url, base_url)):
            issues.append(_issue(
                IssueCode.AUDIO_ASSET_URL_INVALID,
                f"Project background track {track.id} has an invalid locator: {track.url!r}",
            ))
    elif snapshot.audio.bgm_requested:
        issues.append(_issue(
            IssueCode.BGM_MISSING,
            "Background music was requested but no active project track is set",
            severity=Severity.WARNING,
        ))
    return issues


def _check_visual(
    resolved: ResolvedScene,
    unreachable: Optional[Mapping[str, str]],
) -> List[Issue]:
    scene = resolved.scene
    if resolved.issue is not None:
        return [resolved.issue]

    issues: List[Issue] = []
    visual = resolved.visual
    if not is_valid_locator(visual.url):
        issues.append(_issue(
            IssueCode.VISUAL_ASSET_URL_INVALID,
            f"Scene {scene.idx}: visual {visual.asset_id} has an invalid locator: {visual.url!r}",
            scene,
        ))
    elif unreachable is not None and visual.url in unreachable:
        issues.append(_issue(
            IssueCode.VISUAL_ASSET_URL_UNREACHABLE,
            f"Scene {scene.idx}: visual {visual.asset_id} is unreachable ({unreachable[visual.url]})",
            scene,
            category=IssueCategory.REACHABILITY,
        ))

    others = sorted(k.value for k in populated_kinds(scene) if k != visual.kind)
    if others:
        issues.append(_issue(
            IssueCode.VISUAL_CONFLICT_BOTH_PRESENT,
            f"Scene {scene.idx}: declared {scene.visual_mode.value} but active {', '.join(others)} assets also exist",
            scene,
            category=IssueCategory.INTERNAL,
        ))
    return issues


def _check_audio(resolved: ResolvedScene, base_url: str) -> List[Issue]:
    scene = resolved.scene
    layers = [(placed.clip.id, placed.clip.url) for placed in resolved.voices]
    if resolved.bgm is not None:
        layers.append((resolved.bgm.id, resolved.bgm.url))
    layers.extend((cue.id, cue.url) for cue in scene.sfx if cue.is_active)

    return [
        _issue(
            IssueCode.AUDIO_ASSET_URL_INVALID,
            f"Scene {scene.idx}: audio {layer_id} has an invalid locator: {url!r}",
            scene,
        )
        for layer_id, url in layers
        if not is_valid_locator(to_absolute_url(url, base_url))
    ]


def _check_voices(scene: Scene) -> List[Issue]:
    issues: List[Issue] = []
    if scene.visual_mode == VisualMode.COMIC and scene.utterances:
        for utterance in scene.ordered_utterances():
            if not is_usable_clip(utterance.voice):
                issues.append(_issue(
                    IssueCode.UTTERANCE_AUDIO_MISSING,
                    f"Scene {scene.idx}: utterance {utterance.id} has no voice clip",
                    scene,
                    severity=Severity.WARNING,
                ))
        return issues

    if resolve_narration(scene) is None:
        issues.append(_issue(
            IssueCode.NARRATION_AUDIO_MISSING,
            f"Scene {scene.idx}: no narration audio",
            scene,
            severity=Severity.WARNING,
        ))
    return issues


def _check_sfx(scene: Scene, timing: SceneTiming) -> List[Issue]:
    return [
        _issue(
            IssueCode.SFX_CUE_OUT_OF_RANGE,
            f"Scene {scene.idx}: sound effect {cue.id} starts at {cue.start_ms} ms, "
            f"after the scene ends ({timing.duration_ms} ms)",
            scene,
            severity=Severity.WARNING,
        )
        for cue in scene.sfx
        if cue.is_active and cue.start_ms >= timing.duration_ms
    ]


def validate(
    snapshot: ProjectSnapshot,
    resolved_scenes: Sequence[ResolvedScene],
    timings: Sequence[SceneTiming],
    base_url: str = "",
    unreachable: Optional[Mapping[str, str]] = None,
) -> PreflightReport:
    """Run every preflight check over a resolved and timed project.

    Args:
        snapshot: The project snapshot.
        resolved_scenes: Resolver output, one per scene, in scene order.
        timings: Timeline placement, one per scene, in scene order.
        base_url: Base for relative audio locators.
        unreachable: Probed locators that failed, mapped to the failure
            reason. None when reachability was not checked.

    Returns:
        The preflight report; ``can_build`` is false if any error was found.
    """
    issues = _check_project(snapshot, base_url)
    for resolved, timing in zip(resolved_scenes, timings):
        issues.extend(_check_visual(resolved, unreachable))
        issues.extend(_check_audio(resolved, base_url))
        issues.extend(_check_voices(resolved.scene))
        issues.extend(_check_sfx(resolved.scene, timing))

    errors = [i for i in issues if i.severity == Severity.ERROR]
    warnings = [i for i in issues if i.severity == Severity.WARNING]
    report = PreflightReport(
        project_id=snapshot.project_id,
        can_build=not errors,
        errors=errors,
        warnings=warnings,
        timeline=list(timings),
        total_duration_ms=total_duration_ms(timings),
    )
    logger.info(
        f"Preflight {snapshot.project_id}: can_build={report.can_build}, "
        f"{len(errors)} error(s), {len(warnings)} warning(s)"
    )
    return report
