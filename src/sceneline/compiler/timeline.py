"""Timeline compiler: turns a project snapshot into a render specification."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import config
from ..errors import BuildBlockedError
from ..models import (
    AspectRatio,
    CompiledScene,
    PreflightReport,
    ProjectSnapshot,
    RenderSpec,
    ResolutionPreset,
    SceneTiming,
    VisualKind,
)
from ..models.render_spec import (
    CaptionSpec,
    GlobalAudio,
    OutputSpec,
    ProjectRef,
    RenderSummary,
    SceneAudio,
)
from .automation import build_scene_audio, compose_bgm_channel, voice_windows
from .locators import is_valid_locator
from .overlays import place_balloons, place_captions, scene_telop, scene_transition
from .preflight import validate
from .resolver import ResolvedScene, place_sfx, resolve_scene
from .timing import compute_scene_duration, layout

logger = logging.getLogger(__name__)

RESOLUTION_MAP: Dict[Tuple[ResolutionPreset, AspectRatio], Tuple[int, int]] = {
    (ResolutionPreset.FULL_HD, AspectRatio.PORTRAIT): (1080, 1920),
    (ResolutionPreset.FULL_HD, AspectRatio.LANDSCAPE): (1920, 1080),
    (ResolutionPreset.FULL_HD, AspectRatio.SQUARE): (1080, 1080),
    (ResolutionPreset.HD, AspectRatio.PORTRAIT): (720, 1280),
    (ResolutionPreset.HD, AspectRatio.LANDSCAPE): (1280, 720),
    (ResolutionPreset.HD, AspectRatio.SQUARE): (720, 720),
}


@dataclass
class CompileResult:
    """Preflight report plus the render specification when the build may proceed."""

    report: PreflightReport
    spec: Optional[RenderSpec] = None

    @property
    def can_build(self) -> bool:
        return self.report.can_build


class TimelineCompiler:
    """Runs resolve, timing, audio composition and preflight over a snapshot.

    The compiler is pure apart from optional reachability probing: it never
    mutates the snapshot and never substitutes a default for a missing asset.
    """

    def __init__(self, asset_base_url: Optional[str] = None, prober=None) -> None:
        """Initialize the compiler.

        Args:
            asset_base_url: Base for relative storage locators. Defaults to
                SCENELINE_ASSET_BASE_URL.
            prober: Object with ``probe_all(urls)``; created on first use when
                reachability is checked.
        """
        self.asset_base_url = config.asset_base_url if asset_base_url is None else asset_base_url
        self._prober = prober

    def _resolve(self, snapshot: ProjectSnapshot) -> Tuple[List[ResolvedScene], List[SceneTiming]]:
        resolved = [resolve_scene(scene, self.asset_base_url) for scene in snapshot.scenes]
        durations = [compute_scene_duration(r.scene, r.visual) for r in resolved]
        timings = layout(snapshot.scenes, durations)
        for timing in timings:
            logger.debug(
                f"Scene {timing.idx}: {timing.start_ms}-{timing.end_ms} ms ({timing.source})"
            )
        return resolved, timings

    def _unreachable(self, resolved: Sequence[ResolvedScene]) -> Dict[str, str]:
        if self._prober is None:
            from ..services.probe import UrlProber
            self._prober = UrlProber()
        urls = [
            r.visual.url for r in resolved
            if r.visual is not None and is_valid_locator(r.visual.url)
        ]
        results = self._prober.probe_all(urls)
        return {url: result.reason for url, result in results.items() if not result.ok}

    def _validate(
        self,
        snapshot: ProjectSnapshot,
        resolved: Sequence[ResolvedScene],
        timings: Sequence[SceneTiming],
        check_reachability: bool,
    ) -> PreflightReport:
        unreachable = self._unreachable(resolved) if check_reachability else None
        report = validate(snapshot, resolved, timings, self.asset_base_url, unreachable)
        if not report.can_build:
            codes = ", ".join(issue.code.value for issue in report.errors)
            logger.warning(f"Build blocked for {snapshot.project_id}: {codes}")
        return report

    def preflight(self, snapshot: ProjectSnapshot, check_reachability: bool = False) -> PreflightReport:
        """Dry-run validation; safe to call repeatedly.

        Args:
            snapshot: Project snapshot.
            check_reachability: Probe visual locators over HTTP.

        Returns:
            The preflight report with preview timings.
        """
        resolved, timings = self._resolve(snapshot)
        return self._validate(snapshot, resolved, timings, check_reachability)

    def compile(self, snapshot: ProjectSnapshot, check_reachability: bool = False) -> CompileResult:
        """Compile a snapshot; the render document is only produced when nothing blocks."""
        resolved, timings = self._resolve(snapshot)
        audio = self._compose(snapshot, resolved, timings)
        report = self._validate(snapshot, resolved, timings, check_reachability)
        if not report.can_build:
            return CompileResult(report=report)
        spec = self._assemble(snapshot, resolved, timings, audio, report)
        logger.info(
            f"Compiled {snapshot.project_id}: {len(spec.scenes)} scenes, "
            f"{spec.summary.total_duration_ms} ms, hash {spec.content_hash[:12]}"
        )
        return CompileResult(report=report, spec=spec)

    def build_spec(self, snapshot: ProjectSnapshot, check_reachability: bool = False) -> RenderSpec:
        """Compile a snapshot or fail.

        Raises:
            BuildBlockedError: If preflight found blocking errors.
        """
        result = self.compile(snapshot, check_reachability)
        if result.spec is None:
            raise BuildBlockedError(result.report)
        return result.spec

    def _compose(
        self,
        snapshot: ProjectSnapshot,
        resolved: Sequence[ResolvedScene],
        timings: Sequence[SceneTiming],
    ) -> Tuple[List[SceneAudio], GlobalAudio]:
        base_url = self.asset_base_url
        scene_audio = [
            build_scene_audio(
                r.voices,
                r.bgm,
                place_sfx(r.scene, timing.duration_ms),
                timing.duration_ms,
                snapshot.audio.narration_volume,
                base_url,
            )
            for r, timing in zip(resolved, timings)
        ]

        track = snapshot.bgm
        if track is None or not track.is_active:
            return scene_audio, GlobalAudio()

        total = sum(t.duration_ms for t in timings)
        overrides = [(t.start_ms, t.end_ms) for r, t in zip(resolved, timings) if r.bgm is not None]
        windows = [w for r, t in zip(resolved, timings) for w in voice_windows(t, r.voices)]
        channel = compose_bgm_channel(
            track,
            total,
            scene_bgm_intervals=overrides,
            entries=snapshot.automation,
            voice_windows=windows,
            base_url=base_url,
        )
        return scene_audio, GlobalAudio(bgm=channel)

    def _assemble(
        self,
        snapshot: ProjectSnapshot,
        resolved: Sequence[ResolvedScene],
        timings: Sequence[SceneTiming],
        audio: Tuple[List[SceneAudio], GlobalAudio],
        report: PreflightReport,
    ) -> RenderSpec:
        scene_audio, global_audio = audio
        scenes = [
            CompiledScene(
                scene_id=r.scene.id,
                idx=r.scene.idx,
                title=r.scene.title,
                narration=r.scene.narration,
                start_ms=timing.start_ms,
                duration_ms=timing.duration_ms,
                duration_source=timing.source,
                visual=r.visual,
                audio=layers,
                balloons=place_balloons(r.scene, r.voices, timing.duration_ms),
                captions=place_captions(r.voices, snapshot.captions),
                telop=scene_telop(r.scene, snapshot.captions),
                transition=scene_transition(r.scene, snapshot.output.transition),
            )
            for r, timing, layers in zip(resolved, timings, scene_audio)
        ]

        output = snapshot.output
        width, height = RESOLUTION_MAP[(output.resolution, output.aspect_ratio)]
        has_audio = global_audio.bgm is not None or any(
            layers.voices or layers.bgm is not None or layers.sfx for layers in scene_audio
        )
        summary = RenderSummary(
            total_scenes=len(scenes),
            total_duration_ms=report.total_duration_ms,
            has_audio=has_audio,
            has_video_clips=any(s.visual.kind == VisualKind.VIDEO for s in scenes),
            scenes_with_voices=sum(1 for s in scenes if s.audio.voices),
        )

        spec = RenderSpec(
            project=ProjectRef(id=snapshot.project_id, title=snapshot.title),
            output=OutputSpec(
                aspect_ratio=output.aspect_ratio.value,
                width=width,
                height=height,
                fps=output.fps,
                codec=output.codec.value,
            ),
            scenes=scenes,
            audio=global_audio,
            captions=CaptionSpec(enabled=snapshot.captions.enabled, telop=snapshot.captions.telop),
            summary=summary,
        )
        return spec.with_hash()
