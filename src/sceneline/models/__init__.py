"""Data models for the timeline compiler."""

from .assets import (
    AssetStatus,
    AudioClip,
    BackgroundTrack,
    DuckingSettings,
    SoundEffectCue,
    VisualAsset,
    VisualKind,
)
from .scene import (
    Balloon,
    BalloonPolicy,
    BalloonShape,
    Scene,
    TransitionKind,
    TransitionSettings,
    Utterance,
    UtteranceRole,
    VisualMode,
)
from .project import (
    AspectRatio,
    AudioSettings,
    AutomationKind,
    CaptionSettings,
    Codec,
    OutputSettings,
    ProjectSnapshot,
    ResolutionPreset,
    TimelineAutomationEntry,
)
from .report import Issue, IssueCategory, IssueCode, PreflightReport, SceneTiming, Severity
from .render_spec import (
    BgmChannel,
    CompiledScene,
    Envelope,
    Keyframe,
    RenderSpec,
    ResolvedVisual,
    SceneBgmLayer,
    SfxLayer,
    VoiceLayer,
)
from .job import JobStatus, RenderJob, transition

__all__ = [
    "AssetStatus",
    "AudioClip",
    "BackgroundTrack",
    "DuckingSettings",
    "SoundEffectCue",
    "VisualAsset",
    "VisualKind",
    "Balloon",
    "BalloonPolicy",
    "BalloonShape",
    "Scene",
    "TransitionKind",
    "TransitionSettings",
    "Utterance",
    "UtteranceRole",
    "VisualMode",
    "AspectRatio",
    "AudioSettings",
    "AutomationKind",
    "CaptionSettings",
    "Codec",
    "OutputSettings",
    "ProjectSnapshot",
    "ResolutionPreset",
    "TimelineAutomationEntry",
    "Issue",
    "IssueCategory",
    "IssueCode",
    "PreflightReport",
    "SceneTiming",
    "Severity",
    "BgmChannel",
    "CompiledScene",
    "Envelope",
    "Keyframe",
    "RenderSpec",
    "ResolvedVisual",
    "SceneBgmLayer",
    "SfxLayer",
    "VoiceLayer",
    "JobStatus",
    "RenderJob",
    "transition",
]
