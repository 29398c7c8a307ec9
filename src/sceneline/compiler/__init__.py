"""Scene timeline compilation: resolve, time, compose, validate, assemble."""

from .automation import compose_bgm_channel, compose_minimum, window_envelope
from .overlays import place_balloons, place_captions
from .preflight import validate
from .resolver import ResolvedScene, resolve_scene, resolve_visual
from .timeline import CompileResult, TimelineCompiler
from .timing import DurationSource, SceneDuration, compute_scene_duration, layout

__all__ = [
    "compose_bgm_channel",
    "compose_minimum",
    "window_envelope",
    "place_balloons",
    "place_captions",
    "validate",
    "ResolvedScene",
    "resolve_scene",
    "resolve_visual",
    "CompileResult",
    "TimelineCompiler",
    "DurationSource",
    "SceneDuration",
    "compute_scene_duration",
    "layout",
]
