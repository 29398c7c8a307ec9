"""Local media inspection."""

import logging
from pathlib import Path
from typing import Optional, TypeVar

from moviepy import AudioFileClip, VideoFileClip

from .models import AudioClip, ProjectSnapshot, Scene, SoundEffectCue, VisualAsset, VisualKind

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {".mp4", ".mov", ".webm", ".mkv", ".avi", ".m4v"}

_Asset = TypeVar("_Asset", AudioClip, VisualAsset, SoundEffectCue)


def measure_duration_ms(path: Path) -> int:
    """Read the duration of a local audio or video file.

    Args:
        path: Path to the media file.

    Returns:
        Duration in milliseconds.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    if not path.exists():
        raise FileNotFoundError(f"Media file not found: {path}")

    loader = VideoFileClip if path.suffix.lower() in VIDEO_EXTENSIONS else AudioFileClip
    clip = loader(str(path))
    try:
        return int(round(clip.duration * 1000))
    finally:
        clip.close()


def _local_path(url: str, root: Path) -> Optional[Path]:
    value = url.strip()
    if not value or value.startswith(("http://", "https://")):
        return None
    return root / value.lstrip("/")


def _with_duration(asset: _Asset, root: Path) -> _Asset:
    if asset.duration_ms or not asset.is_active:
        return asset
    path = _local_path(asset.url, root)
    if path is None:
        return asset
    try:
        duration = measure_duration_ms(path)
    except FileNotFoundError as e:
        logger.warning(f"{asset.id}: {e}")
        return asset
    logger.debug(f"{asset.id}: measured {duration} ms from {path}")
    return asset.model_copy(update={"duration_ms": duration})


def _fill_scene(scene: Scene, root: Path) -> Scene:
    visuals = [
        _with_duration(v, root) if v.kind == VisualKind.VIDEO else v
        for v in scene.visuals
    ]
    utterances = [
        u.model_copy(update={"voice": _with_duration(u.voice, root)}) if u.voice else u
        for u in scene.utterances
    ]
    return scene.model_copy(update={
        "visuals": visuals,
        "utterances": utterances,
        "narration_clips": [_with_duration(c, root) for c in scene.narration_clips],
        "sfx": [_with_duration(c, root) for c in scene.sfx],
    })


def fill_missing_durations(snapshot: ProjectSnapshot, root: Path) -> ProjectSnapshot:
    """Measure local clips that have no recorded duration.

    Remote locators are left untouched.

    Args:
        snapshot: Project snapshot.
        root: Directory that relative locators are resolved against.

    Returns:
        A new snapshot with measured durations filled in.
    """
    scenes = [_fill_scene(scene, root) for scene in snapshot.scenes]
    return snapshot.model_copy(update={"scenes": scenes})
