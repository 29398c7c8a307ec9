"""Project snapshot consumed by the timeline compiler."""

from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator
import yaml

from .assets import BackgroundTrack
from .scene import Scene, TransitionSettings


class AspectRatio(str, Enum):
    """Output aspect ratio."""
    PORTRAIT = "9:16"
    LANDSCAPE = "16:9"
    SQUARE = "1:1"


class ResolutionPreset(str, Enum):
    """Output resolution preset."""
    HD = "720p"
    FULL_HD = "1080p"


class Codec(str, Enum):
    """Output video codec."""
    H264 = "h264"
    H265 = "h265"


class AutomationKind(str, Enum):
    """Kind of a timeline automation entry."""
    DUCK = "duck"
    SET_VOLUME = "set_volume"


class OutputSettings(BaseModel):
    """Global output parameters."""

    aspect_ratio: AspectRatio = Field(default=AspectRatio.PORTRAIT)
    resolution: ResolutionPreset = Field(default=ResolutionPreset.FULL_HD)
    fps: int = Field(default=30, gt=0, le=120)
    codec: Codec = Field(default=Codec.H264)
    transition: TransitionSettings = Field(
        default_factory=TransitionSettings, description="Default transition between scenes"
    )

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"


class AudioSettings(BaseModel):
    """Project-level audio defaults."""

    bgm_requested: bool = Field(default=False, description="Warn when no project BGM is active")
    narration_volume: float = Field(default=1.0, ge=0.0, le=1.0)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"


class CaptionSettings(BaseModel):
    """Caption and telop rendering switches."""

    enabled: bool = Field(default=False, description="Subtitles synced to voice clips")
    telop: bool = Field(default=False, description="Per-scene on-screen text")

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"


class TimelineAutomationEntry(BaseModel):
    """A user-authored volume adjustment on the compiled timeline."""

    id: str = Field(..., description="Entry identifier")
    kind: AutomationKind = Field(default=AutomationKind.DUCK)
    start_ms: int = Field(..., ge=0, description="Window start on the absolute timeline")
    end_ms: int = Field(..., ge=0, description="Window end on the absolute timeline")
    volume: float = Field(..., ge=0.0, le=1.0, description="Target volume")
    fade_in_ms: int = Field(default=0, ge=0)
    fade_out_ms: int = Field(default=0, ge=0)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"

    @model_validator(mode="after")
    def _check_window(self) -> "TimelineAutomationEntry":
        if self.end_ms <= self.start_ms:
            raise ValueError(
                f"automation entry {self.id}: end_ms must be greater than start_ms"
            )
        return self


class ProjectSnapshot(BaseModel):
    """Read-only view of a project taken once per build request."""

    project_id: str = Field(..., description="Project identifier")
    title: str = Field(default="")
    scenes: List[Scene] = Field(default_factory=list)
    bgm: Optional[BackgroundTrack] = Field(None, description="Project-wide background track")
    automation: List[TimelineAutomationEntry] = Field(default_factory=list)
    output: OutputSettings = Field(default_factory=OutputSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    captions: CaptionSettings = Field(default_factory=CaptionSettings)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"

    @model_validator(mode="after")
    def _check_scene_order(self) -> "ProjectSnapshot":
        ordinals = [scene.idx for scene in self.scenes]
        if ordinals != list(range(1, len(self.scenes) + 1)):
            raise ValueError(
                f"scene ordinals must be 1..{len(self.scenes)} in order, got {ordinals}"
            )
        ids = [scene.id for scene in self.scenes]
        if len(set(ids)) != len(ids):
            raise ValueError("scene ids must be unique")
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> "ProjectSnapshot":
        """Load a snapshot from a YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save the snapshot to a YAML file."""
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)
