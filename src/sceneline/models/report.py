"""Preflight issues and reports."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class IssueCode(str, Enum):
    """Machine-readable preflight issue codes."""
    # Blocking
    NO_SCENES = "NO_SCENES"
    VISUAL_IMAGE_MISSING = "VISUAL_IMAGE_MISSING"
    VISUAL_COMIC_MISSING = "VISUAL_COMIC_MISSING"
    VISUAL_VIDEO_MISSING = "VISUAL_VIDEO_MISSING"
    VISUAL_ASSET_URL_INVALID = "VISUAL_ASSET_URL_INVALID"
    VISUAL_ASSET_URL_UNREACHABLE = "VISUAL_ASSET_URL_UNREACHABLE"
    VISUAL_CONFLICT_BOTH_PRESENT = "VISUAL_CONFLICT_BOTH_PRESENT"
    VISUAL_ACTIVE_DUPLICATE = "VISUAL_ACTIVE_DUPLICATE"
    AUDIO_ASSET_URL_INVALID = "AUDIO_ASSET_URL_INVALID"
    # Warnings
    NARRATION_AUDIO_MISSING = "NARRATION_AUDIO_MISSING"
    UTTERANCE_AUDIO_MISSING = "UTTERANCE_AUDIO_MISSING"
    BGM_MISSING = "BGM_MISSING"
    SFX_CUE_OUT_OF_RANGE = "SFX_CUE_OUT_OF_RANGE"


class Severity(str, Enum):
    """Whether an issue blocks the build."""
    ERROR = "error"
    WARNING = "warning"


class IssueCategory(str, Enum):
    """Where an issue comes from."""
    INPUT = "input"
    INTERNAL = "internal"
    REACHABILITY = "reachability"


class Issue(BaseModel):
    """A single preflight finding."""

    code: IssueCode
    severity: Severity = Field(default=Severity.ERROR)
    category: IssueCategory = Field(default=IssueCategory.INPUT)
    scene_idx: Optional[int] = Field(None, description="Ordinal of the offending scene")
    scene_id: Optional[str] = Field(None)
    message: str = Field(default="")
    hint: str = Field(default="", description="How to fix it")

    class Config:
        """Pydantic config."""
        frozen = True


class SceneTiming(BaseModel):
    """Placement of one scene on the timeline."""

    scene_id: str
    idx: int
    start_ms: int
    duration_ms: int
    source: str = Field(..., description="Which rule decided the duration")

    class Config:
        """Pydantic config."""
        frozen = True

    @property
    def end_ms(self) -> int:
        return self.start_ms + self.duration_ms


class PreflightReport(BaseModel):
    """Outcome of a preflight run."""

    project_id: str
    can_build: bool
    errors: List[Issue] = Field(default_factory=list)
    warnings: List[Issue] = Field(default_factory=list)
    timeline: List[SceneTiming] = Field(default_factory=list, description="Preview timings")
    total_duration_ms: int = Field(default=0)

    class Config:
        """Pydantic config."""
        frozen = True
