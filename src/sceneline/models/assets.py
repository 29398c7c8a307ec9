"""Asset records produced by the generation subsystems."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class AssetStatus(str, Enum):
    """Lifecycle status of a generated asset."""
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class VisualKind(str, Enum):
    """Kind of a visual candidate."""
    IMAGE = "image"
    COMIC = "comic"
    VIDEO = "video"


class VisualAsset(BaseModel):
    """One visual candidate for a scene."""

    id: str = Field(..., description="Asset identifier")
    kind: VisualKind = Field(..., description="Visual kind")
    url: str = Field(default="", description="Storage locator")
    is_active: bool = Field(default=False, description="Currently adopted candidate")
    status: AssetStatus = Field(default=AssetStatus.COMPLETED, description="Generation status")
    duration_ms: Optional[int] = Field(None, description="Clip duration (video only)", ge=0)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"

    @property
    def is_eligible(self) -> bool:
        """Active, completed and carrying a locator."""
        return (
            self.is_active
            and self.status == AssetStatus.COMPLETED
            and bool(self.url.strip())
        )


class AudioClip(BaseModel):
    """A narration, dialogue or voice clip."""

    id: str = Field(..., description="Clip identifier")
    url: str = Field(default="", description="Storage locator")
    duration_ms: Optional[int] = Field(None, description="Clip duration", ge=0)
    is_active: bool = Field(default=True, description="Currently adopted candidate")
    status: AssetStatus = Field(default=AssetStatus.COMPLETED, description="Generation status")

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"

    @property
    def is_eligible(self) -> bool:
        """Active, completed and carrying a locator."""
        return (
            self.is_active
            and self.status == AssetStatus.COMPLETED
            and bool(self.url.strip())
        )


class DuckingSettings(BaseModel):
    """How the project track drops under voices."""

    enabled: bool = Field(default=False)
    volume: float = Field(default=0.12, ge=0.0, le=1.0, description="Volume while voices play")
    attack_ms: int = Field(default=120, ge=0, description="Ramp-down time")
    release_ms: int = Field(default=220, ge=0, description="Ramp-up time")

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"


class BackgroundTrack(BaseModel):
    """Background music, either project-wide or scoped to one scene."""

    id: str = Field(..., description="Track identifier")
    url: str = Field(default="", description="Storage locator")
    volume: float = Field(default=0.25, ge=0.0, le=1.0, description="Base volume")
    loop: bool = Field(default=True)
    fade_in_ms: int = Field(
        default=800,
        ge=0,
        description="Ramp from silence at the window start, applied on top of the flat base volume",
    )
    fade_out_ms: int = Field(
        default=800,
        ge=0,
        description="Ramp to silence at the window end, applied on top of the flat base volume",
    )
    video_start_ms: int = Field(default=0, ge=0, description="Timeline position where the track starts")
    video_end_ms: Optional[int] = Field(None, ge=0, description="Timeline position where the track stops")
    audio_offset_ms: int = Field(default=0, ge=0, description="Offset into the audio file")
    ducking: Optional[DuckingSettings] = Field(None, description="Ducking under voices")
    is_active: bool = Field(default=True)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"


class SoundEffectCue(BaseModel):
    """A sound effect placed inside a scene."""

    id: str = Field(..., description="Cue identifier")
    name: str = Field(default="SFX")
    url: str = Field(default="", description="Storage locator")
    start_ms: int = Field(default=0, ge=0, description="Offset from the scene start")
    end_ms: Optional[int] = Field(None, ge=0, description="End offset within the scene")
    duration_ms: Optional[int] = Field(None, ge=0, description="Length of the audio file")
    volume: float = Field(default=0.8, ge=0.0, le=1.0)
    loop: bool = Field(default=False)
    fade_in_ms: int = Field(default=0, ge=0)
    fade_out_ms: int = Field(default=0, ge=0)
    is_active: bool = Field(default=True)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"
