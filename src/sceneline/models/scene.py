"""Scene data model."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from .assets import AudioClip, BackgroundTrack, SoundEffectCue, VisualAsset, VisualKind


class VisualMode(str, Enum):
    """Declared visual mode of a scene."""
    IMAGE = "image"
    COMIC = "comic"
    VIDEO = "video"

    @property
    def kind(self) -> VisualKind:
        """Visual kind eligible for this mode."""
        return VisualKind(self.value)


class UtteranceRole(str, Enum):
    """Who speaks an utterance."""
    NARRATION = "narration"
    DIALOGUE = "dialogue"


class Utterance(BaseModel):
    """One spoken part of a scene."""

    id: str = Field(..., description="Utterance identifier")
    order: int = Field(..., description="Position inside the scene", ge=0)
    role: UtteranceRole = Field(default=UtteranceRole.NARRATION)
    character_key: Optional[str] = Field(None, description="Speaking character")
    text: str = Field(default="")
    voice: Optional[AudioClip] = Field(None, description="Voice clip (comic mode)")

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"


class TransitionKind(str, Enum):
    """Transition into a scene."""
    NONE = "none"
    FADE = "fade"
    SLIDE = "slide"
    WIPE = "wipe"


class TransitionSettings(BaseModel):
    """How a scene is entered from the previous one."""

    kind: TransitionKind = Field(default=TransitionKind.FADE)
    duration_ms: int = Field(default=300, ge=0)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"


class BalloonPolicy(str, Enum):
    """When a speech balloon is shown."""
    ALWAYS_ON = "always_on"
    VOICE_WINDOW = "voice_window"
    MANUAL_WINDOW = "manual_window"


class BalloonShape(str, Enum):
    ROUND = "round"
    SQUARE = "square"
    THOUGHT = "thought"
    SHOUT = "shout"
    CAPTION = "caption"


class Balloon(BaseModel):
    """A comic speech balloon, usually tied to one utterance.

    Position and size are normalized to the frame (0-1).
    """

    id: str = Field(..., description="Balloon identifier")
    utterance_id: Optional[str] = Field(None, description="Utterance the balloon speaks")
    text: Optional[str] = Field(None, description="Overrides the utterance text")
    display_policy: BalloonPolicy = Field(default=BalloonPolicy.VOICE_WINDOW)
    start_ms: Optional[int] = Field(None, ge=0, description="Manual window start within the scene")
    end_ms: Optional[int] = Field(None, ge=0, description="Manual window end within the scene")
    x: float = Field(default=0.5, ge=0.0, le=1.0)
    y: float = Field(default=0.2, ge=0.0, le=1.0)
    width: float = Field(default=0.4, gt=0.0, le=1.0)
    height: float = Field(default=0.2, gt=0.0, le=1.0)
    shape: BalloonShape = Field(default=BalloonShape.ROUND)
    z_index: int = Field(default=0)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"


class Scene(BaseModel):
    """Represents a single scene in the video."""

    id: str = Field(..., description="Unique scene identifier")
    idx: int = Field(..., description="1-based position in the project", ge=1)
    title: str = Field(default="")
    role: str = Field(default="main_point")
    visual_mode: VisualMode = Field(default=VisualMode.IMAGE, description="Declared visual mode")
    narration: str = Field(default="", description="Narration text")
    duration_override_ms: Optional[int] = Field(None, description="Manual duration", ge=0)
    utterances: List[Utterance] = Field(default_factory=list)
    visuals: List[VisualAsset] = Field(default_factory=list, description="Visual candidates")
    narration_clips: List[AudioClip] = Field(default_factory=list, description="Narration candidates")
    bgm: Optional[BackgroundTrack] = Field(None, description="Scene-scoped background track")
    sfx: List[SoundEffectCue] = Field(default_factory=list)
    balloons: List[Balloon] = Field(default_factory=list, description="Speech balloons")
    telop_text: Optional[str] = Field(None, description="On-screen text; defaults to the narration")
    transition: Optional[TransitionSettings] = Field(None, description="Overrides the project transition")

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"

    def ordered_utterances(self) -> List[Utterance]:
        """Utterances in speaking order."""
        return sorted(self.utterances, key=lambda u: (u.order, u.id))
