"""
REELCUT Data Models

Shared data models (pydantic based)
- Scene: one narrated unit of the script
- RenderSettings: output/render configuration bag
- Job: one video generation request and its lifecycle
- Script: stored script for the CRUD collaborator
- Stage artifacts: transient files handed between pipeline stages
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# "es" or "es-ES"; anything else in `voice` is a provider voice id
LOCALE_PATTERN = re.compile(r"^[a-z]{2}(-[A-Z]{2})?$")


class ImageGenerationMethod(str, Enum):
    """Image Stage strategy"""
    PLACEHOLDER = "placeholder"
    STOCK_PHOTO = "stockPhoto"
    AI_GENERATED = "aiGenerated"


class JobState(str, Enum):
    """Job lifecycle state"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class Scene(BaseModel):
    """
    One narrated scene.

    Immutable once constructed; a job keeps the scenes it was submitted with.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    narration: str = Field(
        ...,
        validation_alias=AliasChoices("narration", "text", "narrationText"),
        description="Narration text spoken over the scene",
    )
    visual_prompt: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("visual_prompt", "visualPrompt", "imagePrompt", "image_prompt"),
        description="Image description (defaults to the narration)",
    )
    duration_hint: float = Field(
        default=5.0,
        ge=0,
        validation_alias=AliasChoices("duration_hint", "targetDurationHint", "duration"),
        description="Target duration hint in seconds (audio length wins)",
    )

    @model_validator(mode="after")
    def _default_visual_prompt(self):
        if not self.visual_prompt or not self.visual_prompt.strip():
            # frozen model: bypass __setattr__
            object.__setattr__(self, "visual_prompt", self.narration)
        return self

    @property
    def prompt(self) -> str:
        return self.visual_prompt or self.narration


class RenderSettings(BaseModel):
    """Render configuration bag. Unknown keys are ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    width: int = Field(default=1080, gt=0, validation_alias=AliasChoices("width", "videoWidth"))
    height: int = Field(default=1920, gt=0, validation_alias=AliasChoices("height", "videoHeight"))
    fps: int = Field(default=30, gt=0, le=120)
    voice: Optional[str] = Field(default=None, description="Provider specific voice id")
    language: str = Field(default="es", description="Language code for speech")
    image_style: str = Field(
        default="cinematic",
        validation_alias=AliasChoices("image_style", "imageStyle", "style"),
    )
    image_generation_method: ImageGenerationMethod = Field(
        default=ImageGenerationMethod.PLACEHOLDER,
        validation_alias=AliasChoices("image_generation_method", "imageGenerationMethod"),
    )
    background_music: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("background_music", "backgroundMusic"),
        description="Optional music track mixed under the narration",
    )
    music_volume: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("music_volume", "musicVolume"),
    )

    @model_validator(mode="before")
    @classmethod
    def _split_voice_language(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # Clients send `voice: "es-ES"` meaning a language code
        if "language" not in data:
            voice = data.get("voice")
            if isinstance(voice, str) and LOCALE_PATTERN.match(voice):
                data["language"] = voice[:2]
                data.pop("voice")
        # ... and `backgroundMusic: false` meaning no track
        for key in ("background_music", "backgroundMusic"):
            if isinstance(data.get(key), bool):
                data.pop(key)
        return data

    @field_validator("width", "height")
    @classmethod
    def _even_dimension(cls, value: int) -> int:
        # yuv420p needs even frame sizes
        if value % 2:
            raise ValueError(f"must be an even number of pixels, got {value}")
        return value

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def from_defaults(cls, defaults: Optional[Dict[str, Any]] = None, **overrides) -> "RenderSettings":
        data = dict(defaults or {})
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)


class Job(BaseModel):
    """
    Job record.

    Owned by the pipeline coordinator; stores only ever hold copies.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    script_id: Optional[str] = None
    scenes: List[Scene]
    settings: RenderSettings = Field(default_factory=RenderSettings)
    state: JobState = JobState.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    output_location: Optional[str] = Field(default=None, description="URL path of the final video")
    output_path: Optional[str] = Field(default=None, description="Filesystem path of the final video")
    error: Optional[str] = None
    degraded_scenes: List[int] = Field(default_factory=list, description="Scenes whose image fell back to placeholder")
    warnings: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def status_view(self) -> Dict[str, Any]:
        """Projection returned to polling callers."""
        return {
            "id": self.id,
            "state": self.state.value,
            "progress": self.progress,
            "output_location": self.output_location,
            "error": self.error,
            "degraded_scenes": list(self.degraded_scenes),
        }


class Script(BaseModel):
    """Stored script"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = Field(..., min_length=1)
    scenes: List[Scene] = Field(..., min_length=1)
    settings: Optional[RenderSettings] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Stage artifacts (transient, never persisted)
# =============================================================================

@dataclass
class AudioArtifact:
    """Speech Stage output for one scene"""
    scene_index: int
    file_path: str
    source_text: str
    duration_sec: float


@dataclass
class ImageArtifact:
    """Image Stage output for one scene"""
    scene_index: int
    file_path: str
    source_prompt: str
    method: ImageGenerationMethod
    fallback_reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.fallback_reason is not None


@dataclass
class ClipArtifact:
    """Per-scene video clip"""
    scene_index: int
    file_path: str
    duration_sec: float


@dataclass
class FinalVideo:
    """Concatenated output"""
    file_path: str
    file_name: str
    duration_sec: Optional[float] = None
