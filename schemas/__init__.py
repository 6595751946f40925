"""
REELCUT Data Models (Pydantic Schemas)
"""

from .models import (
    ImageGenerationMethod,
    JobState,
    Scene,
    RenderSettings,
    Job,
    Script,
    AudioArtifact,
    ImageArtifact,
    ClipArtifact,
    FinalVideo,
)

__all__ = [
    "ImageGenerationMethod",
    "JobState",
    "Scene",
    "RenderSettings",
    "Job",
    "Script",
    "AudioArtifact",
    "ImageArtifact",
    "ClipArtifact",
    "FinalVideo",
]
