"""
REELCUT error taxonomy.

Stage errors carry the scene index (0-based) they failed on; messages use the
1-based scene number because they end up verbatim in ``job.error``.
"""

from typing import Optional


class ReelcutError(Exception):
    """Base class for every error raised by the pipeline."""


class InvalidInput(ReelcutError):
    """Malformed script: missing scenes, non-list scenes, bad scene fields."""


class NotFound(ReelcutError):
    """Lookup on an unknown job or script id."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class EmptyNarration(ReelcutError):
    def __init__(self, scene_index: int):
        self.scene_index = scene_index
        super().__init__(f"Scene {scene_index + 1} has empty narration")


class SpeechSynthesisFailed(ReelcutError):
    def __init__(self, scene_index: int, cause: Exception):
        self.scene_index = scene_index
        self.cause = cause
        super().__init__(f"Speech synthesis failed for scene {scene_index + 1}: {cause}")


class ImageGenerationFailed(ReelcutError):
    def __init__(self, scene_index: int, cause: Exception):
        self.scene_index = scene_index
        self.cause = cause
        super().__init__(f"Image generation failed for scene {scene_index + 1}: {cause}")


class EncodingFailed(ReelcutError):
    def __init__(self, scene_index: Optional[int], detail: str):
        self.scene_index = scene_index
        self.detail = detail
        where = f"scene {scene_index + 1}" if scene_index is not None else "video"
        super().__init__(f"Encoding failed for {where}: {detail}")


class ConcatenationFailed(ReelcutError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Concatenation failed: {detail}")
