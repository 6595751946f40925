"""
REELCUT Agents Package

Stage agents:
- TTSAgent: narration audio per scene
- ImageAgent: still image per scene (placeholder / stock photo / AI)
- PexelsAgent: stock photo search used by ImageAgent
- ComposerAgent: scene clips and final concatenation
"""

from .tts_agent import TTSAgent
from .image_agent import ImageAgent
from .pexels_agent import PexelsAgent
from .composer_agent import ComposerAgent

__all__ = [
    "TTSAgent",
    "ImageAgent",
    "PexelsAgent",
    "ComposerAgent",
]
