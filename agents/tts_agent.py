"""
TTS Agent: Generates narration audio for each scene.

The provider is chosen once: ElevenLabs when a key is configured, Edge neural
voices otherwise, `silent` for offline runs. There is no per-scene fallback;
one failed scene aborts the whole stage.
"""

import asyncio
import os
import uuid
from typing import Optional, List
from dotenv import load_dotenv

from schemas import Scene, RenderSettings, AudioArtifact
from utils.constants import EDGE_DEFAULT_VOICES, ELEVENLABS_MODEL_ID
from utils.errors import EmptyNarration, SpeechSynthesisFailed
from utils.ffmpeg_utils import FFmpegComposer
from utils.logger import get_logger
logger = get_logger("tts_agent")


load_dotenv()

PROVIDERS = ("elevenlabs", "edge", "silent")

# ElevenLabs default voice (Adam)
DEFAULT_ELEVENLABS_VOICE = "uyVNoMrnUku1dZyVEXwD"


class TTSAgent:
    """
    Generates narration audio, one file per scene.
    """

    def __init__(self, provider: str = "auto", ffmpeg: Optional[FFmpegComposer] = None):
        """
        Initialize TTS Agent.

        Args:
            provider: "auto", "elevenlabs", "edge" or "silent"
            ffmpeg: Composer used for probing and silent audio
        """
        self.elevenlabs_key = os.getenv("ELEVENLABS_API_KEY")
        self.ffmpeg = ffmpeg or FFmpegComposer()

        provider = (provider or "auto").lower()
        if provider == "auto":
            provider = "elevenlabs" if self.elevenlabs_key else "edge"
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown TTS provider: {provider} (expected one of {', '.join(PROVIDERS)})")
        if provider == "elevenlabs" and not self.elevenlabs_key:
            raise ValueError("TTS provider 'elevenlabs' requires ELEVENLABS_API_KEY")

        self.provider = provider
        logger.info(f"[TTS Agent] Provider: {self.provider}")

    # =========================================================================
    # Stage entry point
    # =========================================================================

    def synthesize(self, scenes: List[Scene], settings: RenderSettings, work_dir: str) -> List[AudioArtifact]:
        """
        Synthesize narration for every scene, in scene order.

        Args:
            scenes: Job scenes
            settings: Render settings (language / voice)
            work_dir: Job-scoped temporary directory

        Returns:
            One AudioArtifact per scene, index-aligned

        Raises:
            EmptyNarration: a scene has no narration text
            SpeechSynthesisFailed: provider failed for a scene
        """
        for index, scene in enumerate(scenes):
            if not scene.narration or not scene.narration.strip():
                raise EmptyNarration(index)

        os.makedirs(work_dir, exist_ok=True)
        artifacts: List[AudioArtifact] = []

        try:
            for index, scene in enumerate(scenes):
                text = scene.narration.strip()
                logger.info(f"  [TTS Agent] Scene {index + 1}/{len(scenes)}: {text[:60]}")
                output_path = os.path.join(work_dir, f"narration_{index:03d}_{uuid.uuid4().hex[:8]}.mp3")

                try:
                    self.generate_speech(text, settings, output_path)
                    duration = self._get_audio_duration(output_path)
                except Exception as e:
                    # partial file from the failed call
                    if os.path.exists(output_path):
                        os.remove(output_path)
                    raise SpeechSynthesisFailed(index, e) from e

                artifacts.append(AudioArtifact(
                    scene_index=index,
                    file_path=output_path,
                    source_text=text,
                    duration_sec=duration,
                ))
                logger.info(f"     [TTS Agent] Audio saved: {output_path} ({duration:.2f}s)")
        except Exception:
            for artifact in artifacts:
                try:
                    os.remove(artifact.file_path)
                except OSError as e:
                    logger.warning(f"     [TTS Agent] Could not remove {artifact.file_path}: {e}")
            raise

        return artifacts

    def generate_speech(self, text: str, settings: RenderSettings, output_path: str) -> str:
        """Dispatch one narration to the configured provider."""
        if self.provider == "elevenlabs":
            voice = settings.voice or os.getenv("ELEVENLABS_VOICE_ID") or DEFAULT_ELEVENLABS_VOICE
            return self._call_elevenlabs_api(text, voice, output_path)
        if self.provider == "edge":
            voice = settings.voice or EDGE_DEFAULT_VOICES.get(settings.language[:2].lower())
            if not voice:
                raise ValueError(f"No default Edge voice for language '{settings.language}'")
            return self._call_edge_tts(text, voice, output_path)
        return self._generate_placeholder_audio(text, output_path)

    # =========================================================================
    # Providers
    # =========================================================================

    def _call_elevenlabs_api(self, text: str, voice_id: str, output_path: str) -> str:
        """Call ElevenLabs API (v2.x SDK) and stream the MP3 to disk."""
        from elevenlabs.client import ElevenLabs

        logger.info(f"     Using ElevenLabs API (Voice: {voice_id[:8]}...)")
        client = ElevenLabs(api_key=self.elevenlabs_key)

        audio_generator = client.text_to_speech.convert(
            text=text,
            voice_id=voice_id,
            model_id=ELEVENLABS_MODEL_ID
        )

        with open(output_path, "wb") as f:
            for chunk in audio_generator:
                f.write(chunk)

        return output_path

    def _call_edge_tts(self, text: str, voice: str, output_path: str) -> str:
        """Edge neural voice. Runs its own event loop; called from worker threads."""
        import edge_tts

        logger.info(f"     Using Edge TTS (Voice: {voice})")
        communicate = edge_tts.Communicate(text, voice)
        asyncio.run(communicate.save(output_path))

        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise RuntimeError("Edge TTS returned no audio")
        return output_path

    def _generate_placeholder_audio(self, text: str, output_path: str) -> str:
        """
        Silent audio sized to the text (~150 words per minute).

        Args:
            text: Narration text (for duration estimation)
            output_path: Output file path

        Returns:
            Path to generated placeholder audio
        """
        word_count = len(text.split())
        duration = max(1.5, word_count / 2.5)
        return self.ffmpeg.generate_silence(duration, output_path)

    # =========================================================================
    # Duration
    # =========================================================================

    def _get_audio_duration(self, audio_path: str) -> float:
        """Measure audio length with ffprobe, estimating from file size if unavailable."""
        try:
            duration = self.ffmpeg.get_media_duration(audio_path)
            if duration > 0:
                return duration
        except (RuntimeError, OSError) as e:
            logger.warning(f"     [Warning] ffprobe duration check failed: {e}")

        file_size = os.path.getsize(audio_path)
        if file_size == 0:
            raise RuntimeError(f"Audio file is empty: {audio_path}")

        # 128kbps MP3 ≈ 16KB/sec
        estimated = file_size / 16000.0
        logger.info(f"     [Duration] Estimated from file size: {estimated:.2f}s ({file_size} bytes)")
        return max(1.0, estimated)
