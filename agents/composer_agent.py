"""
Composer Agent: turns image + narration pairs into clips and joins them.
"""

import os
import uuid
from typing import List, Optional

from schemas import AudioArtifact, ImageArtifact, ClipArtifact, FinalVideo, RenderSettings
from utils.errors import EncodingFailed
from utils.ffmpeg_utils import FFmpegComposer
from utils.logger import get_logger
logger = get_logger("composer_agent")


class ComposerAgent:
    """
    Composes per-scene clips and the final video.

    Uses FFmpeg for all video/audio composition operations. One composer is
    built per job from that job's RenderSettings so every clip shares
    codec, resolution and frame rate.
    """

    def __init__(
        self,
        settings: Optional[RenderSettings] = None,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        timeout_sec: int = 300,
    ):
        """
        Initialize Composer Agent.

        Args:
            settings: Render settings (default: 1080x1920 @ 30fps)
            ffmpeg_bin / ffprobe_bin: Encoder binaries
            timeout_sec: Per-call encoder timeout
        """
        self.settings = settings or RenderSettings()
        self.composer = FFmpegComposer(
            resolution=self.settings.resolution,
            fps=self.settings.fps,
            ffmpeg_bin=ffmpeg_bin,
            ffprobe_bin=ffprobe_bin,
            timeout_sec=timeout_sec,
        )

    def compose_scene_clip(
        self,
        image: ImageArtifact,
        audio: AudioArtifact,
        output_path: str,
    ) -> ClipArtifact:
        """
        Build one scene clip: the image held for exactly the narration length.

        Args:
            image: Image artifact of the scene
            audio: Audio artifact of the same scene
            output_path: Clip file path

        Returns:
            ClipArtifact
        """
        if image.scene_index != audio.scene_index:
            raise EncodingFailed(
                audio.scene_index,
                f"image belongs to scene {image.scene_index + 1}, audio to scene {audio.scene_index + 1}",
            )

        logger.info(f"  [Composer] Scene {audio.scene_index + 1}: {audio.duration_sec:.2f}s clip")
        self.composer.image_audio_to_clip(
            image_path=image.file_path,
            audio_path=audio.file_path,
            output_path=output_path,
            audio_duration=audio.duration_sec,
            scene_index=audio.scene_index,
        )
        return ClipArtifact(
            scene_index=audio.scene_index,
            file_path=output_path,
            duration_sec=audio.duration_sec,
        )

    def compose_all(
        self,
        images: List[ImageArtifact],
        audios: List[AudioArtifact],
        work_dir: str,
    ) -> List[ClipArtifact]:
        """Compose every scene in order. The first encoder failure is fatal."""
        if len(images) != len(audios):
            raise ValueError(
                f"Mismatch: {len(images)} images but {len(audios)} narration clips"
            )

        clips = []
        for image, audio in zip(images, audios):
            clip_path = os.path.join(work_dir, f"scene_{audio.scene_index:03d}_{uuid.uuid4().hex[:8]}.mp4")
            clips.append(self.compose_scene_clip(image, audio, clip_path))
        return clips

    def concatenate(self, clips: List[ClipArtifact], output_path: str) -> FinalVideo:
        """
        Join clips losslessly, in scene order.

        Returns:
            FinalVideo (duration is the sum of clip durations)
        """
        ordered = sorted(clips, key=lambda c: c.scene_index)
        self.composer.concatenate_videos([c.file_path for c in ordered], output_path)
        return FinalVideo(
            file_path=output_path,
            file_name=os.path.basename(output_path),
            duration_sec=sum(c.duration_sec for c in ordered),
        )

    def mix_background_audio(self, video_path: str, music_path: str, volume: float, output_path: str) -> str:
        """Best-effort music bed under the narration (shortest input wins)."""
        if not os.path.isfile(music_path):
            raise EncodingFailed(None, f"music track not found: {music_path}")
        logger.info(f"  [Composer] Mixing background music at volume {volume}")
        return self.composer.mix_background_music(video_path, music_path, output_path, volume=volume)
