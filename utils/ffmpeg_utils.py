"""
FFmpeg Utilities for Video Composition

- Scene clip: still image held for the length of its narration audio
- Concatenation: lossless concat demuxer (stream copy)
- Background music: duration-limited amix under the narration
- Probing: ffprobe duration lookup
"""

import math
import os
import subprocess
import uuid
from typing import List, Optional

from utils.errors import EncodingFailed, ConcatenationFailed
from utils.logger import get_logger
logger = get_logger("ffmpeg")


# [Security] Validate numbers interpolated into filter graphs
def _sanitize_ffmpeg_number(value, default=0.0, min_val=None, max_val=None):
    """Clamp a numeric filter parameter, falling back to `default` on garbage."""
    try:
        num = float(value)
        if math.isnan(num):
            return default
        if min_val is not None:
            num = max(num, min_val)
        if max_val is not None:
            num = min(num, max_val)
        return num
    except (TypeError, ValueError):
        return default


def _concat_list_entry(path: str) -> str:
    # concat demuxer quoting: ' -> '\''
    escaped = os.path.abspath(path).replace("'", "'\\''")
    return f"file '{escaped}'\n"


class FFmpegComposer:
    """
    FFmpeg based composition engine.

    All clips produced by one composer share codec, resolution and frame rate,
    which is what makes stream-copy concatenation safe.
    """

    def __init__(
        self,
        resolution: str = "1080x1920",
        fps: int = 30,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        timeout_sec: int = 300,
    ):
        self.resolution = resolution
        self.fps = fps
        self.width, self.height = map(int, resolution.split("x"))
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.timeout_sec = timeout_sec

    def _run(self, cmd: List[str], timeout: Optional[int] = None) -> subprocess.CompletedProcess:
        logger.debug(f"Running: {' '.join(cmd)}")
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding='utf-8',
            errors='replace',
            timeout=timeout or self.timeout_sec,
        )

    # =========================================================================
    # Probing
    # =========================================================================

    def get_media_duration(self, media_path: str) -> float:
        """ffprobe duration of an audio or video file in seconds."""
        cmd = [
            self.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            media_path
        ]

        result = self._run(cmd, timeout=30)

        if result.returncode == 0 and result.stdout.strip():
            try:
                return float(result.stdout.strip())
            except ValueError:
                pass
        raise RuntimeError(f"Failed to get duration of {media_path}: {result.stderr.strip()[-300:]}")

    # =========================================================================
    # Scene clip
    # =========================================================================

    def image_audio_to_clip(
        self,
        image_path: str,
        audio_path: str,
        output_path: str,
        audio_duration: float,
        scene_index: Optional[int] = None,
    ) -> str:
        """
        Hold a still image for the whole narration.

        The image input is looped for ceil(audio_duration) seconds; the audio is
        stream-copied and `-shortest` ends the clip with the audio.

        Raises:
            EncodingFailed: encoder missing, non-zero exit or no output file
        """
        hold_sec = max(1, math.ceil(_sanitize_ffmpeg_number(audio_duration, default=1.0, min_val=0.0)))
        scale_pad = (
            f"scale={self.width}:{self.height}:force_original_aspect_ratio=decrease,"
            f"pad={self.width}:{self.height}:(ow-iw)/2:(oh-ih)/2,setsar=1"
        )

        cmd = [
            self.ffmpeg_bin,
            "-y",
            "-loop", "1",
            "-t", str(hold_sec),
            "-i", image_path,
            "-i", audio_path,
            "-map", "0:v",
            "-map", "1:a",
            "-c:v", "libx264",
            "-tune", "stillimage",
            "-c:a", "copy",
            "-pix_fmt", "yuv420p",
            "-vf", scale_pad,
            "-r", str(self.fps),
            "-shortest",
            "-avoid_negative_ts", "make_zero",
            output_path
        ]

        try:
            result = self._run(cmd)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EncodingFailed(scene_index, str(e)) from e

        if result.returncode != 0:
            raise EncodingFailed(scene_index, result.stderr.strip()[-500:] or f"exit code {result.returncode}")
        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise EncodingFailed(scene_index, f"encoder produced no output at {output_path}")

        return output_path

    # =========================================================================
    # Concatenation
    # =========================================================================

    def concatenate_videos(self, video_paths: List[str], output_path: str) -> str:
        """
        Join clips in order with the concat demuxer and `-c copy`.

        The list file is written next to the output and always removed.

        Raises:
            ConcatenationFailed: no inputs, unreadable input or ffmpeg error
        """
        if not video_paths:
            raise ConcatenationFailed("no clips to concatenate")

        for path in video_paths:
            if not os.path.isfile(path) or not os.access(path, os.R_OK):
                raise ConcatenationFailed(f"clip is not readable: {path}")

        output_dir = os.path.dirname(os.path.abspath(output_path))
        concat_file = os.path.join(output_dir, f"concat_{uuid.uuid4().hex}.txt")

        with open(concat_file, "w", encoding="utf-8") as f:
            for video_path in video_paths:
                f.write(_concat_list_entry(video_path))

        try:
            logger.info(f"[FFmpeg] Concatenating {len(video_paths)} clips...")
            cmd = [
                self.ffmpeg_bin,
                "-y",
                "-f", "concat",
                "-safe", "0",
                "-i", concat_file,
                "-c", "copy",
                output_path
            ]

            try:
                result = self._run(cmd, timeout=max(60, len(video_paths) * 10))
            except (OSError, subprocess.TimeoutExpired) as e:
                raise ConcatenationFailed(str(e)) from e

            if result.returncode != 0:
                raise ConcatenationFailed(result.stderr.strip()[-500:] or f"exit code {result.returncode}")
            if not os.path.exists(output_path):
                raise ConcatenationFailed(f"no output written to {output_path}")

            logger.info(f"[FFmpeg] Concatenation complete: {output_path}")
            return output_path

        finally:
            if os.path.exists(concat_file):
                os.remove(concat_file)

    # =========================================================================
    # Background music
    # =========================================================================

    def mix_background_music(
        self,
        video_path: str,
        music_path: str,
        output_path: str,
        volume: float = 0.3,
    ) -> str:
        """
        Mix a music track under the existing audio.

        Output duration is the shorter of the two inputs; video is stream-copied.
        """
        volume = _sanitize_ffmpeg_number(volume, default=0.3, min_val=0.0, max_val=1.0)
        filter_complex = (
            f"[1:a]volume={volume}[music];"
            "[0:a][music]amix=inputs=2:duration=shortest[aout]"
        )

        cmd = [
            self.ffmpeg_bin,
            "-y",
            "-i", video_path,
            "-i", music_path,
            "-filter_complex", filter_complex,
            "-map", "0:v",
            "-map", "[aout]",
            "-c:v", "copy",
            "-c:a", "aac",
            "-shortest",
            output_path
        ]

        try:
            result = self._run(cmd)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EncodingFailed(None, f"music mix: {e}") from e

        if result.returncode != 0:
            raise EncodingFailed(None, f"music mix: {result.stderr.strip()[-500:]}")

        return output_path

    # =========================================================================
    # Silent audio (offline speech provider)
    # =========================================================================

    def generate_silence(self, duration_sec: float, output_path: str) -> str:
        """Silent mono MP3 of the given length."""
        duration_sec = _sanitize_ffmpeg_number(duration_sec, default=3.0, min_val=0.5, max_val=600.0)
        cmd = [
            self.ffmpeg_bin,
            "-y",
            "-f", "lavfi",
            "-i", "anullsrc=r=44100:cl=mono",
            "-t", f"{duration_sec:.2f}",
            "-c:a", "libmp3lame",
            "-b:a", "128k",
            output_path
        ]

        result = self._run(cmd, timeout=30)

        if result.returncode != 0:
            raise RuntimeError(f"Failed to generate silent audio: {result.stderr.strip()[-300:]}")

        return output_path
