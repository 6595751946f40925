"""
Unit tests for FFmpegComposer command building and error mapping.

subprocess.run is replaced; no encoder is needed.
"""
import os
import subprocess
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from utils import ffmpeg_utils
from utils.ffmpeg_utils import FFmpegComposer, _sanitize_ffmpeg_number
from utils.errors import ConcatenationFailed, EncodingFailed


class FakeRun:
    """Records commands; writes the output file unless told otherwise."""

    def __init__(self, returncode=0, stdout="", stderr="", write_output=True, raises=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.write_output = write_output
        self.raises = raises
        self.commands = []
        self.concat_lists = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        if self.raises:
            raise self.raises
        if "-f" in cmd and cmd[cmd.index("-f") + 1] == "concat":
            with open(cmd[cmd.index("-i") + 1], encoding="utf-8") as f:
                self.concat_lists.append(f.read())
        if self.write_output and self.returncode == 0 and cmd[0] == "ffmpeg":
            with open(cmd[-1], "wb") as f:
                f.write(b"media")
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def media(tmp_path):
    image = tmp_path / "image.png"
    audio = tmp_path / "audio.mp3"
    image.write_bytes(b"png")
    audio.write_bytes(b"mp3")
    return str(image), str(audio)


def _use(monkeypatch, fake):
    monkeypatch.setattr(ffmpeg_utils.subprocess, "run", fake)
    return fake


class TestSanitize:

    def test_clamps_and_defaults(self):
        assert _sanitize_ffmpeg_number("2.5") == 2.5
        assert _sanitize_ffmpeg_number("abc", default=1.0) == 1.0
        assert _sanitize_ffmpeg_number(float("nan"), default=0.3) == 0.3
        assert _sanitize_ffmpeg_number(5, max_val=1.0) == 1.0
        assert _sanitize_ffmpeg_number(-1, min_val=0.0) == 0.0


class TestSceneClip:

    def test_command_holds_image_for_audio(self, monkeypatch, media, tmp_path):
        fake = _use(monkeypatch, FakeRun())
        image, audio = media
        out = str(tmp_path / "clip.mp4")

        FFmpegComposer(resolution="720x1280", fps=25).image_audio_to_clip(image, audio, out, 3.2, scene_index=0)

        cmd = fake.commands[0]
        assert cmd[cmd.index("-loop") + 1] == "1"
        assert cmd[cmd.index("-t") + 1] == "4"
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-tune") + 1] == "stillimage"
        assert cmd[cmd.index("-c:a") + 1] == "copy"
        assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
        assert cmd[cmd.index("-r") + 1] == "25"
        assert "-shortest" in cmd
        assert "scale=720:1280" in cmd[cmd.index("-vf") + 1]
        assert cmd[-1] == out

    def test_nonzero_exit(self, monkeypatch, media, tmp_path):
        _use(monkeypatch, FakeRun(returncode=1, stderr="Invalid data found"))
        image, audio = media
        with pytest.raises(EncodingFailed, match="scene 3: Invalid data found"):
            FFmpegComposer().image_audio_to_clip(image, audio, str(tmp_path / "c.mp4"), 2.0, scene_index=2)

    def test_missing_binary(self, monkeypatch, media, tmp_path):
        _use(monkeypatch, FakeRun(raises=FileNotFoundError("ffmpeg")))
        image, audio = media
        with pytest.raises(EncodingFailed):
            FFmpegComposer().image_audio_to_clip(image, audio, str(tmp_path / "c.mp4"), 2.0, scene_index=0)

    def test_timeout(self, monkeypatch, media, tmp_path):
        _use(monkeypatch, FakeRun(raises=subprocess.TimeoutExpired("ffmpeg", 300)))
        image, audio = media
        with pytest.raises(EncodingFailed):
            FFmpegComposer().image_audio_to_clip(image, audio, str(tmp_path / "c.mp4"), 2.0, scene_index=0)

    def test_no_output_file(self, monkeypatch, media, tmp_path):
        _use(monkeypatch, FakeRun(write_output=False))
        image, audio = media
        with pytest.raises(EncodingFailed, match="no output"):
            FFmpegComposer().image_audio_to_clip(image, audio, str(tmp_path / "c.mp4"), 2.0, scene_index=0)


class TestConcatenate:

    def _clips(self, tmp_path, n=3):
        paths = []
        for i in range(n):
            p = tmp_path / f"scene_{i}.mp4"
            p.write_bytes(b"clip")
            paths.append(str(p))
        return paths

    def test_stream_copy_in_order(self, monkeypatch, tmp_path):
        fake = _use(monkeypatch, FakeRun())
        clips = self._clips(tmp_path)
        out = str(tmp_path / "final.mp4")

        FFmpegComposer().concatenate_videos(clips, out)

        cmd = fake.commands[0]
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[cmd.index("-safe") + 1] == "0"
        listed = [line for line in fake.concat_lists[0].splitlines() if line]
        assert listed == [f"file '{os.path.abspath(c)}'" for c in clips]
        assert not [n for n in os.listdir(tmp_path) if n.startswith("concat_")]

    def test_list_file_removed_on_failure(self, monkeypatch, tmp_path):
        _use(monkeypatch, FakeRun(returncode=1, stderr="moov atom not found"))
        with pytest.raises(ConcatenationFailed, match="moov atom"):
            FFmpegComposer().concatenate_videos(self._clips(tmp_path), str(tmp_path / "final.mp4"))
        assert not [n for n in os.listdir(tmp_path) if n.startswith("concat_")]

    def test_no_clips(self):
        with pytest.raises(ConcatenationFailed, match="no clips"):
            FFmpegComposer().concatenate_videos([], "out.mp4")

    def test_unreadable_clip(self, monkeypatch, tmp_path):
        fake = _use(monkeypatch, FakeRun())
        clips = self._clips(tmp_path, 2) + [str(tmp_path / "missing.mp4")]
        with pytest.raises(ConcatenationFailed, match="missing.mp4"):
            FFmpegComposer().concatenate_videos(clips, str(tmp_path / "final.mp4"))
        assert fake.commands == []

    def test_quotes_in_paths_are_escaped(self):
        entry = ffmpeg_utils._concat_list_entry("/tmp/it's.mp4")
        assert entry == "file '/tmp/it'\\''s.mp4'\n"


class TestProbeAndMix:

    def test_duration_parsed(self, monkeypatch):
        _use(monkeypatch, FakeRun(stdout="12.480000\n"))
        assert FFmpegComposer().get_media_duration("x.mp3") == pytest.approx(12.48)

    def test_duration_failure(self, monkeypatch):
        _use(monkeypatch, FakeRun(returncode=1, stderr="No such file"))
        with pytest.raises(RuntimeError, match="No such file"):
            FFmpegComposer().get_media_duration("x.mp3")

    def test_music_mix_filter(self, monkeypatch, tmp_path):
        fake = _use(monkeypatch, FakeRun())
        FFmpegComposer().mix_background_music("v.mp4", "m.mp3", str(tmp_path / "o.mp4"), volume=0.25)

        cmd = fake.commands[0]
        graph = cmd[cmd.index("-filter_complex") + 1]
        assert "[1:a]volume=0.25[music]" in graph
        assert "amix=inputs=2:duration=shortest" in graph
        assert cmd[cmd.index("-c:v") + 1] == "copy"

    def test_music_mix_failure(self, monkeypatch, tmp_path):
        _use(monkeypatch, FakeRun(returncode=1, stderr="bad"))
        with pytest.raises(EncodingFailed, match="music mix"):
            FFmpegComposer().mix_background_music("v.mp4", "m.mp3", str(tmp_path / "o.mp4"))
