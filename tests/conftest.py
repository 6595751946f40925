"""
Shared fixtures: a recording FFmpeg stand-in and a fully wired pipeline.

The FFmpeg stand-in writes small JSON files instead of media so durations and
scene pairings can be read back from the produced "video".
"""
import json
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agents import TTSAgent, ImageAgent, ComposerAgent
from config import get_default_config
from pipeline import ReelcutPipeline
from utils.job_store import JobStore
from utils.task_runner import InProcessRunner


SMALL = {"width": 90, "height": 160, "fps": 30}


def _write_json(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)


def _read_json(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class FakeFFmpeg:
    """Implements the FFmpegComposer methods the agents call."""

    def __init__(self):
        self.fail_silence_on_call = None
        self.fail_clip_for_scene = None
        self.fail_concat = False
        self.silence_calls = 0

    def generate_silence(self, duration_sec, output_path):
        self.silence_calls += 1
        if self.fail_silence_on_call == self.silence_calls:
            raise RuntimeError("Failed to generate silent audio: boom")
        _write_json(output_path, {"kind": "audio", "duration": round(duration_sec, 3)})
        return output_path

    def get_media_duration(self, media_path):
        return float(_read_json(media_path)["duration"])

    def image_audio_to_clip(self, image_path, audio_path, output_path, audio_duration, scene_index=None):
        from utils.errors import EncodingFailed

        if scene_index is not None and scene_index == self.fail_clip_for_scene:
            raise EncodingFailed(scene_index, "encoder exploded")
        _write_json(output_path, {
            "kind": "clip",
            "image": os.path.basename(image_path),
            "audio": os.path.basename(audio_path),
            "duration": audio_duration,
        })
        return output_path

    def concatenate_videos(self, video_paths, output_path):
        clips = [_read_json(p) for p in video_paths]
        _write_json(output_path, {
            "kind": "video",
            "clips": clips,
            "duration": sum(c["duration"] for c in clips),
        })
        if self.fail_concat:
            from utils.errors import ConcatenationFailed

            raise ConcatenationFailed("muxer stopped halfway")
        return output_path

    def mix_background_music(self, video_path, music_path, output_path, volume=0.3):
        data = _read_json(video_path)
        data["music"] = {"track": os.path.basename(music_path), "volume": volume}
        _write_json(output_path, data)
        return output_path


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def test_config(tmp_path):
    config = get_default_config()
    config["paths"].update({
        "output_dir": str(tmp_path / "out"),
        "temp_dir": str(tmp_path / "work"),
        "error_log_file": str(tmp_path / "errors.log"),
        "music_dir": str(tmp_path / "music"),
    })
    config["render"].update(SMALL)
    return config


@pytest.fixture
def make_pipeline(test_config, fake_ffmpeg):
    """Factory for pipelines wired to the fake encoder; shut down after the test."""
    created = []

    def _make(job_store=None, image_agent=None, max_jobs=2, config=None):
        def composer_factory(settings):
            agent = ComposerAgent(settings)
            agent.composer = fake_ffmpeg
            return agent

        pipeline = ReelcutPipeline(
            job_store=job_store or JobStore(),
            runner=InProcessRunner(max_workers=max_jobs),
            config=config or test_config,
            tts_agent=TTSAgent(provider="silent", ffmpeg=fake_ffmpeg),
            image_agent=image_agent or ImageAgent(max_workers=2),
            composer_factory=composer_factory,
        )
        created.append(pipeline)
        return pipeline

    yield _make

    for pipeline in created:
        pipeline.shutdown()


@pytest.fixture
def music_track(tmp_path):
    (tmp_path / "music").mkdir(exist_ok=True)
    path = tmp_path / "music" / "music.mp3"
    path.write_bytes(b"ID3 fake track")
    return str(path)


@pytest.fixture
def no_remote_keys(monkeypatch):
    for name in ("ELEVENLABS_API_KEY", "PEXELS_API_KEY", "REPLICATE_API_TOKEN"):
        monkeypatch.delenv(name, raising=False)

