"""
REELCUT Configuration Loader
"""

import os
import tempfile
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dotenv import load_dotenv

load_dotenv()

# Default configuration directory
CONFIG_DIR = Path(__file__).parent

# Environment variable -> (section, key, type)
_ENV_OVERRIDES = {
    "OUTPUT_DIR": ("paths", "output_dir", str),
    "TEMP_DIR": ("paths", "temp_dir", str),
    "OUTPUT_URL_PREFIX": ("paths", "output_url_prefix", str),
    "ERROR_LOG_FILE": ("paths", "error_log_file", str),
    "MUSIC_DIR": ("paths", "music_dir", str),
    "TTS_PROVIDER": ("providers", "tts", str),
    "REPLICATE_IMAGE_MODEL": ("providers", "replicate_model", str),
    "HTTP_TIMEOUT_SEC": ("providers", "http_timeout_sec", int),
    "FFMPEG_TIMEOUT_SEC": ("ffmpeg", "timeout_sec", int),
    "FFMPEG_BIN": ("ffmpeg", "ffmpeg_bin", str),
    "FFPROBE_BIN": ("ffmpeg", "ffprobe_bin", str),
    "TASK_RUNNER": ("runner", "type", str),
    "REDIS_URL": ("runner", "redis_url", str),
    "REDIS_QUEUE": ("runner", "redis_queue", str),
    "MAX_CONCURRENT_JOBS": ("runner", "max_concurrent_jobs", int),
    "IMAGE_WORKERS": ("runner", "image_workers", int),
}


def get_default_config() -> Dict[str, Any]:
    """Return the built-in configuration."""
    return {
        "paths": {
            "output_dir": "outputs/videos",
            "temp_dir": os.path.join(tempfile.gettempdir(), "reelcut"),
            "output_url_prefix": "/output",
            "error_log_file": "outputs/pipeline_errors.log",
            "music_dir": "assets/music",
        },
        "render": {
            "width": 1080,
            "height": 1920,
            "fps": 30,
            "language": "es",
            "image_style": "cinematic",
            "image_generation_method": "placeholder",
            "music_volume": 0.3,
        },
        "providers": {
            "tts": "auto",
            "replicate_model": "black-forest-labs/flux-schnell",
            "http_timeout_sec": 30,
        },
        "ffmpeg": {
            "ffmpeg_bin": "ffmpeg",
            "ffprobe_bin": "ffprobe",
            "timeout_sec": 300,
        },
        "runner": {
            "type": "inprocess",
            "redis_url": "redis://localhost:6379/0",
            "redis_queue": "reelcut:jobs",
            "max_concurrent_jobs": 2,
            "image_workers": 4,
        },
    }


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration.

    Values from the YAML file are merged over the defaults section by section,
    then known environment variables override both.

    Args:
        config_path: Config file path (default: config/reelcut.yaml)

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        config_path = CONFIG_DIR / "reelcut.yaml"

    config = get_default_config()

    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            file_config = yaml.safe_load(f) or {}
        for section, values in file_config.items():
            if isinstance(values, dict) and section in config:
                config[section].update(values)
            else:
                config[section] = values

    for env_name, (section, key, cast) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw.strip() == "":
            continue
        try:
            config.setdefault(section, {})[key] = cast(raw.strip())
        except ValueError:
            raise ValueError(f"Invalid value for {env_name}: {raw!r}")

    return config


def get_render_defaults(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """RenderSettings defaults section."""
    config = config or load_config()
    return dict(config.get("render", get_default_config()["render"]))


def get_runner_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Task runner section."""
    config = config or load_config()
    return dict(config.get("runner", get_default_config()["runner"]))
