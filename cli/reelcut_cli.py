"""
REELCUT CLI - render a script file into a video without the API server.

Usage:
    reelcut render script.json [--method placeholder|stockPhoto|aiGenerated]
                               [--language es] [--width 1080] [--height 1920]
                               [--fps 30] [--music track.mp3 --music-volume 0.3]
    reelcut serve [--port 3000]

The script file is either a list of scenes or an object with `scenes`
(and optional `title` / `settings`).
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from config import load_config
from pipeline import ReelcutPipeline
from schemas import ImageGenerationMethod, JobState
from utils.errors import InvalidInput
from utils.task_runner import InProcessRunner


def print_banner():
    """Print REELCUT banner."""
    banner = """
=====================================================================
   REELCUT - short vertical videos from narrated scripts
=====================================================================
"""
    print(banner)


def load_script(path: str) -> Tuple[List[Any], Dict[str, Any]]:
    """
    Read a script file.

    Returns:
        (scenes, settings) - settings is {} when the file has none
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        return data, {}
    if isinstance(data, dict):
        return data.get("scenes"), dict(data.get("settings") or {})
    raise InvalidInput(f"{path}: expected a list of scenes or an object with 'scenes'")


def build_settings(file_settings: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Command-line flags override settings from the script file."""
    settings = dict(file_settings)
    overrides = {
        "image_generation_method": args.method,
        "language": args.language,
        "width": args.width,
        "height": args.height,
        "fps": args.fps,
        "background_music": args.music,
        "music_volume": args.music_volume,
    }
    settings.update({k: v for k, v in overrides.items() if v is not None})
    return settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reelcut", description="REELCUT short video generator")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Render a script file into a video")
    render.add_argument("script", help="Script JSON file")
    render.add_argument(
        "--method",
        choices=[m.value for m in ImageGenerationMethod],
        help="Image generation method (default: from config)",
    )
    render.add_argument("--language", help="Narration language code, e.g. es, en")
    render.add_argument("--width", type=int)
    render.add_argument("--height", type=int)
    render.add_argument("--fps", type=int)
    render.add_argument("--music", help="Background music file")
    render.add_argument("--music-volume", dest="music_volume", type=float)
    render.add_argument("--config", help="YAML config file")

    serve = sub.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT", 3000)))

    return parser


def render(args: argparse.Namespace, pipeline: Optional[ReelcutPipeline] = None) -> int:
    """Run one job to a terminal state. Returns the process exit code."""
    scenes, file_settings = load_script(args.script)

    if pipeline is None:
        config = load_config(args.config) if args.config else load_config()
        if args.music:
            # a track named on the command line is trusted where it lies
            config["paths"]["music_dir"] = os.path.dirname(os.path.abspath(args.music))
        pipeline = ReelcutPipeline(config=config, runner=InProcessRunner(max_workers=1))

    try:
        job_id = pipeline.submit(scenes, build_settings(file_settings, args))
        print(f"[OK] Job {job_id} queued ({len(scenes)} scenes)")
        job = pipeline.wait(job_id)
    finally:
        pipeline.shutdown()

    if job.state == JobState.COMPLETED:
        print("\n" + "=" * 60)
        print("[SUCCESS] Video ready")
        print("=" * 60)
        print(f"File: {job.output_path}")
        print(f"URL:  {job.output_location}")
        if job.degraded_scenes:
            print(f"\nPlaceholder images used for scenes: {', '.join(str(i + 1) for i in job.degraded_scenes)}")
            for warning in job.warnings:
                print(f"  - {warning}")
        return 0

    print(f"\n[FAILED] {job.error}")
    return 1


def serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api_server:create_app", factory=True, host=args.host, port=args.port, log_level="info")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if args.command == "render":
            print_banner()
            return render(args)
        return serve(args)

    except KeyboardInterrupt:
        print("\n\n[INTERRUPTED] Generation interrupted by user.")
        return 1

    except (InvalidInput, OSError, ValueError) as e:
        print(f"\n[ERROR] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
