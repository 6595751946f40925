"""
REELCUT pipeline coordinator

Drives one job through its stages and owns the job record.

Flow per job:
1. TTSAgent - narration audio per scene            (progress 33)
2. ImageAgent - still image per scene               (progress 66)
3. ComposerAgent - scene clips + concatenation      (progress 90)
4. Cleanup of work files, publish final video       (progress 100, completed)

Any unrecovered error moves the job to `failed` with the error text; work
files are removed on every path.
"""

import os
import threading
import traceback
import uuid
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from agents import TTSAgent, ImageAgent, ComposerAgent
from config import get_render_defaults, get_runner_config, load_config
from schemas import Job, JobState, RenderSettings, Scene
from utils.cleanup import cleanup_artifacts, cleanup_job_dir, is_owned
from utils.error_manager import ErrorManager
from utils.errors import InvalidInput, ReelcutError
from utils.ffmpeg_utils import FFmpegComposer
from utils.job_store import JobStore
from utils.task_runner import TaskRunner, select_runner
from utils.logger import get_logger
logger = get_logger("pipeline")

# Progress checkpoints
PROGRESS_STARTED = 10
PROGRESS_AUDIO_DONE = 33
PROGRESS_IMAGES_DONE = 66
PROGRESS_CONCAT_DONE = 90
PROGRESS_COMPLETE = 100

_STATE_ORDER = {
    JobState.PENDING: 0,
    JobState.PROCESSING: 1,
    JobState.COMPLETED: 2,
    JobState.FAILED: 2,
}


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "value"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class ReelcutPipeline:
    """
    REELCUT pipeline coordinator.

    The only writer of job records. Stages are injected so the API, the CLI and
    tests can share one implementation.
    """

    def __init__(
        self,
        job_store: Optional[JobStore] = None,
        runner: Optional[TaskRunner] = None,
        config: Optional[Dict[str, Any]] = None,
        tts_agent: Optional[TTSAgent] = None,
        image_agent: Optional[ImageAgent] = None,
        composer_factory: Optional[Callable[[RenderSettings], ComposerAgent]] = None,
    ):
        """
        Initialize pipeline.

        Args:
            job_store: Job registry (default: new in-memory store)
            runner: Task runner (default: chosen from config)
            config: Configuration dict (default: load_config())
            tts_agent / image_agent: Stage agents
            composer_factory: Builds a ComposerAgent for a job's settings
        """
        self.config = config or load_config()
        paths = self.config["paths"]
        ffmpeg_cfg = self.config["ffmpeg"]
        providers = self.config["providers"]

        self.output_dir = paths["output_dir"]
        self.temp_dir = paths["temp_dir"]
        self.output_url_prefix = paths["output_url_prefix"].rstrip("/")
        self.music_dir = paths.get("music_dir") or "assets/music"
        self.render_defaults = get_render_defaults(self.config)
        runner_config = get_runner_config(self.config)
        self.error_manager = ErrorManager(paths.get("error_log_file"))

        self.job_store = job_store or JobStore()

        self.tts_agent = tts_agent or TTSAgent(
            provider=providers.get("tts", "auto"),
            ffmpeg=FFmpegComposer(
                ffmpeg_bin=ffmpeg_cfg["ffmpeg_bin"],
                ffprobe_bin=ffmpeg_cfg["ffprobe_bin"],
                timeout_sec=ffmpeg_cfg["timeout_sec"],
            ),
        )
        self.image_agent = image_agent or ImageAgent(
            replicate_model=providers.get("replicate_model", "black-forest-labs/flux-schnell"),
            http_timeout=providers.get("http_timeout_sec", 30),
            max_workers=runner_config.get("image_workers", 4),
        )
        self.composer_factory = composer_factory or (
            lambda settings: ComposerAgent(
                settings,
                ffmpeg_bin=ffmpeg_cfg["ffmpeg_bin"],
                ffprobe_bin=ffmpeg_cfg["ffprobe_bin"],
                timeout_sec=ffmpeg_cfg["timeout_sec"],
            )
        )

        self._terminal = threading.Condition()
        self.runner = runner or select_runner(runner_config)
        self.runner.start(self.run_job)

    # =========================================================================
    # Submission & queries
    # =========================================================================

    def submit(
        self,
        scenes: Any,
        settings: Union[RenderSettings, Dict[str, Any], None] = None,
        script_id: Optional[str] = None,
    ) -> str:
        """
        Create a pending job and hand it to the runner.

        Returns:
            Job id

        Raises:
            InvalidInput: missing/empty/non-list scenes, malformed scene or settings
        """
        parsed_scenes = self._parse_scenes(scenes)
        parsed_settings = self._resolve_settings(settings)

        job = Job(scenes=parsed_scenes, settings=parsed_settings, script_id=script_id)
        self.job_store.put(job)
        logger.info(
            f"[Pipeline] Job {job.id} submitted: {len(parsed_scenes)} scenes, "
            f"{parsed_settings.resolution}@{parsed_settings.fps}, images={parsed_settings.image_generation_method.value}"
        )
        self.runner.enqueue(job.id)
        return job.id

    def get_status(self, job_id: str) -> Dict[str, Any]:
        return self.job_store.get(job_id).status_view()

    def get_job(self, job_id: str) -> Job:
        return self.job_store.get(job_id)

    def list_jobs(self, state: Optional[JobState] = None) -> List[Job]:
        return self.job_store.list_jobs(state)

    def list_completed(self) -> List[Job]:
        return self.job_store.list_jobs(JobState.COMPLETED)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until the job is terminal (or timeout). Returns the latest record."""
        with self._terminal:
            self._terminal.wait_for(lambda: self.job_store.get(job_id).state.is_terminal, timeout=timeout)
        return self.job_store.get(job_id)

    def shutdown(self, wait: bool = True):
        self.runner.shutdown(wait=wait)

    # =========================================================================
    # Execution
    # =========================================================================

    def run_job(self, job_id: str) -> Job:
        """
        Run the whole pipeline for one job, synchronously.

        Never raises for stage failures; they end up in the job record.
        """
        job = self.job_store.get(job_id)
        if job.state != JobState.PENDING:
            logger.warning(f"[Pipeline] Job {job_id} is {job.state.value}; not running it again")
            return job

        settings = job.settings
        work_dir = os.path.join(self.temp_dir, job_id)
        artifacts: List[str] = []
        partial_path = None

        try:
            self._update(job_id, state=JobState.PROCESSING, progress=PROGRESS_STARTED)
            os.makedirs(work_dir, exist_ok=True)

            # Step 1: narration
            logger.info(f"[Pipeline] Job {job_id} step 1/3: narration")
            audios = self.tts_agent.synthesize(job.scenes, settings, work_dir)
            artifacts.extend(a.file_path for a in audios)
            self._update(job_id, progress=PROGRESS_AUDIO_DONE)

            # Step 2: images
            logger.info(f"[Pipeline] Job {job_id} step 2/3: images")
            images = self.image_agent.synthesize(job.scenes, settings, work_dir)
            artifacts.extend(i.file_path for i in images)
            degraded = [i for i in images if i.degraded]
            if degraded:
                logger.warning(
                    f"[Pipeline] Job {job_id}: {len(degraded)}/{len(images)} scenes fell back to placeholder images"
                )
            self._update(
                job_id,
                progress=PROGRESS_IMAGES_DONE,
                degraded_scenes=[i.scene_index for i in degraded],
                warnings=[f"Scene {i.scene_index + 1}: {i.fallback_reason}" for i in degraded],
            )

            # Step 3: clips + concatenation
            logger.info(f"[Pipeline] Job {job_id} step 3/3: composing")
            composer = self.composer_factory(settings)
            clips = composer.compose_all(images, audios, work_dir)
            artifacts.extend(c.file_path for c in clips)

            os.makedirs(self.output_dir, exist_ok=True)
            final_name = f"video_{uuid.uuid4().hex}.mp4"
            partial_path = os.path.join(self.output_dir, f".partial_{final_name}")
            final = composer.concatenate(clips, partial_path)

            if settings.background_music:
                self._mix_music(job_id, composer, partial_path, settings)

            self._update(job_id, progress=PROGRESS_CONCAT_DONE)

            cleanup_job_dir(work_dir, artifacts)

            final_path = os.path.join(self.output_dir, final_name)
            os.replace(partial_path, final_path)
            partial_path = None

            job = self._update(
                job_id,
                state=JobState.COMPLETED,
                progress=PROGRESS_COMPLETE,
                output_path=final_path,
                output_location=f"{self.output_url_prefix}/{final_name}",
            )
            logger.info(f"[Pipeline] Job {job_id} completed: {final_path} ({final.duration_sec or 0:.2f}s)")

        except Exception as e:
            if isinstance(e, ReelcutError):
                logger.error(f"[Pipeline] Job {job_id} failed: {e}")
            else:
                logger.exception(f"[Pipeline] Job {job_id} failed unexpectedly: {e}")
            self.error_manager.log_error(
                "Pipeline",
                str(e),
                details={"job_id": job_id, "traceback": traceback.format_exc()},
                severity="error" if isinstance(e, ReelcutError) else "critical",
            )
            job = self._update(job_id, state=JobState.FAILED, error=str(e))

        finally:
            cleanup_job_dir(work_dir, artifacts)
            if partial_path:
                cleanup_artifacts([partial_path], self.output_dir)

        return job

    def _mix_music(self, job_id: str, composer: ComposerAgent, video_path: str, settings: RenderSettings):
        """Best effort: on failure the unmixed video is kept."""
        mixed_path = os.path.join(os.path.dirname(video_path), f".mixed_{uuid.uuid4().hex}.mp4")
        try:
            composer.mix_background_audio(video_path, settings.background_music, settings.music_volume, mixed_path)
            os.replace(mixed_path, video_path)
        except (ReelcutError, RuntimeError, OSError) as e:
            logger.warning(f"[Pipeline] Job {job_id}: background music skipped ({e})")
            self.job_store.modify(job_id, lambda j: {"warnings": j.warnings + [f"Background music skipped: {e}"]})
            cleanup_artifacts([mixed_path], os.path.dirname(video_path))

    # =========================================================================
    # Job record writes
    # =========================================================================

    def _update(self, job_id: str, **changes) -> Job:
        """
        Apply changes to a job record.

        Terminal jobs are left untouched, progress never moves backwards and
        state only moves forward.
        """
        def _apply(job: Job) -> Optional[Dict[str, Any]]:
            if job.state.is_terminal:
                logger.warning(f"[Pipeline] Ignoring update to {job.state.value} job {job_id}: {sorted(changes)}")
                return None
            accepted = dict(changes)
            if "progress" in accepted and accepted["progress"] < job.progress:
                logger.warning(f"[Pipeline] Ignoring progress regression {job.progress} -> {accepted['progress']}")
                accepted.pop("progress")
            new_state = accepted.get("state")
            if new_state is not None and _STATE_ORDER[new_state] < _STATE_ORDER[job.state]:
                logger.warning(f"[Pipeline] Ignoring state regression {job.state.value} -> {new_state.value}")
                accepted.pop("state")
            return accepted

        with self._terminal:
            job = self.job_store.modify(job_id, _apply)
            if job.state.is_terminal:
                self._terminal.notify_all()
        return job

    # =========================================================================
    # Input parsing
    # =========================================================================

    @staticmethod
    def _parse_scenes(scenes: Any) -> List[Scene]:
        if scenes is None:
            raise InvalidInput("Script must contain a list of scenes")
        if not isinstance(scenes, list):
            raise InvalidInput(f"Scenes must be a list, got {type(scenes).__name__}")
        if not scenes:
            raise InvalidInput("Script must contain at least one scene")

        parsed = []
        for index, raw in enumerate(scenes):
            if isinstance(raw, Scene):
                parsed.append(raw)
                continue
            if not isinstance(raw, dict):
                raise InvalidInput(f"Scene {index + 1} must be an object")
            try:
                parsed.append(Scene.model_validate(raw))
            except ValidationError as e:
                raise InvalidInput(f"Scene {index + 1} is malformed: {_format_validation_error(e)}") from e
        return parsed

    def _resolve_settings(self, settings: Union[RenderSettings, Dict[str, Any], None]) -> RenderSettings:
        """Configured render defaults overlaid with the fields the caller set."""
        try:
            if settings is None:
                resolved = RenderSettings.from_defaults(self.render_defaults)
            else:
                if not isinstance(settings, RenderSettings):
                    if not isinstance(settings, dict):
                        raise InvalidInput("Settings must be an object")
                    settings = RenderSettings.model_validate(settings)
                explicit = settings.model_dump(include=settings.model_fields_set)
                resolved = RenderSettings.from_defaults(self.render_defaults, **explicit)
        except ValidationError as e:
            raise InvalidInput(f"Invalid settings: {_format_validation_error(e)}") from e
        return self._resolve_music(resolved)

    def _resolve_music(self, settings: RenderSettings) -> RenderSettings:
        """Music tracks are looked up in the music directory; anything outside it is refused."""
        track = settings.background_music
        if not track:
            return settings
        path = track if os.path.isabs(track) else os.path.join(self.music_dir, track)
        if not is_owned(path, self.music_dir):
            raise InvalidInput(f"Background music must be a file inside the music directory: {track}")
        return settings.model_copy(update={"background_music": os.path.realpath(path)})
