"""
Task runners: how queued job ids reach the pipeline.

- InProcessRunner: thread pool inside the API/CLI process
- RedisQueueRunner: job ids pushed onto a Redis list, consumed by a worker thread

Both call the same handler (ReelcutPipeline.run_job), so job state semantics
don't depend on the runner.
"""

import json
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

import redis

from utils.logger import get_logger
logger = get_logger("task_runner")

Handler = Callable[[str], Any]

# One retry after an unexpected handler crash
MAX_DELIVERIES = 2


class TaskRunner(ABC):
    """Runner interface."""

    name = "base"

    def __init__(self):
        self._handler: Optional[Handler] = None

    def start(self, handler: Handler):
        self._handler = handler
        logger.info(f"[Runner] {self.name} started")

    @abstractmethod
    def enqueue(self, job_id: str):
        """Hand a job id to the runner. Never blocks on job execution."""

    @abstractmethod
    def shutdown(self, wait: bool = True):
        """Stop accepting work."""

    def _require_handler(self) -> Handler:
        if self._handler is None:
            raise RuntimeError(f"{self.name} runner has not been started")
        return self._handler


class InProcessRunner(TaskRunner):
    """ThreadPoolExecutor with a bounded number of concurrent jobs."""

    name = "inprocess"

    def __init__(self, max_workers: int = 2):
        super().__init__()
        self.max_workers = max(1, max_workers)
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reelcut-job")

    def enqueue(self, job_id: str):
        handler = self._require_handler()
        self._executor.submit(self._run, handler, job_id)

    @staticmethod
    def _run(handler: Handler, job_id: str):
        try:
            handler(job_id)
        except Exception:
            logger.exception(f"[Runner] Job {job_id} crashed")

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)


class RedisQueueRunner(TaskRunner):
    """
    Redis list queue.

    Producers RPUSH a JSON payload, a daemon thread BLPOPs it and calls the
    handler. A handler that raises is re-queued once.
    """

    name = "redis"

    def __init__(self, client, queue_name: str = "reelcut:jobs", poll_timeout: int = 1):
        """
        Args:
            client: redis.Redis instance
            queue_name: List key
            poll_timeout: BLPOP timeout in seconds (controls shutdown latency)
        """
        super().__init__()
        self.client = client
        self.queue_name = queue_name
        self.poll_timeout = poll_timeout
        self._stop = threading.Event()
        self._worker: Optional[threading.Thread] = None

    @classmethod
    def from_url(cls, redis_url: str, queue_name: str = "reelcut:jobs") -> "RedisQueueRunner":
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        return cls(client, queue_name=queue_name)

    def start(self, handler: Handler):
        super().start(handler)
        self._stop.clear()
        self._worker = threading.Thread(target=self._consume, name="reelcut-redis-worker", daemon=True)
        self._worker.start()

    def enqueue(self, job_id: str, attempt: int = 1):
        self._require_handler()
        payload = json.dumps({"job_id": job_id, "attempt": attempt})
        self.client.rpush(self.queue_name, payload)
        logger.info(f"[Runner] Queued {job_id} on {self.queue_name} (attempt {attempt})")

    def process_next(self) -> bool:
        """Pop and run one job. Returns False when the queue was empty."""
        handler = self._require_handler()
        item = self.client.blpop([self.queue_name], timeout=self.poll_timeout)
        if item is None:
            return False

        _, raw = item
        payload = self._decode(raw)
        if payload is None:
            return True

        job_id = payload["job_id"]
        attempt = int(payload.get("attempt", 1))
        try:
            handler(job_id)
        except Exception:
            logger.exception(f"[Runner] Job {job_id} crashed (attempt {attempt})")
            if attempt < MAX_DELIVERIES:
                self.enqueue(job_id, attempt=attempt + 1)
        return True

    @staticmethod
    def _decode(raw) -> Optional[Dict[str, Any]]:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"[Runner] Dropping malformed queue entry: {raw!r}")
            return None
        if not isinstance(payload, dict) or not payload.get("job_id"):
            logger.warning(f"[Runner] Dropping queue entry without job_id: {raw!r}")
            return None
        return payload

    def _consume(self):
        while not self._stop.is_set():
            try:
                self.process_next()
            except redis.RedisError as e:
                logger.warning(f"[Runner] Redis error: {e}")
                self._stop.wait(self.poll_timeout)

    def shutdown(self, wait: bool = True):
        self._stop.set()
        if wait and self._worker is not None:
            self._worker.join(timeout=self.poll_timeout + 5)


def select_runner(runner_config: Dict[str, Any]) -> TaskRunner:
    """
    Build the runner named by `runner_config["type"]`.

    The Redis runner is only used when the server answers PING; otherwise the
    in-process runner takes over.
    """
    runner_type = (runner_config.get("type") or "inprocess").lower()
    max_jobs = int(runner_config.get("max_concurrent_jobs", 2))

    if runner_type == "redis":
        redis_url = runner_config.get("redis_url", "redis://localhost:6379/0")
        try:
            runner = RedisQueueRunner.from_url(redis_url, runner_config.get("redis_queue", "reelcut:jobs"))
            runner.client.ping()
            logger.info(f"[Runner] Using Redis queue at {redis_url}")
            return runner
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"[Runner] Redis unavailable ({e}); falling back to in-process runner")
    elif runner_type != "inprocess":
        logger.warning(f"[Runner] Unknown runner type '{runner_type}'; using in-process runner")

    return InProcessRunner(max_workers=max_jobs)
