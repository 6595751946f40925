"""
REELCUT artifact cleanup

Policy:
- Audio, image and scene-clip artifacts of a job: deleted when the job reaches
  a terminal state, success or failure
- Job work directory (<TEMP_DIR>/<job_id>): removed once empty
- Only paths inside the job work directory are ever deleted
- Failures are logged and never raised
"""

import os
from typing import Iterable, List, Optional
from utils.logger import get_logger
logger = get_logger("cleanup")


def is_owned(path: str, owner_dir: str) -> bool:
    """True if `path` resolves to something strictly inside `owner_dir`."""
    real_path = os.path.realpath(path)
    real_owner = os.path.realpath(owner_dir)
    return os.path.commonpath([real_path, real_owner]) == real_owner and real_path != real_owner


def cleanup_artifacts(paths: Iterable[Optional[str]], owner_dir: str) -> int:
    """
    Delete job artifacts. Safe to call repeatedly.

    Args:
        paths: Artifact file paths (None entries are skipped)
        owner_dir: Job work directory; paths outside it are left alone

    Returns:
        Number of files deleted by this call
    """
    deleted = 0
    for path in paths:
        if not path:
            continue
        if not is_owned(path, owner_dir):
            logger.warning(f"[CLEANUP] Skipping non-owned path: {path}")
            continue
        try:
            os.remove(path)
            deleted += 1
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[CLEANUP] Failed to delete {path}: {e}")
    return deleted


def remove_work_dir(work_dir: str) -> bool:
    """Remove the job work directory if it is empty. Returns True if removed."""
    try:
        os.rmdir(work_dir)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        leftovers: List[str] = []
        try:
            leftovers = os.listdir(work_dir)
        except OSError:
            pass
        logger.warning(f"[CLEANUP] Work dir not removed {work_dir}: {e} (left: {leftovers[:5]})")
        return False


def cleanup_job_dir(work_dir: str, extra_paths: Iterable[Optional[str]] = ()) -> int:
    """
    Delete every file the job left in its work directory plus `extra_paths`.

    Returns:
        Number of files deleted
    """
    deleted = cleanup_artifacts(extra_paths, work_dir)
    if os.path.isdir(work_dir):
        try:
            names = os.listdir(work_dir)
        except OSError as e:
            logger.warning(f"[CLEANUP] Cannot list {work_dir}: {e}")
            names = []
        deleted += cleanup_artifacts(
            (os.path.join(work_dir, n) for n in names if os.path.isfile(os.path.join(work_dir, n))),
            work_dir,
        )
        remove_work_dir(work_dir)
    return deleted
