import json
import os
import datetime
import threading
from typing import Dict, Any, List, Optional

from utils.logger import get_logger
logger = get_logger("error_manager")

DEFAULT_LOG_FILE = "outputs/pipeline_errors.log"


class ErrorManager:
    """
    Records and retrieves pipeline failures in a bounded JSON log.

    Each instance owns one log file; the pipeline holds its own instance.
    """

    MAX_ENTRIES = 100

    def __init__(self, log_file: Optional[str] = None, max_entries: Optional[int] = None):
        self.log_file = log_file or os.getenv("ERROR_LOG_FILE", DEFAULT_LOG_FILE)
        self.max_entries = max_entries or self.MAX_ENTRIES
        self._lock = threading.Lock()

    def log_error(
        self,
        service: str,
        error_message: str,
        details: Any = None,
        severity: str = "error"
    ):
        """
        Append an error entry to the log file.

        Args:
            service: Component that failed (e.g., "Pipeline", "ImageAgent")
            error_message: Brief error description
            details: Additional context or full traceback
            severity: Error severity ("warning", "error", "critical")
        """
        timestamp = datetime.datetime.now().isoformat()

        entry = {
            "timestamp": timestamp,
            "service": service,
            "message": error_message,
            "details": str(details) if details else None,
            "severity": severity
        }

        with self._lock:
            try:
                log_dir = os.path.dirname(self.log_file)
                if log_dir:
                    os.makedirs(log_dir, exist_ok=True)

                logs = []
                if os.path.exists(self.log_file):
                    try:
                        with open(self.log_file, 'r', encoding='utf-8') as f:
                            file_content = f.read()
                            if file_content.strip():
                                logs = json.loads(file_content)
                    except json.JSONDecodeError:
                        logs = []  # Reset if corrupted

                logs.append(entry)

                # Keep history bounded
                if len(logs) > self.max_entries:
                    logs = logs[-self.max_entries:]

                with open(self.log_file, 'w', encoding='utf-8') as f:
                    json.dump(logs, f, indent=2, ensure_ascii=False)

            except OSError as e:
                logger.critical(f"Failed to write to error log: {e} (original: [{service}] {error_message})")

    def get_recent_errors(self, limit: int = 20) -> List[Dict]:
        """Get recent error entries, newest first."""
        if not os.path.exists(self.log_file):
            return []

        try:
            with open(self.log_file, 'r', encoding='utf-8') as f:
                logs = json.load(f)
                return sorted(logs, key=lambda x: x['timestamp'], reverse=True)[:limit]
        except (OSError, ValueError, KeyError):
            return []

    def clear_logs(self):
        """Clear the error log file."""
        with self._lock:
            if os.path.exists(self.log_file):
                os.remove(self.log_file)
