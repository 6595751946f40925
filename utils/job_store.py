"""
In-memory record stores.

Records are pydantic models. Every write replaces the stored record with a new
copy under a lock, and every read hands out a copy, so a reader never observes
a half-applied update and can't mutate stored state by accident.
"""

import threading
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from schemas import Job, JobState, Script
from schemas.models import utc_now
from utils.errors import NotFound

T = TypeVar("T", bound=BaseModel)


class InMemoryStore(Generic[T]):
    """Thread-safe id -> record mapping with get/put/list/update."""

    kind = "Record"

    def __init__(self):
        self._records: Dict[str, T] = {}
        self._lock = threading.RLock()

    def get(self, record_id: str) -> T:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise NotFound(self.kind, record_id)
            return record.model_copy(deep=True)

    def put(self, record: T) -> T:
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)
        return record

    def update(self, record_id: str, **changes) -> T:
        """Apply `changes` atomically and return the new record."""
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise NotFound(self.kind, record_id)
            if "updated_at" in type(current).model_fields:
                changes.setdefault("updated_at", utc_now())
            updated = current.model_copy(update=changes)
            self._records[record_id] = updated
            return updated.model_copy(deep=True)

    def modify(self, record_id: str, fn: Callable[[T], Optional[Dict]]) -> T:
        """
        Read-modify-write under the store lock.

        `fn` receives a copy of the current record and returns the changes to
        apply (or None for no change).
        """
        with self._lock:
            current = self.get(record_id)
            changes = fn(current)
            if not changes:
                return current
            return self.update(record_id, **changes)

    def list(self, predicate: Optional[Callable[[T], bool]] = None) -> List[T]:
        with self._lock:
            records = [r.model_copy(deep=True) for r in self._records.values()]
        if predicate is not None:
            records = [r for r in records if predicate(r)]
        return records

    def __contains__(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class JobStore(InMemoryStore[Job]):
    """Job registry. Only the pipeline coordinator writes to it."""

    kind = "Job"

    def list_jobs(self, state: Optional[JobState] = None) -> List[Job]:
        jobs = self.list(lambda j: state is None or j.state == state)
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs


class ScriptStore(InMemoryStore[Script]):
    """Script registry for the CRUD collaborator."""

    kind = "Script"

    def delete(self, script_id: str) -> Script:
        with self._lock:
            record = self._records.pop(script_id, None)
        if record is None:
            raise NotFound(self.kind, script_id)
        return record

    def list_scripts(self) -> List[Script]:
        scripts = self.list()
        scripts.sort(key=lambda s: s.created_at, reverse=True)
        return scripts
