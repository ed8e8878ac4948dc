"""
Job Ledger — one persisted record per generation job.

  insert(job)                                         — on submission
  update_status(id, status, result_url?, error?)      — terminal / status changes
  mark_progress(id, status, progress?)                — transient poll fields
  record_poll_error(id, message)                      — last failed poll, for display
  get(id) / query(filter) / delete(id)

Terminal updates are idempotent: re-applying the same terminal state is a
no-op, and a terminal record never transitions again. There is no
optimistic-concurrency check (last writer wins); each job has exactly one
active poll loop writing to it.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from supabase import Client

from . import config
from .models import (
    GenerationMode,
    Job,
    JobFilter,
    JobStatus,
    TERMINAL_STATUSES,
    utcnow,
)
from .supabase_client import get_supabase

logger = logging.getLogger(__name__)


def plan_status_update(
    current: Job,
    status: JobStatus,
    result_url: Optional[str] = None,
    error_message: Optional[str] = None,
) -> dict[str, Any]:
    """Field changes needed to move `current` to `status` (empty = no-op)."""
    if current.is_terminal:
        same = (
            status == current.status
            and (result_url is None or result_url == current.result_url)
            and (error_message is None or error_message == current.error_message)
        )
        if not same:
            logger.warning(
                f"[{current.id}] ignoring {status.value} update: job already {current.status.value}"
            )
        return {}

    changes: dict[str, Any] = {}
    if status != current.status:
        changes["status"] = status
    if result_url is not None and result_url != current.result_url:
        changes["result_url"] = result_url
    if error_message is not None and error_message != current.error_message:
        changes["error_message"] = error_message

    if status in TERMINAL_STATUSES:
        changes["completed_at"] = utcnow()
        changes["last_poll_error"] = None
        if status == JobStatus.COMPLETED:
            changes["progress"] = 100

    return changes


class JobLedger:
    """Shared transition rules; backends implement storage primitives."""

    def insert(self, job: Job) -> Job:
        raise NotImplementedError

    def get(self, job_id: str) -> Optional[Job]:
        raise NotImplementedError

    def query(self, filter: Optional[JobFilter] = None) -> list[Job]:
        raise NotImplementedError

    def delete(self, job_id: str) -> bool:
        raise NotImplementedError

    def _write(self, job_id: str, changes: dict[str, Any]) -> Optional[Job]:
        raise NotImplementedError

    # ── Transitions ──────────────────────────────────────────────────────

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        result_url: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Optional[Job]:
        current = self.get(job_id)
        if current is None:
            logger.warning(f"[{job_id}] status update for unknown job ignored")
            return None

        changes = plan_status_update(current, status, result_url, error_message)
        if not changes:
            return current

        logger.info(f"[{job_id}] {current.status.value} → {status.value}")
        return self._write(job_id, changes)

    def mark_progress(
        self,
        job_id: str,
        status: JobStatus,
        progress: Optional[int] = None,
    ) -> Optional[Job]:
        """Record a non-terminal poll result; a successful poll clears the last poll error."""
        if status in TERMINAL_STATUSES:
            raise ValueError("mark_progress only records non-terminal states; use update_status")

        current = self.get(job_id)
        if current is None or current.is_terminal:
            return current

        changes: dict[str, Any] = {}
        if current.status == JobStatus.QUEUED and status == JobStatus.PROCESSING:
            changes["status"] = JobStatus.PROCESSING
        if progress is not None and progress != current.progress:
            changes["progress"] = progress
        if current.last_poll_error:
            changes["last_poll_error"] = None

        if not changes:
            return current
        return self._write(job_id, changes)

    def record_poll_error(self, job_id: str, message: str) -> Optional[Job]:
        current = self.get(job_id)
        if current is None or current.is_terminal:
            return current
        return self._write(job_id, {"last_poll_error": message[:500]})


# ═════════════════════════════════════════════════════════════════════════════
# In-memory backend (local development, tests)
# ═════════════════════════════════════════════════════════════════════════════

class MemoryJobLedger(JobLedger):
    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}

    def insert(self, job: Job) -> Job:
        with self._lock:
            self._jobs[job.id] = job.model_copy()
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def query(self, filter: Optional[JobFilter] = None) -> list[Job]:
        filter = filter or JobFilter()
        with self._lock:
            jobs = [j.model_copy() for j in self._jobs.values()]

        if filter.status:
            jobs = [j for j in jobs if j.status == filter.status]
        if filter.mode:
            jobs = [j for j in jobs if j.mode == filter.mode]
        if filter.ids is not None:
            wanted = set(filter.ids)
            jobs = [j for j in jobs if j.id in wanted]

        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[: filter.limit]

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def _write(self, job_id: str, changes: dict[str, Any]) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            updated = job.model_copy(update=changes)
            self._jobs[job_id] = updated
            return updated.model_copy()


# ═════════════════════════════════════════════════════════════════════════════
# Supabase backend — `videos` table keyed by generation_id
# ═════════════════════════════════════════════════════════════════════════════

# Job field → column, where they differ
_COLUMNS = {"id": "generation_id", "result_url": "video_url"}
_FIELDS = {column: field for field, column in _COLUMNS.items()}


def _to_row(fields: dict[str, Any]) -> dict[str, Any]:
    row = {}
    for name, value in fields.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        row[_COLUMNS.get(name, name)] = value
    return row


def _from_row(row: dict[str, Any]) -> Job:
    data = {k: v for k, v in row.items() if k != "id"}
    for column, field in _FIELDS.items():
        if column in data:
            data[field] = data.pop(column)

    # Older rows used `error` and free-form modes
    if not data.get("error_message") and data.get("error"):
        data["error_message"] = data["error"]
    try:
        data["mode"] = GenerationMode(data.get("mode") or GenerationMode.TEXT_TO_VIDEO)
    except ValueError:
        data["mode"] = GenerationMode.TEXT_TO_VIDEO

    fields = {k: v for k, v in data.items() if k in Job.model_fields and v is not None}
    return Job(**fields)


class SupabaseJobLedger(JobLedger):
    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self._client = client
        self.table = table or config.SUPABASE_VIDEOS_TABLE

    def _table(self):
        if self._client is None:
            self._client = get_supabase()
        return self._client.table(self.table)

    def insert(self, job: Job) -> Job:
        self._table().insert(_to_row(job.model_dump())).execute()
        logger.info(f"[{job.id}] job recorded ({job.mode.value}, provider={job.provider})")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        resp = self._table().select("*").eq("generation_id", job_id).limit(1).execute()
        return _from_row(resp.data[0]) if resp.data else None

    def query(self, filter: Optional[JobFilter] = None) -> list[Job]:
        filter = filter or JobFilter()
        q = self._table().select("*")
        if filter.status:
            q = q.eq("status", filter.status.value)
        if filter.mode:
            q = q.eq("mode", filter.mode.value)
        if filter.ids is not None:
            q = q.in_("generation_id", filter.ids)

        resp = q.order("created_at", desc=True).limit(filter.limit).execute()
        return [_from_row(row) for row in resp.data or []]

    def delete(self, job_id: str) -> bool:
        resp = self._table().delete().eq("generation_id", job_id).execute()
        return bool(resp.data)

    def _write(self, job_id: str, changes: dict[str, Any]) -> Optional[Job]:
        resp = self._table().update(_to_row(changes)).eq("generation_id", job_id).execute()
        if resp.data:
            return _from_row(resp.data[0])
        return self.get(job_id)
