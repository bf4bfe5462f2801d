"""Deduplicated background rebuilds of whole schedules.

At most one rebuild per schedule is in flight: enqueuing a new rebuild
supersedes any queued one for the same schedule, and runs for one schedule
are serialised while different schedules rebuild in parallel.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from threading import Event, Lock
from time import perf_counter
from typing import Protocol

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    NotFound = "NotFound"
    Enqueued = "Enqueued"
    Processing = "Processing"
    Succeeded = "Succeeded"
    Failed = "Failed"
    Deleted = "Deleted"


ACTIVE_STATES = frozenset({JobState.Enqueued, JobState.Processing})
TERMINAL_STATES = frozenset({JobState.Succeeded, JobState.Failed, JobState.Deleted})


@dataclass(frozen=True)
class RebuildTask:
    schedule_id: int
    configuration_id: int
    user_id: str
    reason: str = "manual"

    @property
    def dedup_key(self) -> str:
        return rebuild_key(self.schedule_id)


def rebuild_key(schedule_id: int) -> str:
    return f"schedule-rebuild-{schedule_id}"


@dataclass(frozen=True)
class JobStatus:
    job_id: str | None
    state: JobState
    key: str | None = None
    reason: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    attempts: int = 0
    error: str | None = None


def _not_found(job_id: str | None = None, key: str | None = None) -> JobStatus:
    return JobStatus(job_id=job_id, key=key, state=JobState.NotFound)


class JobQueue(Protocol):
    def enqueue(self, key: str, task: Callable[[], object], *, reason: str | None = None) -> str: ...

    def cancel(self, key: str) -> bool: ...

    def status(self, key: str) -> JobStatus: ...

    def job_status(self, job_id: str) -> JobStatus: ...

    def key_lock(self, key: str) -> Lock: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InProcessJobQueue:
    """Keyed job queue on a thread pool.

    ``enqueue`` marks any queued job under the same key as Deleted before
    submitting the new one; a Deleted job is skipped when a worker picks it
    up. A job that is already Processing runs to completion, and the per-key
    lock makes its successor wait for it. Failed jobs are retried up to
    ``max_attempts`` times in total. Finished jobs are forgotten once they are
    older than ``retention_seconds`` and a newer job exists for their key.
    """

    def __init__(self, *, max_workers: int = 2, max_attempts: int = 1, retention_seconds: float = 3600) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="schedule-rebuild")
        self._max_attempts = max(1, max_attempts)
        self._lock = Lock()
        self._key_locks: dict[str, Lock] = {}
        self._jobs: dict[str, JobStatus] = {}
        self._latest_by_key: dict[str, str] = {}
        self._done: dict[str, Event] = {}
        self._retention = timedelta(seconds=retention_seconds)

    def _update(self, job_id: str, **changes) -> JobStatus:
        with self._lock:
            status = replace(self._jobs[job_id], **changes)
            self._jobs[job_id] = status
            return status

    def enqueue(self, key: str, task: Callable[[], object], *, reason: str | None = None) -> str:
        job_id = uuid.uuid4().hex
        with self._lock:
            self._prune()
            previous_id = self._latest_by_key.get(key)
            previous = self._jobs.get(previous_id) if previous_id else None
            if previous is not None and previous.state == JobState.Enqueued:
                self._jobs[previous_id] = replace(previous, state=JobState.Deleted, completed_at=_now())
                self._done[previous_id].set()
            self._jobs[job_id] = JobStatus(
                job_id=job_id,
                key=key,
                state=JobState.Enqueued,
                reason=reason,
                created_at=_now(),
            )
            self._latest_by_key[key] = job_id
            self._done[job_id] = Event()
        self._executor.submit(self._run, job_id, key, task)
        return job_id

    def _prune(self) -> None:
        """Drop finished jobs past retention; caller holds ``_lock``."""
        cutoff = _now() - self._retention
        latest = set(self._latest_by_key.values())
        expired = [
            job_id
            for job_id, status in self._jobs.items()
            if job_id not in latest
            and status.state in TERMINAL_STATES
            and status.completed_at is not None
            and status.completed_at <= cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
            self._done.pop(job_id, None)

    def key_lock(self, key: str) -> Lock:
        with self._lock:
            return self._key_locks.setdefault(key, Lock())

    def _run(self, job_id: str, key: str, task: Callable[[], object]) -> None:
        with self.key_lock(key):
            with self._lock:
                status = self._jobs.get(job_id)
                if status is None or status.state != JobState.Enqueued:
                    return
                done = self._done[job_id]
                self._jobs[job_id] = replace(status, state=JobState.Processing, started_at=_now())
            try:
                for attempt in range(1, self._max_attempts + 1):
                    self._update(job_id, attempts=attempt)
                    try:
                        task()
                    except Exception as exc:
                        if attempt >= self._max_attempts:
                            self._update(job_id, state=JobState.Failed, completed_at=_now(), error=str(exc))
                            return
                        logger.warning(
                            "SCHEDULE REBUILD RETRY | job_id=%s | key=%s | attempt=%s | error=%s",
                            job_id,
                            key,
                            attempt,
                            exc,
                        )
                        continue
                    self._update(job_id, state=JobState.Succeeded, completed_at=_now())
                    return
            finally:
                done.set()

    def cancel(self, key: str) -> bool:
        with self._lock:
            job_id = self._latest_by_key.get(key)
            status = self._jobs.get(job_id) if job_id else None
            if status is None or status.state != JobState.Enqueued:
                return False
            self._jobs[job_id] = replace(status, state=JobState.Deleted, completed_at=_now())
            self._done[job_id].set()
            return True

    def status(self, key: str) -> JobStatus:
        with self._lock:
            job_id = self._latest_by_key.get(key)
            if job_id is None:
                return _not_found(key=key)
            return self._jobs[job_id]

    def job_status(self, job_id: str) -> JobStatus:
        with self._lock:
            return self._jobs.get(job_id) or _not_found(job_id=job_id)

    def wait(self, job_id: str, timeout: float | None = None) -> JobStatus:
        done = self._done.get(job_id)
        if done is not None:
            done.wait(timeout)
        return self.job_status(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class RebuildCoordinator:
    def __init__(self, queue: JobQueue, runner: Callable[[RebuildTask], object]) -> None:
        self.queue = queue
        self._runner = runner

    def enqueue_rebuild(self, *, schedule_id: int, configuration_id: int, user_id: str, reason: str) -> str:
        task = RebuildTask(
            schedule_id=schedule_id,
            configuration_id=configuration_id,
            user_id=user_id,
            reason=reason,
        )
        job_id = self.queue.enqueue(task.dedup_key, lambda: self._execute(task), reason=reason)
        logger.info(
            "SCHEDULE REBUILD ENQUEUED | schedule_id=%s | configuration_id=%s | user_id=%s | reason=%s | job_id=%s",
            schedule_id,
            configuration_id,
            user_id,
            reason,
            job_id,
        )
        return job_id

    def _execute(self, task: RebuildTask) -> object:
        started = perf_counter()
        logger.info(
            "SCHEDULE REBUILD START | schedule_id=%s | user_id=%s | reason=%s",
            task.schedule_id,
            task.user_id,
            task.reason,
        )
        try:
            result = self._runner(task)
        except Exception:
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.exception(
                "SCHEDULE REBUILD FAILED | schedule_id=%s | user_id=%s | wall_ms=%s",
                task.schedule_id,
                task.user_id,
                elapsed_ms,
            )
            raise
        elapsed_ms = int((perf_counter() - started) * 1000)
        logger.info(
            "SCHEDULE REBUILD COMPLETE | schedule_id=%s | user_id=%s | wall_ms=%s",
            task.schedule_id,
            task.user_id,
            elapsed_ms,
        )
        return result

    @contextmanager
    def schedule_lock(self, schedule_id: int) -> Iterator[None]:
        """Hold the lock queued rebuilds of this schedule run under.

        Request-thread rewrites of a schedule's events take it too, so they
        never interleave with a background rebuild of the same schedule.
        """
        with self.queue.key_lock(rebuild_key(schedule_id)):
            yield

    def is_rebuild_in_progress(self, schedule_id: int) -> bool:
        return self.queue.status(rebuild_key(schedule_id)).state in ACTIVE_STATES

    def get_rebuild_status(self, schedule_id: int) -> JobStatus:
        return self.queue.status(rebuild_key(schedule_id))

    def get_job_status(self, job_id: str) -> JobStatus:
        return self.queue.job_status(job_id)
