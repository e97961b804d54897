from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from threading import Condition, Lock
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from gallery_sync.config import Settings
from gallery_sync.models import (
    ItemType,
    JobSnapshot,
    JobStatus,
    Outcome,
    TaskResult,
    new_job_id,
    utcnow,
)
from gallery_sync.services.albums import AlbumReconciler, root_name_for
from gallery_sync.services.ingest import MediaIngestor
from gallery_sync.services.pipeline.interfaces import BlobStore, Ingestor, Walker
from gallery_sync.services.pipeline.models import WorkUnit
from gallery_sync.services.pipeline.walker import ROOT_ALBUM_PATH, DirectoryWalker, album_path_for
from gallery_sync.services.task_log import TaskResultLog
from gallery_sync.services.thumbnails import ThumbnailEncoder
from gallery_sync.storage import Database
from gallery_sync.telemetry import log_sync_event, log_timing
from gallery_sync.utils.errors import (
    AppError,
    InvalidPathError,
    InvalidStateError,
    JobNotFoundError,
    OverlappingSyncError,
)

logger = logging.getLogger(__name__)

JobId = Union[UUID, str]


def paths_overlap(first: str, second: str) -> bool:
    if first == second or ROOT_ALBUM_PATH in (first, second):
        return True
    return second.startswith(f"{first}/") or first.startswith(f"{second}/")


class SyncJob:
    """State of one sync run.

    The worker executing the job moves it through pending -> running -> terminal and
    owns the counters and the result log. A job stays pending while its lineage is
    reconciled and its subtree walked; the unit count is set in the same step that
    marks it running. Control operations only flip the pause state or raise the stop
    flag; the worker honours both between units.
    """

    def __init__(self, job_id: UUID, root: Path, album_path: str) -> None:
        self.id = job_id
        self.root = root
        self.album_path = album_path
        self.created_at = utcnow()
        self.log = TaskResultLog()
        self._cond = Condition()
        self._status = JobStatus.PENDING
        self._started_at = None
        self._completed_at = None
        self._total = 0
        self._remaining = 0
        self._reason: Optional[str] = None
        self._stop_requested = False

    @property
    def status(self) -> JobStatus:
        with self._cond:
            return self._status

    def snapshot(self) -> JobSnapshot:
        with self._cond:
            return JobSnapshot(
                id=self.id,
                status=self._status,
                path=self.album_path,
                created_at=self.created_at,
                started_at=self._started_at,
                completed_at=self._completed_at,
                total_tasks=self._total,
                remaining_tasks=self._remaining,
                results=self.log.snapshot(),
                reason=self._reason,
            )

    # control operations

    def toggle_pause(self) -> JobStatus:
        with self._cond:
            if self._status is JobStatus.RUNNING:
                if self._stop_requested:
                    raise InvalidStateError(f"Job {self.id} is stopping")
                self._status = JobStatus.PAUSED
            elif self._status is JobStatus.PAUSED:
                self._status = JobStatus.RUNNING
                self._cond.notify_all()
            else:
                raise InvalidStateError(f"Job {self.id} is {self._status.value} and cannot be paused or resumed")
            return self._status

    def request_stop(self) -> bool:
        """Ask the job to stop; returns True when this call changed anything."""
        with self._cond:
            if self._status.is_terminal or self._stop_requested:
                return False
            if self._status is JobStatus.PENDING:
                self._status = JobStatus.STOPPED
                self._completed_at = utcnow()
                self._reason = "stopped before start"
                return True
            self._stop_requested = True
            self._cond.notify_all()
            return True

    # worker side

    def begin(self, total: int) -> bool:
        """Move a pending job to running with its unit count; False if it left pending meanwhile."""
        with self._cond:
            if self._status is not JobStatus.PENDING:
                return False
            self._total = total
            self._remaining = total
            self._status = JobStatus.RUNNING
            self._started_at = utcnow()
            return True

    def checkpoint(self) -> bool:
        """Block while paused; False means the worker must stop processing."""
        with self._cond:
            while self._status is JobStatus.PAUSED and not self._stop_requested:
                self._cond.wait()
            return not self._stop_requested

    def record(self, result: TaskResult) -> None:
        with self._cond:
            self.log.append(result)
            self._remaining -= 1

    def finish(self) -> JobStatus:
        with self._cond:
            if self._stop_requested:
                self._status = JobStatus.STOPPED
                self._reason = "stopped by request"
            else:
                self._status = JobStatus.COMPLETED
            self._completed_at = utcnow()
            return self._status

    def fail(self, reason: str) -> None:
        with self._cond:
            if self._status.is_terminal:
                return
            self._status = JobStatus.FAILED
            self._reason = reason
            self._completed_at = utcnow()


class SyncManager:
    """Manage sync job lifecycle and background execution."""

    def __init__(
        self,
        data_root: Path,
        database: Database,
        blob_store: BlobStore,
        *,
        max_workers: int = 2,
        walker: Optional[Walker] = None,
        reconciler: Optional[AlbumReconciler] = None,
        ingestor: Optional[Ingestor] = None,
    ) -> None:
        self.data_root = Path(data_root).resolve()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gallery-sync")
        self._lock = Lock()
        self._jobs: dict[UUID, SyncJob] = {}
        self._shutdown = False
        self.walker = walker or DirectoryWalker(self.data_root)
        self.reconciler = reconciler or AlbumReconciler(database, root_name_for(self.data_root))
        self.ingestor = ingestor or MediaIngestor(database, blob_store)

    @classmethod
    def from_settings(cls, settings: Settings, database: Database, blob_store: BlobStore) -> "SyncManager":
        data_root = Path(settings.data_root).resolve()
        return cls(
            data_root,
            database,
            blob_store,
            max_workers=settings.max_workers,
            walker=DirectoryWalker(data_root, settings.photo_extensions, settings.video_extensions),
            ingestor=MediaIngestor(
                database,
                blob_store,
                encoder=ThumbnailEncoder(settings.thumbnail_max_edge, settings.thumbnail_quality),
            ),
        )

    def start_sync(self, path: Union[str, Path]) -> UUID:
        root = self._resolve(path)
        album_path = album_path_for(self.data_root, root)
        job = SyncJob(new_job_id(), root, album_path)

        with self._lock:
            if self._shutdown:
                raise InvalidStateError("Sync manager is shutting down")
            for other in self._jobs.values():
                if other.status.is_active and paths_overlap(other.album_path, album_path):
                    raise OverlappingSyncError(album_path, str(other.id))
            self._jobs[job.id] = job

        self._executor.submit(self._execute, job)
        log_sync_event("job_created", {"job_id": str(job.id), "path": album_path})
        return job.id

    def get_job(self, job_id: JobId) -> JobSnapshot:
        return self._require(job_id).snapshot()

    def list_jobs(self, status: Optional[JobStatus] = None) -> list[JobSnapshot]:
        with self._lock:
            jobs = list(self._jobs.values())
        snapshots = [job.snapshot() for job in jobs]
        if status is not None:
            snapshots = [snapshot for snapshot in snapshots if snapshot.status is status]
        snapshots.sort(key=lambda snapshot: (snapshot.created_at, snapshot.id))
        return snapshots

    def pause_job(self, job_id: JobId) -> JobSnapshot:
        job = self._require(job_id)
        previous = job.status
        current = job.toggle_pause()
        log_sync_event(
            "job_status_changed", {"job_id": str(job.id), "from": previous.value, "to": current.value}
        )
        return job.snapshot()

    def stop_job(self, job_id: JobId) -> JobSnapshot:
        job = self._require(job_id)
        previous = job.status
        if job.request_stop():
            log_sync_event("job_stop_requested", {"job_id": str(job.id), "previous_status": previous.value})
        return job.snapshot()

    def stop_all_jobs(self) -> int:
        with self._lock:
            jobs = list(self._jobs.values())
        affected = sum(1 for job in jobs if job.request_stop())
        log_sync_event("all_jobs_stopped", {"affected": affected})
        return affected

    def clear_finished_jobs(self) -> int:
        with self._lock:
            finished = [job_id for job_id, job in self._jobs.items() if job.status.is_terminal]
            for job_id in finished:
                del self._jobs[job_id]
        log_sync_event("finished_jobs_cleared", {"cleared": len(finished)})
        return len(finished)

    def stats(self) -> dict[str, int]:
        snapshots = self.list_jobs()
        counts = {status.value: 0 for status in JobStatus}
        for snapshot in snapshots:
            counts[snapshot.status.value] += 1
        counts["total"] = len(snapshots)
        return counts

    def is_path_syncing(self, album_path: str) -> bool:
        with self._lock:
            jobs = list(self._jobs.values())
        return any(job.status.is_active and paths_overlap(job.album_path, album_path) for job in jobs)

    def shutdown(self, wait: bool = True) -> None:
        """Stop every active job and release the worker threads."""
        with self._lock:
            already_shutdown = self._shutdown
            self._shutdown = True
        if already_shutdown:
            return
        self.stop_all_jobs()
        self._executor.shutdown(wait=wait, cancel_futures=False)

    def _require(self, job_id: JobId) -> SyncJob:
        try:
            key = job_id if isinstance(job_id, UUID) else UUID(str(job_id))
        except ValueError:
            raise JobNotFoundError(str(job_id)) from None
        with self._lock:
            job = self._jobs.get(key)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def _resolve(self, path: Union[str, Path]) -> Path:
        try:
            candidate = Path(path)
            if not candidate.is_absolute() or not candidate.resolve().is_relative_to(self.data_root):
                candidate = self.data_root / str(path).lstrip("/\\")
            resolved = candidate.resolve()
            inside = resolved.is_relative_to(self.data_root)
            exists = inside and resolved.exists()
            is_dir = exists and resolved.is_dir()
        except (OSError, ValueError) as exc:
            raise InvalidPathError(f"Path {path!r} cannot be resolved: {exc}") from exc

        if not inside:
            raise InvalidPathError(f"Path {path} is outside the data root")
        if not exists:
            raise InvalidPathError(f"Path {path} does not exist")
        if not is_dir:
            raise InvalidPathError(f"Path {path} is not a directory")
        return resolved

    def _execute(self, job: SyncJob) -> None:
        if job.status is not JobStatus.PENDING:
            logger.info("Sync job %s not started, status is %s", job.id, job.status.value)
            return

        started = time.perf_counter()
        try:
            self.reconciler.ensure_lineage(job.album_path)
            units = self.walker.walk(job.root)
        except Exception as exc:  # nothing processed yet; the job fails as a whole
            logger.exception("Sync job %s failed before processing: %s", job.id, exc)
            job.fail(str(exc))
            log_sync_event("job_failed", {"job_id": str(job.id), "reason": str(exc)})
            return

        if not job.begin(len(units)):
            logger.info("Sync job %s not started, status is %s", job.id, job.status.value)
            return
        log_sync_event("job_started", {"job_id": str(job.id), "path": job.album_path, "total": len(units)})

        for unit in units:
            if not job.checkpoint():
                break
            job.record(self._process_unit(job, unit))

        final_status = job.finish()
        snapshot = job.snapshot()
        log_timing(
            "sync_job",
            (time.perf_counter() - started) * 1000,
            {
                "job_id": str(job.id),
                "status": final_status.value,
                "total": snapshot.total_tasks,
                "remaining": snapshot.remaining_tasks,
                "failed": job.log.count(Outcome.FAILED),
            },
        )

    def _process_unit(self, job: SyncJob, unit: WorkUnit) -> TaskResult:
        started_at = utcnow()
        started = time.perf_counter()
        outcome = Outcome.FAILED
        error: Optional[str] = None
        warning: Optional[str] = None

        try:
            if unit.item_type is ItemType.FOLDER:
                _, created = self.reconciler.reconcile(unit)
                outcome = Outcome.SUCCESS if created else Outcome.SKIPPED
            else:
                result = self.ingestor.ingest(unit)
                outcome, warning = result.outcome, result.warning
        except AppError as exc:
            error = exc.message
            logger.warning("Sync job %s: %s", job.id, exc.message)
        except SQLAlchemyError as exc:
            error = f"store failure for {unit.item}: {exc}"
            logger.warning("Sync job %s: %s", job.id, error)
        except Exception as exc:  # pragma: no cover
            error = f"unexpected failure for {unit.item}: {exc}"
            logger.exception("Sync job %s: %s", job.id, error)

        return TaskResult(
            item=unit.item,
            item_type=unit.item_type,
            outcome=outcome,
            duration_seconds=time.perf_counter() - started,
            started_at=started_at,
            error=error,
            warning=warning,
        )
