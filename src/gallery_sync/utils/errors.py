"""Error taxonomy for sync, ingestion and storage."""
from typing import Optional

from fastapi import status


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidPathError(AppError):
    """Sync target is outside the data root, missing, or not a directory."""
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class InvalidStateError(AppError):
    """Job cannot accept the requested transition."""
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_409_CONFLICT)


class OverlappingSyncError(InvalidStateError):
    """An active job already covers part of the requested subtree."""
    def __init__(self, path: str, conflicting_job_id: str):
        self.conflicting_job_id = conflicting_job_id
        super().__init__(f"Path {path} overlaps active sync job {conflicting_job_id}")


class NotFoundError(AppError):
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with ID '{identifier}' not found", status.HTTP_404_NOT_FOUND)


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str):
        super().__init__("Sync job", job_id)


class AlbumNotFoundError(NotFoundError):
    def __init__(self, album_id: str):
        super().__init__("Album", album_id)


class MediaNotFoundError(NotFoundError):
    def __init__(self, media_id: str):
        super().__init__("Media", media_id)


class StorageError(AppError):
    """Relational store or byte store could not be reached or written."""
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class IngestionError(AppError):
    """
    A single file could not be ingested.

    Args:
        step: Pipeline step that failed (read, decode, blob_write, record_write)
        filename: Path of the file being ingested
        cause: Underlying exception, if any
    """
    def __init__(self, step: str, filename: str, cause: Optional[BaseException] = None):
        self.step = step
        self.filename = filename
        self.cause = cause
        detail = f"{step} failed for {filename}"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)
