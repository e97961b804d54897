"""Application services for gallery sync."""

from .albums import AlbumReconciler, delete_album
from .ingest import MediaIngestor
from .sync_manager import SyncJob, SyncManager
from .task_log import TaskResultLog
from .thumbnails import ThumbnailEncoder

__all__ = [
    "AlbumReconciler",
    "MediaIngestor",
    "SyncJob",
    "SyncManager",
    "TaskResultLog",
    "ThumbnailEncoder",
    "delete_album",
]
