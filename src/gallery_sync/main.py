"""FastAPI application exposing the sync control surface and the gallery records."""
import logging
import mimetypes
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Query, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError

from gallery_sync import __version__
from gallery_sync.config import Settings, get_settings
from gallery_sync.models import JobStatus
from gallery_sync.schemas import (
    AlbumResponse,
    ErrorResponse,
    HealthResponse,
    JobActionRequest,
    JobActionResponse,
    JobSnapshotResponse,
    JobStatsResponse,
    ListJobsResponse,
    StartSyncRequest,
    StartSyncResponse,
    StopJobResponse,
)
from gallery_sync.services import SyncManager, delete_album
from gallery_sync.storage import Database, FileBlobStore, Media
from gallery_sync.utils.errors import (
    AlbumNotFoundError,
    AppError,
    InvalidStateError,
    MediaNotFoundError,
    NotFoundError,
    StorageError,
)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, manager: Optional[SyncManager] = None) -> FastAPI:
    """Build the application with its store, blob store and sync manager wired in."""
    settings = settings or get_settings()

    if manager is None:
        database = Database(settings.db_path)
        database.init_schema()
        blob_store = FileBlobStore(settings.blob_root)
        manager = SyncManager.from_settings(settings, database, blob_store)
    else:
        database = manager.reconciler.database
        blob_store = manager.ingestor.blob_store

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info({"event": "app.startup", "data_root": str(manager.data_root)})
        yield
        manager.shutdown()
        logger.info({"event": "app.shutdown"})

    app = FastAPI(title="Gallery Sync", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.blob_store = blob_store
    app.state.sync_manager = manager

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error({"event": "api.error", "path": request.url.path, "error": exc.message})
        body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
        return JSONResponse(body.model_dump(), status_code=exc.status_code)

    @app.exception_handler(SQLAlchemyError)
    async def handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error({"event": "api.store_error", "path": request.url.path, "error": str(exc)})
        body = ErrorResponse(error=StorageError.__name__, detail="Relational store unavailable.")
        return JSONResponse(body.model_dump(), status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Report liveness once the relational store answers."""
        with database.unit_of_work() as repo:
            repo.ping()
        return HealthResponse(status="ok", version=__version__)

    # Sync jobs

    @app.post("/api/v1/sync", status_code=status.HTTP_202_ACCEPTED, response_model=StartSyncResponse)
    async def start_sync(payload: StartSyncRequest) -> StartSyncResponse:
        job_id = manager.start_sync(payload.path)
        return StartSyncResponse(id=job_id)

    @app.get("/api/v1/sync", response_model=ListJobsResponse)
    async def list_jobs(status_filter: Optional[JobStatus] = Query(default=None, alias="status")) -> ListJobsResponse:
        snapshots = manager.list_jobs(status=status_filter)
        return ListJobsResponse(jobs=[JobSnapshotResponse.from_snapshot(snapshot) for snapshot in snapshots])

    @app.get("/api/v1/sync/stats", response_model=JobStatsResponse)
    async def job_stats() -> JobStatsResponse:
        counts = manager.stats()
        total = counts.pop("total")
        return JobStatsResponse(counts=counts, total=total)

    @app.post("/api/v1/sync/actions", response_model=JobActionResponse)
    async def job_action(payload: JobActionRequest) -> JobActionResponse:
        if payload.action == "cancel":
            affected = manager.stop_all_jobs()
        else:
            affected = manager.clear_finished_jobs()
        return JobActionResponse(action=payload.action, affected=affected)

    @app.get("/api/v1/sync/{job_id}", response_model=JobSnapshotResponse)
    async def get_job(job_id: str) -> JobSnapshotResponse:
        return JobSnapshotResponse.from_snapshot(manager.get_job(job_id))

    @app.post("/api/v1/sync/{job_id}/pause", response_model=JobSnapshotResponse)
    async def pause_job(job_id: str) -> JobSnapshotResponse:
        """Toggle between running and paused."""
        return JobSnapshotResponse.from_snapshot(manager.pause_job(job_id))

    @app.post("/api/v1/sync/{job_id}/stop", response_model=StopJobResponse)
    async def stop_job(job_id: str) -> StopJobResponse:
        snapshot = manager.stop_job(job_id)
        if snapshot.status.is_terminal:
            message = f"Sync job is {snapshot.status.value}."
        else:
            message = "Stop requested; the job stops after the current item."
        return StopJobResponse(message=message, job_id=snapshot.id)

    # Albums and media

    @app.get("/api/v1/albums/{album_id}", response_model=AlbumResponse)
    def get_album(album_id: str) -> AlbumResponse:
        with database.unit_of_work() as repo:
            album = repo.get_album(album_id)
            if album is None:
                raise AlbumNotFoundError(album_id)
            return AlbumResponse(
                id=album.id,
                path=album.path,
                name=album.name,
                description=album.description,
                parent_id=album.parent_id,
                thumbnail_id=album.thumbnail_id,
                children=[child.id for child in repo.list_child_albums(album.id)],
                media=[media.id for media in repo.list_media(album.id)],
            )

    @app.delete("/api/v1/albums/{album_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_album(album_id: str) -> Response:
        with database.unit_of_work() as repo:
            album = repo.get_album(album_id)
            if album is None:
                raise AlbumNotFoundError(album_id)
            album_path = album.path
        if manager.is_path_syncing(album_path):
            raise InvalidStateError(f"Album {album_path} is being synced")
        delete_album(database, blob_store, album_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    def _require_media(media_id: str) -> Media:
        with database.unit_of_work() as repo:
            media = repo.get_media(media_id)
        if media is None:
            raise MediaNotFoundError(media_id)
        return media

    @app.get("/api/v1/media/{media_id}/thumbnail")
    def media_thumbnail(media_id: str) -> Response:
        media = _require_media(media_id)
        if not media.has_thumbnail:
            raise NotFoundError("Thumbnail", media_id)
        return Response(content=media.thumbnail, media_type="image/jpeg")

    @app.get("/api/v1/media/{media_id}/content")
    def media_content(media_id: str) -> Response:
        media = _require_media(media_id)
        try:
            with blob_store.read(media.blob_path) as handle:
                data = handle.read()
        except FileNotFoundError:
            raise NotFoundError("Media content", media_id) from None
        except OSError as exc:
            raise StorageError(f"Could not read blob {media.blob_path}: {exc}") from exc
        media_type = mimetypes.guess_type(media.filename)[0] or "application/octet-stream"
        return Response(content=data, media_type=media_type)

    return app
