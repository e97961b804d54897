from __future__ import annotations

import hashlib
import logging
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple

from gallery_sync.services.pipeline.interfaces import BlobStore
from gallery_sync.services.pipeline.models import WorkUnit
from gallery_sync.services.pipeline.walker import ROOT_ALBUM_PATH, join_album_path
from gallery_sync.storage import Album, Database, Repository
from gallery_sync.utils.errors import AlbumNotFoundError, StorageError

logger = logging.getLogger(__name__)

ID_LENGTH = 12


def album_id_for(path: str) -> str:
    """Deterministic album id: re-syncing the same folder always yields the same id."""
    return hashlib.sha256(path.encode("utf-8")).hexdigest()[:ID_LENGTH]


def media_id_for(album_id: str, filename: str) -> str:
    return hashlib.sha256(f"{filename}{album_id}".encode("utf-8")).hexdigest()[:ID_LENGTH]


def parent_album_path(path: str) -> Optional[str]:
    if path == ROOT_ALBUM_PATH:
        return None
    return str(PurePosixPath(path).parent)


def blob_path_for(album_path: str, filename: str) -> str:
    return join_album_path(album_path, filename).lstrip("/")


class AlbumReconciler:
    """Map directories onto album records, creating missing albums and linking parents.

    Albums that vanished from disk are never removed here; deletion is an explicit
    user operation.
    """

    def __init__(self, database: Database, root_name: str = "Library") -> None:
        self.database = database
        self.root_name = root_name

    def ensure_lineage(self, album_path: str) -> Album:
        """Reconcile every album from the root down to album_path in one unit of work."""
        lineage = [ROOT_ALBUM_PATH]
        for part in PurePosixPath(album_path).parts[1:]:
            lineage.append(join_album_path(lineage[-1], part))

        with self.database.unit_of_work() as repo:
            repo.ping()
            album: Optional[Album] = None
            for path in lineage:
                album, created = self._reconcile_path(repo, path)
                if created:
                    logger.info("album created path=%s id=%s", path, album.id)
        assert album is not None
        return album

    def reconcile(self, unit: WorkUnit) -> Tuple[Album, bool]:
        with self.database.unit_of_work() as repo:
            return self._reconcile_path(repo, unit.album_path, name=unit.name)

    def _reconcile_path(self, repo: Repository, path: str, name: Optional[str] = None) -> Tuple[Album, bool]:
        album_id = album_id_for(path)
        stored, created = repo.get_album(album_id), False
        if stored is None:
            parent_path = parent_album_path(path)
            album = Album(
                id=album_id,
                path=path,
                name=name or (PurePosixPath(path).name if parent_path is not None else self.root_name),
                parent_id=album_id_for(parent_path) if parent_path is not None else None,
            )
            # another job may insert the same album between the lookup and this write
            stored, created = repo.get_or_create_album(album)
        if stored.path != path:
            raise StorageError(f"Album id {album_id} already used by {stored.path}, cannot map {path}")
        return stored, created


def delete_album(database: Database, blob_store: BlobStore, album_id: str) -> Album:
    """Delete an album record (cascading to children and media), then its blobs."""
    with database.unit_of_work() as repo:
        album = repo.get_album(album_id)
        if album is None:
            raise AlbumNotFoundError(album_id)
        repo.delete_album(album_id)

    # record is gone before its blobs
    if album.path != ROOT_ALBUM_PATH:
        blob_store.delete(album.path.lstrip("/"))
    logger.info("album deleted path=%s id=%s", album.path, album.id)
    return album


def root_name_for(data_root: Path) -> str:
    return Path(data_root).resolve().name or "Library"
