"""Database repository layer."""
from typing import List, Optional, Tuple

from sqlalchemy import delete, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .models import Album, Media


class Repository:
    """Repository for album and media records bound to one session."""

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self._session = session

    def ping(self) -> None:
        """Fail fast when the store cannot be queried."""
        self._session.execute(text("SELECT 1"))

    # Album operations
    def get_album(self, album_id: str) -> Optional[Album]:
        """Get album by ID."""
        return self._session.get(Album, album_id)

    def get_album_by_path(self, path: str) -> Optional[Album]:
        """Get album by canonical path."""
        result = self._session.execute(select(Album).where(Album.path == path))
        return result.scalar_one_or_none()

    def list_child_albums(self, album_id: str) -> List[Album]:
        """List direct children of an album ordered by path."""
        result = self._session.execute(
            select(Album).where(Album.parent_id == album_id).order_by(Album.path)
        )
        return list(result.scalars().all())

    def get_or_create_album(self, album: Album) -> Tuple[Album, bool]:
        """Insert album unless a row with its id or path exists; returns the stored row and whether it is new."""
        statement = (
            sqlite_insert(Album)
            .values(
                id=album.id,
                path=album.path,
                name=album.name,
                description=album.description,
                parent_id=album.parent_id,
                thumbnail_id=album.thumbnail_id,
            )
            .on_conflict_do_nothing()
        )
        created = self._session.execute(statement).rowcount > 0
        stored = self.get_album(album.id)
        if stored is None:
            stored = self.get_album_by_path(album.path)
        return stored, created

    def delete_album(self, album_id: str) -> bool:
        """Delete an album; child albums and their media go with it through the foreign keys."""
        result = self._session.execute(delete(Album).where(Album.id == album_id))
        return result.rowcount > 0

    # Media operations
    def get_media(self, media_id: str) -> Optional[Media]:
        """Get media by ID."""
        return self._session.get(Media, media_id)

    def find_media_by_album_and_filename(self, album_id: str, filename: str) -> Optional[Media]:
        """Get media by owning album and filename."""
        result = self._session.execute(
            select(Media).where(Media.album_id == album_id, Media.filename == filename)
        )
        return result.scalar_one_or_none()

    def list_media(self, album_id: str) -> List[Media]:
        """List media of an album ordered by capture time."""
        result = self._session.execute(
            select(Media).where(Media.album_id == album_id).order_by(Media.captured_at, Media.filename)
        )
        return list(result.scalars().all())

    def upsert_media(self, media: Media) -> Media:
        """Update or insert media, keyed by album and filename."""
        db_media = self.find_media_by_album_and_filename(media.album_id, media.filename)
        if db_media is None:
            self._session.add(media)
            self._session.flush()
            return media

        for column in (
            "content_hash",
            "captured_at",
            "media_type",
            "thumbnail",
            "width",
            "height",
            "exif",
            "blob_path",
        ):
            setattr(db_media, column, getattr(media, column))
        self._session.flush()
        return db_media
