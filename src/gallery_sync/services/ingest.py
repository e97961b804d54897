from __future__ import annotations

import logging
import time
from typing import Optional

from PIL import Image, UnidentifiedImageError
from sqlalchemy.exc import SQLAlchemyError

from gallery_sync.models import MediaKind, Outcome
from gallery_sync.services.albums import album_id_for, blob_path_for, media_id_for
from gallery_sync.services.pipeline.hashing import ContentHasher
from gallery_sync.services.pipeline.interfaces import (
    BlobStore,
    Encoder,
    Hasher,
    Ingestor,
    MetadataExtractorProtocol,
)
from gallery_sync.services.pipeline.metadata import MetadataExtractor, resolve_captured_at
from gallery_sync.services.pipeline.models import Thumbnail, UnitOutcome, WorkUnit
from gallery_sync.services.thumbnails import ThumbnailEncoder, decode_image
from gallery_sync.storage import Database, Media
from gallery_sync.utils.errors import IngestionError

logger = logging.getLogger(__name__)

FALLBACK_WARNING = "no capture time in metadata, used file modification time"


class MediaIngestor(Ingestor):
    """Turn one media file into a stored blob plus a Media record.

    Steps: hash, skip if unchanged, decode and derive thumbnail/metadata, write the
    raw bytes to the blob store, then upsert the record. The blob write always
    precedes the record write so a record never references bytes that are missing.
    Failures raise IngestionError; the caller records them and moves on.
    """

    def __init__(
        self,
        database: Database,
        blob_store: BlobStore,
        *,
        hasher: Optional[Hasher] = None,
        encoder: Optional[Encoder] = None,
        extractor: Optional[MetadataExtractorProtocol] = None,
    ) -> None:
        self.database = database
        self.blob_store = blob_store
        self.hasher = hasher or ContentHasher()
        self.encoder = encoder or ThumbnailEncoder()
        self.extractor = extractor or MetadataExtractor()

    def ingest(self, unit: WorkUnit) -> UnitOutcome:
        started = time.perf_counter()
        album_id = album_id_for(unit.album_path)

        try:
            data = unit.path.read_bytes()
        except OSError as exc:
            raise IngestionError("read", unit.item, exc) from exc
        content_hash = self.hasher.hash_bytes(data)

        try:
            with self.database.unit_of_work() as repo:
                existing = repo.find_media_by_album_and_filename(album_id, unit.name)
                existing_hash = existing.content_hash if existing is not None else None
        except SQLAlchemyError as exc:
            raise IngestionError("lookup", unit.item, exc) from exc

        if existing_hash == content_hash:
            logger.debug("media unchanged, skipping item=%s hash=%s", unit.item, content_hash)
            return UnitOutcome(outcome=Outcome.SKIPPED)

        thumbnail, fields = self._derive(unit, data)

        try:
            captured_at, used_fallback = resolve_captured_at(fields, unit.path)
        except OSError as exc:
            raise IngestionError("stat", unit.item, exc) from exc
        warning = FALLBACK_WARNING if used_fallback else None

        blob_path = blob_path_for(unit.album_path, unit.name)
        try:
            self.blob_store.write(blob_path, data)
        except (OSError, ValueError) as exc:
            raise IngestionError("blob_write", unit.item, exc) from exc

        media = Media(
            id=media_id_for(album_id, unit.name),
            album_id=album_id,
            filename=unit.name,
            content_hash=content_hash,
            captured_at=captured_at,
            media_type=unit.media_kind or MediaKind.PHOTO,
            thumbnail=thumbnail.data if thumbnail else None,
            width=thumbnail.source_width if thumbnail else None,
            height=thumbnail.source_height if thumbnail else None,
            exif=fields,
            blob_path=blob_path,
        )
        try:
            with self.database.unit_of_work() as repo:
                stored = repo.upsert_media(media)
                album = repo.get_album(album_id)
                if album is not None and album.thumbnail_id is None and stored.thumbnail:
                    album.thumbnail_id = stored.id
        except SQLAlchemyError as exc:
            raise IngestionError("record_write", unit.item, exc) from exc

        logger.info(
            "media ingested item=%s kind=%s fallback=%s elapsed=%.3fs",
            unit.item,
            media.media_type.value,
            used_fallback,
            time.perf_counter() - started,
        )
        return UnitOutcome(outcome=Outcome.SUCCESS, warning=warning)

    def _derive(self, unit: WorkUnit, data: bytes) -> tuple[Optional[Thumbnail], dict[str, str]]:
        if unit.media_kind is MediaKind.VIDEO:
            return None, {}

        try:
            image = decode_image(data)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise IngestionError("decode", unit.item, exc) from exc

        with image:
            metadata = self.extractor.extract(image)
            try:
                thumbnail = self.encoder.encode(image)
            except (OSError, ValueError) as exc:
                raise IngestionError("thumbnail", unit.item, exc) from exc
        return thumbnail, metadata.fields
