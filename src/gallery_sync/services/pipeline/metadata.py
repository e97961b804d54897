from __future__ import annotations

import logging
from datetime import datetime, timezone
from fractions import Fraction
from numbers import Rational
from pathlib import Path
from typing import Mapping, Optional, Tuple

from PIL import ExifTags, Image

from .models import ExtractedMetadata

logger = logging.getLogger(__name__)

CAPTURE_TIME_KEYS = ("DateTimeOriginal", "DateTimeDigitized", "DateTime")
IGNORED_KEYS = frozenset({"exifoffset", "gpsinfo", "makernote", "usercomment", "printimagematching"})


class MetadataExtractor:
    """Best-effort EXIF extraction; anything unreadable is dropped, never raised."""

    def extract(self, image: Image.Image) -> ExtractedMetadata:
        metadata = ExtractedMetadata()
        try:
            exif = image.getexif()
        except Exception as exc:  # malformed EXIF blocks raise from deep inside Pillow
            logger.warning("Could not read EXIF block: %s", exc)
            return metadata

        self._collect(exif, metadata)
        try:
            exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
        except Exception as exc:
            logger.warning("Could not read EXIF sub-IFD: %s", exc)
            exif_ifd = {}
        self._collect(exif_ifd, metadata)

        if metadata.dropped:
            logger.warning(
                "Dropped %d unreadable metadata fields: %s",
                len(metadata.dropped),
                ", ".join(sorted(metadata.dropped)),
            )
        return metadata

    def _collect(self, tags: Mapping[int, object], metadata: ExtractedMetadata) -> None:
        for tag_id, raw_value in tags.items():
            name = ExifTags.TAGS.get(tag_id)
            if name is None:
                metadata.dropped.append(f"0x{tag_id:04x}")
                continue
            if name.lower() in IGNORED_KEYS:
                continue
            value = self._stringify(raw_value)
            if value is None:
                metadata.dropped.append(name)
                continue
            metadata.fields[name] = value

    @staticmethod
    def _stringify(value: object) -> Optional[str]:
        if isinstance(value, str):
            cleaned = value.replace("\x00", "").strip()
            return cleaned or None
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return f"{value:f}"
        if isinstance(value, Rational):
            denominator = value.denominator
            if denominator == 0:
                return None
            return f"{float(Fraction(value.numerator, denominator)):f}"
        return None


def parse_exif_datetime(raw: str) -> datetime | None:
    for pattern in ("%Y:%m:%d %H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y:%m:%d %H:%M:%S%z"):
        try:
            parsed = datetime.strptime(raw.strip(), pattern)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def resolve_captured_at(fields: Mapping[str, str], path: Path) -> Tuple[datetime, bool]:
    """Capture time from metadata, else the file's modification time; the flag marks the fallback."""
    for key in CAPTURE_TIME_KEYS:
        raw_value = fields.get(key)
        if not raw_value:
            continue
        parsed = parse_exif_datetime(raw_value)
        if parsed is not None:
            return parsed, False
        logger.warning("Unparsable %s value %r in %s", key, raw_value, path.name)

    fallback_datetime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    return fallback_datetime, True
