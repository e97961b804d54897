from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from gallery_sync.models import ItemType, MediaKind, Outcome


@dataclass(frozen=True, slots=True)
class WorkUnit:
    """One filesystem entry a sync job has to process."""

    item_type: ItemType
    path: Path
    album_path: str
    name: str
    media_kind: Optional[MediaKind] = None

    @property
    def item(self) -> str:
        if self.item_type is ItemType.FOLDER:
            return self.album_path
        return f"{self.album_path.rstrip('/')}/{self.name}"


@dataclass(slots=True)
class Thumbnail:
    data: bytes
    source_width: int
    source_height: int


@dataclass(slots=True)
class ExtractedMetadata:
    fields: dict[str, str] = field(default_factory=dict)
    dropped: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UnitOutcome:
    outcome: Outcome
    warning: Optional[str] = None
