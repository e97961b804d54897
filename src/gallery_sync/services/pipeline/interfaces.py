from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from PIL import Image

from .models import ExtractedMetadata, Thumbnail, UnitOutcome, WorkUnit


@runtime_checkable
class Hasher(Protocol):
    def hash_bytes(self, data: bytes) -> str: ...


@runtime_checkable
class Encoder(Protocol):
    def encode(self, image: Image.Image) -> Thumbnail: ...


@runtime_checkable
class MetadataExtractorProtocol(Protocol):
    def extract(self, image: Image.Image) -> ExtractedMetadata: ...


@runtime_checkable
class Walker(Protocol):
    def walk(self, directory: Path) -> list[WorkUnit]: ...


@runtime_checkable
class BlobStore(Protocol):
    def write(self, path: str, data: bytes) -> None: ...

    def read(self, path: str) -> BinaryIO: ...

    def delete(self, path: str) -> None: ...


@runtime_checkable
class Ingestor(Protocol):
    def ingest(self, unit: WorkUnit) -> UnitOutcome: ...
