"""Stateless building blocks of the ingestion pipeline."""

from .hashing import ContentHasher
from .metadata import MetadataExtractor, resolve_captured_at
from .walker import DirectoryWalker, album_path_for

__all__ = ["ContentHasher", "DirectoryWalker", "MetadataExtractor", "album_path_for", "resolve_captured_at"]
