"""Storage package exports for SQLAlchemy helpers, models and the blob store."""
from .blobs import FileBlobStore  # noqa: F401
from .db import Database, get_engine, init_db  # noqa: F401
from .models import Album, Base, Media  # noqa: F401
from .repo import Repository  # noqa: F401

__all__ = ["Album", "Base", "Database", "FileBlobStore", "Media", "Repository", "get_engine", "init_db"]
