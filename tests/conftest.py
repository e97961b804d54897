import asyncio
import inspect
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from gallery_sync.services.sync_manager import SyncManager
from gallery_sync.storage import Database, FileBlobStore


def pytest_pyfunc_call(pyfuncitem):
    if asyncio.iscoroutinefunction(pyfuncitem.obj):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            sig = inspect.signature(pyfuncitem.obj)
            accepted = {name: value for name, value in pyfuncitem.funcargs.items() if name in sig.parameters}
            loop.run_until_complete(pyfuncitem.obj(**accepted))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
        return True
    return None


def create_image(
    path: Path,
    color=(200, 120, 40),
    size: tuple[int, int] = (16, 16),
    modified_at: Optional[datetime] = None,
    exif: Optional[Image.Exif] = None,
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, color=color)
    if exif is not None:
        image.save(path, format="JPEG", exif=exif)
    else:
        image.save(path, format="JPEG")
    if modified_at is not None:
        timestamp = modified_at.timestamp()
        os.utime(path, (timestamp, timestamp))
    return path


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture
def database(tmp_path: Path):
    db = Database(tmp_path / "gallery.db")
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def blob_store(tmp_path: Path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "blobs")


@pytest.fixture
def manager(data_root: Path, database: Database, blob_store: FileBlobStore):
    sync_manager = SyncManager(data_root, database, blob_store, max_workers=1)
    yield sync_manager
    sync_manager.shutdown()


@pytest.fixture
def make_image():
    return create_image
