from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO

logger = logging.getLogger(__name__)


class FileBlobStore:
    """Raw media bytes on the local filesystem, addressed by relative POSIX paths."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _full_path(self, path: str) -> Path:
        relative = PurePosixPath(path.lstrip("/"))
        if ".." in relative.parts:
            raise ValueError(f"Blob path escapes the store: {path}")
        return self.root.joinpath(*relative.parts)

    def write(self, path: str, data: bytes) -> None:
        """Write bytes atomically; readers never observe a partial blob."""
        destination = self._full_path(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=destination.parent, prefix=".blob-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, destination)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("blob written path=%s size=%d", path, len(data))

    def read(self, path: str) -> BinaryIO:
        return self._full_path(path).open("rb")

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def delete(self, path: str) -> None:
        """Delete a blob or a whole album folder; missing paths are ignored."""
        target = self._full_path(path)
        if target == self.root:
            raise ValueError("Refusing to delete the blob store root.")
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()
