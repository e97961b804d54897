from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from gallery_sync.models import ItemType, MediaKind

from .interfaces import Walker
from .models import WorkUnit

PHOTO_EXTENSIONS = (".jpg", ".jpeg", ".png")
VIDEO_EXTENSIONS = (".mp4", ".mov")

ROOT_ALBUM_PATH = "/"


def album_path_for(data_root: Path, directory: Path) -> str:
    """Canonical album path of a directory: '/' for the data root, '/a/b' below it."""
    relative = Path(directory).resolve().relative_to(Path(data_root).resolve())
    if not relative.parts:
        return ROOT_ALBUM_PATH
    return join_album_path(ROOT_ALBUM_PATH, *relative.parts)


def join_album_path(parent: str, *names: str) -> str:
    return str(PurePosixPath(parent, *names))


class DirectoryWalker(Walker):
    """Produce the ordered unit list for a subtree.

    Each directory below the walked root yields a folder unit, followed by its
    media files sorted by name, followed by its subdirectories sorted by name.
    """

    def __init__(
        self,
        data_root: Path,
        photo_extensions: Iterable[str] = PHOTO_EXTENSIONS,
        video_extensions: Iterable[str] = VIDEO_EXTENSIONS,
    ):
        self.data_root = Path(data_root).resolve()
        self.photo_extensions = tuple(ext.lower() for ext in photo_extensions)
        self.video_extensions = tuple(ext.lower() for ext in video_extensions)

    def walk(self, directory: Path) -> list[WorkUnit]:
        directory = Path(directory).resolve()
        if not directory.is_dir():
            raise NotADirectoryError(f"Not a directory: {directory}")

        units: list[WorkUnit] = []
        self._visit(directory, album_path_for(self.data_root, directory), units, include_self=False)
        return units

    def media_kind(self, path: Path) -> Optional[MediaKind]:
        suffix = path.suffix.lower()
        if suffix in self.photo_extensions:
            return MediaKind.PHOTO
        if suffix in self.video_extensions:
            return MediaKind.VIDEO
        return None

    def _visit(self, directory: Path, album_path: str, units: list[WorkUnit], include_self: bool) -> None:
        if include_self:
            units.append(
                WorkUnit(item_type=ItemType.FOLDER, path=directory, album_path=album_path, name=directory.name)
            )

        files: list[os.DirEntry] = []
        subdirectories: list[os.DirEntry] = []
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.name.startswith("."):
                    continue
                if entry.is_dir(follow_symlinks=False):
                    subdirectories.append(entry)
                elif entry.is_file(follow_symlinks=False):
                    files.append(entry)

        for entry in sorted(files, key=lambda item: item.name):
            path = Path(entry.path)
            kind = self.media_kind(path)
            if kind is None:
                continue
            units.append(
                WorkUnit(
                    item_type=ItemType.FILE,
                    path=path,
                    album_path=album_path,
                    name=entry.name,
                    media_kind=kind,
                )
            )

        for entry in sorted(subdirectories, key=lambda item: item.name):
            self._visit(Path(entry.path), join_album_path(album_path, entry.name), units, include_self=True)
