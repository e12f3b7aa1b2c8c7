import os
import logging
import re
from pathlib import Path
from typing import Iterator, List, Tuple

from .. import config
from ..config import CleanerConfig
from ..exceptions import ScanDirectoryError, ScanRootError
from ..models import MediaFile

_YEAR_RE = re.compile(config.YEAR_DIR_PATTERN)
_MONTH_RE = re.compile(config.MONTH_DIR_PATTERN)
_IMAGE_RE = re.compile(rf"\.(?:{'|'.join(config.IMAGE_EXTS)})$", re.IGNORECASE)


def is_image_file(filename: str) -> bool:
    # Compound names (image.jpg.webp) end in .webp and are covered by the same test
    return bool(_IMAGE_RE.search(filename))


class DirectoryWalker:
    """
    Walks a year/month media library.

    Only root/YYYY/MM is entered and files are only yielded at month level.
    Each call to walk() starts a fresh traversal.
    """

    def __init__(self, cfg: CleanerConfig):
        self.root = cfg.root

    def __iter__(self) -> Iterator[MediaFile]:
        return self.walk()

    def walk(self) -> Iterator[MediaFile]:
        for _, files in self.walk_by_directory():
            yield from files

    def walk_by_directory(self) -> Iterator[Tuple[Path, List[MediaFile]]]:
        """Yields (month_dir, image files) batches in sorted order."""
        if not self.root.is_dir():
            raise ScanRootError(f"Scan root is not a readable directory: {self.root}")

        try:
            years = self._subdirs(self.root, _YEAR_RE)
        except ScanDirectoryError as e:
            raise ScanRootError(str(e)) from e

        for year_dir in years:
            try:
                months = self._subdirs(year_dir, _MONTH_RE)
            except ScanDirectoryError as e:
                logging.warning(f"Could not scan directory {year_dir}: {e}")
                continue

            for month_dir in months:
                try:
                    files = self._image_files(month_dir)
                except ScanDirectoryError as e:
                    logging.warning(f"Could not scan directory {month_dir}: {e}")
                    continue
                yield month_dir, files

    def _list(self, directory: Path) -> List[os.DirEntry]:
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as e:
            raise ScanDirectoryError(f"{directory}: {e}") from e
        # Sort for stable traversal order
        entries.sort(key=lambda e: e.name)
        return entries

    def _subdirs(self, directory: Path, name_re: re.Pattern) -> List[Path]:
        return [
            Path(e.path) for e in self._list(directory)
            if name_re.fullmatch(e.name) and e.is_dir(follow_symlinks=False)
        ]

    def _image_files(self, directory: Path) -> List[MediaFile]:
        files = []
        for e in self._list(directory):
            if not e.is_file(follow_symlinks=False) or not is_image_file(e.name):
                continue
            try:
                st = e.stat(follow_symlinks=False)
            except OSError as err:
                logging.warning(f"Could not stat {e.path}: {err}")
                continue
            files.append(MediaFile(
                path=Path(e.path),
                filename=e.name,
                size=st.st_size,
                mtime=st.st_mtime,
            ))
        return files
