"""Storage backends persisting attachment files under interpolated paths."""

from __future__ import annotations

import io
import logging
import os
import shutil
import tempfile
import threading
import typing as t
from abc import ABC, abstractmethod
from pathlib import Path

import humanize

from attachkit.errors import StorageError

if t.TYPE_CHECKING:
    from attachkit.config import StorageConfig

logger = logging.getLogger(__name__)

Source = t.Union[str, os.PathLike, t.BinaryIO]


class StorageBackend(ABC):
    """Abstract interface for attachment storage.

    Paths are the relative strings produced by the path pattern. Backends
    must accept concurrent ``store`` calls for distinct paths.
    """

    @abstractmethod
    def store(self, path: str, source: Source) -> None:
        """Persist ``source`` (a file path or binary stream) at ``path``."""

    @abstractmethod
    def open(self, path: str) -> t.BinaryIO:
        """Open a stored file for reading.

        Raises:
            FileNotFoundError: If nothing is stored at ``path``.
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return whether a file is stored at ``path``."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove the file at ``path``; a missing file is not an error."""

    def url_for(self, path: str) -> str:
        """Public URL of a stored path. URLs normally come from the URL pattern."""
        return path


class FilesystemStorage(StorageBackend):
    """Store attachments below a root directory.

    Files are written to a temporary sibling and renamed over the target, so
    readers never observe a partially written file.
    """

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root).resolve()

    def _full_path(self, path: str) -> Path:
        full = (self.root / path.lstrip("/")).resolve()
        if full == self.root or self.root not in full.parents:
            raise StorageError(f"Path '{path}' resolves outside of storage root '{self.root}'")
        return full

    def store(self, path: str, source: Source) -> None:
        target = self._full_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as out:
                if isinstance(source, (str, os.PathLike)):
                    with open(source, "rb") as src:
                        shutil.copyfileobj(src, out)
                else:
                    shutil.copyfileobj(source, out)
                out.flush()
                os.fsync(out.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(
            "Stored %s (%s)", target, humanize.naturalsize(target.stat().st_size, binary=True)
        )

    def open(self, path: str) -> t.BinaryIO:
        return open(self._full_path(path), "rb")

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def delete(self, path: str) -> None:
        target = self._full_path(path)
        try:
            target.unlink()
            logger.info("Deleted %s", target)
        except FileNotFoundError:
            logger.debug("Nothing to delete at %s", target)
        self._prune(target.parent)

    def _prune(self, directory: Path) -> None:
        """Remove empty directories upward, stopping at the first non-empty one or root."""
        while directory != self.root and self.root in directory.parents:
            try:
                directory.rmdir()
            except FileNotFoundError:
                pass
            except OSError:
                return
            directory = directory.parent


class MemoryStorage(StorageBackend):
    """Keep attachments in a dictionary; useful for tests and previews."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def store(self, path: str, source: Source) -> None:
        if isinstance(source, (str, os.PathLike)):
            data = Path(source).read_bytes()
        else:
            data = source.read()
        with self._lock:
            self.files[path] = data
        logger.info("Stored %s (%s) in memory", path, humanize.naturalsize(len(data), binary=True))

    def open(self, path: str) -> t.BinaryIO:
        with self._lock:
            try:
                return io.BytesIO(self.files[path])
            except KeyError:
                raise FileNotFoundError(path) from None

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self.files

    def delete(self, path: str) -> None:
        with self._lock:
            self.files.pop(path, None)


def storage_from_config(config: StorageConfig) -> StorageBackend:
    """Build the storage backend described by a StorageConfig."""
    if config.type == "filesystem":
        return FilesystemStorage(config.root)
    if config.type == "memory":
        return MemoryStorage()
    raise StorageError(f"Unknown storage type '{config.type}'")
