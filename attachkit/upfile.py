"""Buffering of assigned files and extraction of their metadata."""

from __future__ import annotations

import logging
import mimetypes
import ntpath
import os
import re
import shutil
import tempfile
import typing as t
from dataclasses import dataclass
from pathlib import Path

import puremagic

from attachkit.config import FilenamePolicy

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Enough bytes for puremagic to recognize every format it knows.
_SNIFF_SIZE = 8192


@dataclass(frozen=True)
class AttachmentMetadata:
    """The three values mirrored into the record's columns."""

    file_name: str | None = None
    content_type: str | None = None
    file_size: int | None = None

    @property
    def blank(self) -> bool:
        return not self.file_name


@dataclass
class Upload:
    """An uploaded file: a name, a binary stream and an optional content type."""

    filename: str
    stream: t.BinaryIO
    content_type: str | None = None


@dataclass
class PendingFile:
    """A buffered assignment that has not been saved yet."""

    path: Path
    metadata: AttachmentMetadata

    @property
    def extension(self) -> str:
        return os.path.splitext(self.metadata.file_name or "")[1].lstrip(".")

    def discard(self) -> None:
        self.path.unlink(missing_ok=True)


def sanitize_filename(filename: str, policy: FilenamePolicy) -> tuple[str | None, str | None]:
    """Apply the filename policy.

    Path components are stripped first, then characters outside the allowed
    set are replaced or rejected.

    Returns:
        ``(filename, None)`` on success, ``(None, message)`` when the name is
        unusable.
    """
    stripped = filename.rstrip("/\\")
    name = os.path.basename(ntpath.basename(stripped))
    if name in ("", ".", ".."):
        return None, "filename is invalid."

    disallowed = re.compile(f"[^{policy.allowed_characters}]")
    if disallowed.search(name):
        if policy.mode == "reject":
            return None, "filename contains characters that are not allowed."
        name = disallowed.sub(policy.replacement, name)

    if name != filename:
        logger.warning("Attachment filename sanitized from '%s' to '%s'", filename, name)
    return name, None


def detect_content_type(head: bytes, filename: str) -> str:
    """Guess a content type from the leading bytes, then from the extension."""
    if head:
        try:
            for match in puremagic.magic_string(head, filename):
                if match.mime_type:
                    return match.mime_type
        except puremagic.PureError:
            logger.debug("Could not identify content of '%s' from its bytes", filename)
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_CONTENT_TYPE


def _describe(obj: t.Any) -> tuple[str, t.BinaryIO | None, str | None, str | None]:
    """Return ``(filename, stream, path, content_type)`` for an assignable object."""
    if isinstance(obj, Upload):
        return obj.filename, obj.stream, None, obj.content_type
    if isinstance(obj, (str, os.PathLike)):
        return os.path.basename(os.fspath(obj)), None, os.fspath(obj), None
    if hasattr(obj, "read"):
        filename = getattr(obj, "filename", None) or getattr(obj, "original_filename", None)
        if not filename:
            filename = os.path.basename(str(getattr(obj, "name", "") or ""))
        content_type = getattr(obj, "content_type", None) or getattr(obj, "mimetype", None)
        return filename, getattr(obj, "stream", obj), None, content_type
    raise TypeError(f"Cannot assign object of type {type(obj).__name__} as a file")


def buffer_upload(obj: t.Any, policy: FilenamePolicy) -> tuple[PendingFile | None, list[str]]:
    """Copy an assigned file into a temporary file and compute its metadata.

    Args:
        obj: An :class:`Upload`, a filesystem path, or any readable object with
            a ``filename`` or ``name`` attribute.
        policy: Filename sanitization policy.

    Returns:
        ``(pending, [])`` on success, ``(None, messages)`` when the filename is
        rejected.

    Raises:
        TypeError: If ``obj`` is not file-like.
    """
    raw_name, stream, source_path, content_type = _describe(obj)
    filename, problem = sanitize_filename(raw_name or "", policy)
    if filename is None:
        return None, [t.cast(str, problem)]

    fd, tmp_name = tempfile.mkstemp(prefix="attachkit-", suffix=os.path.splitext(filename)[1])
    path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as out:
            if source_path is not None:
                with open(source_path, "rb") as src:
                    shutil.copyfileobj(src, out)
            else:
                if hasattr(stream, "seek"):
                    try:
                        stream.seek(0)
                    except OSError:
                        pass
                shutil.copyfileobj(stream, out)
        size = path.stat().st_size
        if not content_type:
            with path.open("rb") as f:
                content_type = detect_content_type(f.read(_SNIFF_SIZE), filename)
    except BaseException:
        path.unlink(missing_ok=True)
        raise

    metadata = AttachmentMetadata(
        file_name=filename, content_type=content_type.strip(), file_size=size
    )
    return PendingFile(path=path, metadata=metadata), []
