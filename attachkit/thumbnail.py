"""Style variant generation through an external transcoder.

The pixel work is delegated to a :class:`Transcoder`. The default
implementation shells out to ImageMagick's ``identify`` and ``convert``.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from attachkit.errors import NotIdentifiedError, ProcessingError
from attachkit.geometry import Geometry

logger = logging.getLogger(__name__)

DEFAULT_TRANSCODER_TIMEOUT = 60.0

_DIMENSIONS_RE = re.compile(r"^\s*(\d+)x(\d+)")


@runtime_checkable
class Transcoder(Protocol):
    """Capability used to inspect and convert images."""

    def identify(self, path: str) -> tuple[int, int]:
        """Return ``(width, height)`` or raise NotIdentifiedError."""
        ...

    def convert(self, source: str, destination: str, arguments: list[str]) -> None:
        """Write ``source`` transformed by ``arguments`` to ``destination``.

        Raises:
            ProcessingError: If the conversion fails.
        """
        ...


class ImageMagickTranscoder:
    """Transcoder backed by the ImageMagick command line tools.

    Args:
        search_path: Directory holding ``identify`` and ``convert``. None uses
            the executables found on ``PATH``.
        timeout: Seconds after which a command is killed and treated as failed.
    """

    def __init__(self, search_path: str | None = None, timeout: float = DEFAULT_TRANSCODER_TIMEOUT):
        self.search_path = search_path
        self.timeout = timeout

    def command_path(self, command: str) -> str:
        if self.search_path:
            return os.path.join(self.search_path, command)
        return command

    def _run(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        logger.debug("Running transcoder command: %s", " ".join(command))
        return subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=False,
        )

    def identify(self, path: str) -> tuple[int, int]:
        command = [self.command_path("identify"), "-format", "%wx%h", f"{path}[0]"]
        try:
            result = self._run(command)
        except FileNotFoundError as e:
            raise NotIdentifiedError(path, f"'{command[0]}' not found") from e
        except subprocess.TimeoutExpired as e:
            raise NotIdentifiedError(path, f"identify timed out after {self.timeout}s") from e

        if result.returncode != 0:
            raise NotIdentifiedError(path, result.stderr.strip())

        match = _DIMENSIONS_RE.match(result.stdout)
        if match is None:
            raise NotIdentifiedError(path, f"unexpected identify output {result.stdout!r}")
        return int(match.group(1)), int(match.group(2))

    def convert(self, source: str, destination: str, arguments: list[str]) -> None:
        command = [self.command_path("convert"), f"{source}[0]", *arguments, destination]
        try:
            result = self._run(command)
        except FileNotFoundError as e:
            raise ProcessingError(command, 127, f"'{command[0]}' not found") from e
        except subprocess.TimeoutExpired as e:
            raise ProcessingError(command, None, f"timed out after {self.timeout}s") from e

        if result.returncode != 0:
            raise ProcessingError(command, result.returncode, result.stderr)


@dataclass(frozen=True)
class StyleOutput:
    """A processed variant waiting to be stored.

    Attributes:
        style: Style name the variant belongs to.
        path: Temporary file holding the processed image.
        width: Resulting width, None when the file was not processed.
        height: Resulting height, None when the file was not processed.
    """

    style: str
    path: Path
    width: int | None = None
    height: int | None = None

    def discard(self) -> None:
        """Remove the temporary file."""
        self.path.unlink(missing_ok=True)


def _suffix(format: str | None) -> str:
    return f".{format.lstrip('.').lower()}" if format else ""


class Thumbnail:
    """Produces one style variant of a source image.

    Args:
        source: Path of the source image.
        geometry: Target geometry of the variant.
        transcoder: Transcoder doing the pixel work.
        format: Output format (file extension) forced for the variant.
        format_hint: Format of the source, used when no format is forced.
    """

    def __init__(
        self,
        source: str | Path,
        geometry: Geometry,
        transcoder: Transcoder,
        format: str | None = None,
        format_hint: str | None = None,
    ):
        self.source = Path(source)
        self.geometry = geometry
        self.transcoder = transcoder
        self.format = format
        self.format_hint = format_hint

    def arguments(self, source_width: int, source_height: int) -> list[str]:
        resize, crop = self.geometry.transformation_to(source_width, source_height)
        arguments = ["-resize", resize]
        if crop is not None:
            arguments += ["-crop", crop, "+repage"]
        return arguments

    def make(self, style: str) -> StyleOutput:
        """Run the transcoder and return the processed temporary file.

        Raises:
            NotIdentifiedError: If the source is not a recognized image.
            ProcessingError: If the conversion fails.
        """
        source_width, source_height = self.transcoder.identify(str(self.source))

        fd, name = tempfile.mkstemp(
            prefix=f"attachkit-{style}-", suffix=_suffix(self.format or self.format_hint)
        )
        os.close(fd)
        destination = Path(name)
        try:
            self.transcoder.convert(
                str(self.source), str(destination), self.arguments(source_width, source_height)
            )
        except BaseException:
            destination.unlink(missing_ok=True)
            raise

        width, height = self.geometry.transform(source_width, source_height)
        return StyleOutput(style=style, path=destination, width=width, height=height)


def generate(
    source: str | Path,
    geometry: Geometry,
    transcoder: Transcoder,
    format_hint: str | None = None,
    style: str = "variant",
    format: str | None = None,
) -> StyleOutput:
    """Produce a single variant of ``source``; see :class:`Thumbnail`."""
    thumbnail = Thumbnail(source, geometry, transcoder, format=format, format_hint=format_hint)
    return thumbnail.make(style)
