"""Geometry strings describing how a style is resized.

A geometry is written ``WxH`` followed by an optional modifier:

- no modifier: scale to fit inside ``WxH`` keeping the aspect ratio
- ``#``: scale to cover ``WxH`` then crop the centre to exactly ``WxH``
- ``!``: stretch to exactly ``WxH``
- ``>``: scale to fit, but only when the source is larger
- ``<``: scale to fit, but only when the source is smaller

Either dimension may be omitted (``100x``, ``x50``, ``100``) except for the
crop modifier, which needs both.

All dimension arithmetic is exact and rounds half up, so the same source size
always yields the same target size and crop offsets.
"""

from __future__ import annotations

import math
import re
import typing as t
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction

from attachkit.errors import GeometryParseError

if t.TYPE_CHECKING:
    from attachkit.thumbnail import Transcoder

_GEOMETRY_RE = re.compile(r"^([0-9]*)(?:x([0-9]*))?(.)?$")


class Modifier(Enum):
    """Resize modifier following the dimensions in a geometry string."""

    CROP = "#"
    FORCE = "!"
    GROW_ONLY = "<"
    SHRINK_ONLY = ">"


def _round_half_up(value: Fraction) -> int:
    return max(1, math.floor(value + Fraction(1, 2)))


@dataclass(frozen=True)
class Geometry:
    """Parsed geometry: target dimensions plus an optional modifier."""

    width: int | None = None
    height: int | None = None
    modifier: Modifier | None = None

    @classmethod
    def parse(cls, spec: str) -> Geometry:
        """Parse a geometry string.

        Raises:
            GeometryParseError: If the string is empty, has no dimension, has a
                zero dimension, uses an unknown modifier, or crops with a
                single dimension.
        """
        text = (spec or "").strip()
        match = _GEOMETRY_RE.match(text)
        if not text or match is None:
            raise GeometryParseError(spec, "expected WxH with an optional modifier")

        raw_width, raw_height, raw_modifier = match.groups()
        if not raw_width and not raw_height:
            raise GeometryParseError(spec, "at least one dimension is required")

        modifier = None
        if raw_modifier is not None:
            try:
                modifier = Modifier(raw_modifier)
            except ValueError:
                raise GeometryParseError(spec, f"unknown modifier '{raw_modifier}'") from None

        width = int(raw_width) if raw_width else None
        height = int(raw_height) if raw_height else None
        if width == 0 or height == 0:
            raise GeometryParseError(spec, "dimensions must be positive")
        if modifier is Modifier.CROP and (width is None or height is None):
            raise GeometryParseError(spec, "cropping requires both width and height")

        return cls(width=width, height=height, modifier=modifier)

    @classmethod
    def from_file(cls, path: str, transcoder: Transcoder) -> Geometry:
        """Read the dimensions of an image through the transcoder."""
        width, height = transcoder.identify(path)
        return cls(width=width, height=height)

    def __str__(self) -> str:
        width = "" if self.width is None else str(self.width)
        height = "" if self.height is None else f"x{self.height}"
        modifier = "" if self.modifier is None else self.modifier.value
        return f"{width}{height}{modifier}"

    @property
    def aspect(self) -> Fraction:
        """Width divided by height; both dimensions must be known."""
        if not self.width or not self.height:
            raise ValueError(f"Geometry '{self}' has no aspect ratio")
        return Fraction(self.width, self.height)

    @property
    def square(self) -> bool:
        return self.width is not None and self.width == self.height

    @property
    def horizontal(self) -> bool:
        return self.aspect > 1

    @property
    def vertical(self) -> bool:
        return self.aspect < 1

    @property
    def larger(self) -> int:
        return max(self.width or 0, self.height or 0)

    @property
    def smaller(self) -> int:
        return min(d for d in (self.width, self.height) if d is not None)

    def _fit_scale(self, source_width: int, source_height: int) -> Fraction:
        scales = []
        if self.width is not None:
            scales.append(Fraction(self.width, source_width))
        if self.height is not None:
            scales.append(Fraction(self.height, source_height))
        return min(scales)

    def _cover_scale(self, source_width: int, source_height: int) -> Fraction:
        return max(
            Fraction(t.cast(int, self.width), source_width),
            Fraction(t.cast(int, self.height), source_height),
        )

    def _exceeds(self, source_width: int, source_height: int) -> bool:
        return (self.width is not None and source_width > self.width) or (
            self.height is not None and source_height > self.height
        )

    def _within(self, source_width: int, source_height: int) -> bool:
        return (self.width is None or source_width < self.width) and (
            self.height is None or source_height < self.height
        )

    def _scaled(self, source_width: int, source_height: int, scale: Fraction) -> tuple[int, int]:
        return _round_half_up(source_width * scale), _round_half_up(source_height * scale)

    def transform(self, source_width: int, source_height: int) -> tuple[int, int]:
        """Compute the dimensions a source image ends up with.

        Args:
            source_width: Width of the source image in pixels.
            source_height: Height of the source image in pixels.

        Returns:
            Target ``(width, height)``, both at least 1.
        """
        if source_width <= 0 or source_height <= 0:
            raise ValueError("Source dimensions must be positive")

        if self.modifier is Modifier.CROP:
            return t.cast(int, self.width), t.cast(int, self.height)

        if self.modifier is Modifier.FORCE:
            scale = self._fit_scale(source_width, source_height)
            width, height = self._scaled(source_width, source_height, scale)
            return self.width or width, self.height or height

        if self.modifier is Modifier.SHRINK_ONLY and not self._exceeds(source_width, source_height):
            return source_width, source_height

        if self.modifier is Modifier.GROW_ONLY and not self._within(source_width, source_height):
            return source_width, source_height

        scale = self._fit_scale(source_width, source_height)
        return self._scaled(source_width, source_height, scale)

    def transformation_to(self, source_width: int, source_height: int) -> tuple[str, str | None]:
        """Return the resize argument and optional crop argument for the transcoder.

        For a crop geometry the source is first forced to the covering size
        and then cropped around its centre; every other geometry is handed to
        the transcoder as written.
        """
        if self.modifier is not Modifier.CROP:
            return str(self), None

        width, height = t.cast(int, self.width), t.cast(int, self.height)
        cover_width, cover_height = self._scaled(
            source_width, source_height, self._cover_scale(source_width, source_height)
        )
        cover_width, cover_height = max(cover_width, width), max(cover_height, height)
        offset_x = (cover_width - width) // 2
        offset_y = (cover_height - height) // 2
        return f"{cover_width}x{cover_height}!", f"{width}x{height}+{offset_x}+{offset_y}"


def parse(spec: str) -> Geometry:
    """Parse a geometry string; see :meth:`Geometry.parse`."""
    return Geometry.parse(spec)


def transform(source_width: int, source_height: int, geometry: Geometry) -> tuple[int, int]:
    """Target dimensions for a source size; see :meth:`Geometry.transform`."""
    return geometry.transform(source_width, source_height)
