"""Attachment validators.

Each validator is a small immutable model with an ``evaluate`` method that
returns an error message or None. They are tagged with a ``kind`` field so a
list of them can be declared in configuration files:

    >>> pydantic.TypeAdapter(list[Validator]).validate_python(
    ...     [{"kind": "presence"}, {"kind": "size", "max": 1024}]
    ... )
"""

from __future__ import annotations

import math
import typing as t

from pydantic import BaseModel, ConfigDict, Field, model_validator

from attachkit.upfile import AttachmentMetadata


class _Validator(BaseModel):
    model_config = ConfigDict(frozen=True)

    def evaluate(self, metadata: AttachmentMetadata) -> str | None:
        raise NotImplementedError


class Presence(_Validator):
    """Requires a file to be assigned."""

    kind: t.Literal["presence"] = "presence"
    message: str = "must be set."

    def evaluate(self, metadata: AttachmentMetadata) -> str | None:
        if metadata.blank:
            return self.message
        return None


class SizeRange(_Validator):
    """Requires the file size, in bytes, to lie within ``min..max`` inclusive.

    A missing ``max`` means no upper bound. Custom messages may use ``:min``
    and ``:max`` placeholders.
    """

    kind: t.Literal["size"] = "size"
    min: int = Field(default=0, ge=0)
    max: t.Optional[int] = Field(default=None, ge=0)
    message: t.Optional[str] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "SizeRange":
        if self.max is not None and self.max < self.min:
            raise ValueError(f"max ({self.max}) must not be below min ({self.min})")
        return self

    def evaluate(self, metadata: AttachmentMetadata) -> str | None:
        if metadata.blank:
            return None
        size = metadata.file_size or 0
        upper = math.inf if self.max is None else self.max
        if self.min <= size <= upper:
            return None

        max_text = "Infinity" if self.max is None else str(self.max)
        if self.message:
            return self.message.replace(":min", str(self.min)).replace(":max", max_text)
        return f"file size is not between {self.min} and {max_text} bytes."


class ContentType(_Validator):
    """Requires the content type to be one of ``allowed``.

    Entries ending in ``/*`` accept a whole family such as ``image/*``. An
    empty set accepts everything.
    """

    kind: t.Literal["content_type"] = "content_type"
    allowed: frozenset[str] = frozenset()
    message: str = "is not one of the allowed file types."

    def _matches(self, content_type: str) -> bool:
        for allowed in self.allowed:
            if allowed.endswith("/*"):
                if content_type.startswith(allowed[:-1]):
                    return True
            elif content_type == allowed:
                return True
        return False

    def evaluate(self, metadata: AttachmentMetadata) -> str | None:
        if metadata.blank or not self.allowed:
            return None
        if self._matches(metadata.content_type or ""):
            return None
        return self.message


Validator = t.Annotated[t.Union[Presence, SizeRange, ContentType], Field(discriminator="kind")]


def size_range(
    in_: range | tuple[int, int] | None = None,
    less_than: int | None = None,
    greater_than: int | None = None,
    message: str | None = None,
) -> SizeRange:
    """Build a SizeRange from ``in_``, ``less_than`` or ``greater_than``.

    ``less_than`` wins over ``greater_than``, which wins over ``in_``. A
    ``range`` is treated as inclusive of its last value.

    Raises:
        ValueError: If ``in_`` is an empty range.
    """
    if less_than is not None:
        return SizeRange(min=0, max=less_than, message=message)
    if greater_than is not None:
        return SizeRange(min=greater_than, max=None, message=message)
    if isinstance(in_, range):
        if not in_:
            raise ValueError(f"Size range {in_!r} is empty")
        return SizeRange(min=in_.start, max=in_[-1], message=message)
    if in_ is not None:
        low, high = in_
        return SizeRange(min=low, max=high, message=message)
    return SizeRange(message=message)
