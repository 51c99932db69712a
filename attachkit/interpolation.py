"""Pattern interpolation for attachment paths and URLs.

Patterns are plain strings containing tokens such as ``:class`` or
``:filename``. Each token is replaced by a value taken from an
:class:`InterpolationContext`:

    >>> ctx = InterpolationContext(
    ...     class_name="user", class_plural="users", attachment="avatars",
    ...     id=4, style="thumb", filename="me.jpg",
    ... )
    >>> interpolate(":class/:attachment/:id/:style_:filename", ctx)
    'users/avatars/4/thumb_me.jpg'

Substitution is a single left-to-right pass: a substituted value is never
scanned again, so a filename such as ``":id.png"`` stays literal.
"""

from __future__ import annotations

import os
import re
import typing as t
from dataclasses import dataclass

DEFAULT_PATH = ":class/:attachment/:id/:style_:filename"
DEFAULT_URL = ":class/:attachment/:id/:style_:filename"
DEFAULT_MISSING_URL = "/:class/:attachment/missing_:style.png"

ORIGINAL_STYLE = "original"


@dataclass(frozen=True)
class InterpolationContext:
    """Values available to a pattern.

    Attributes:
        class_name: Singular snake case model name (e.g. ``user_profile``).
        class_plural: Directory form of the model name (e.g. ``user_profiles``).
        attachment: Pluralized attachment field name (e.g. ``avatars``).
        id: Primary key of the owning record, None before it is persisted.
        style: Style name being resolved.
        filename: Original (sanitized) filename, None when no file is present.
    """

    class_name: str
    class_plural: str
    attachment: str
    id: t.Any
    style: str
    filename: str | None

    @property
    def basename(self) -> str:
        return os.path.splitext(self.filename or "")[0]

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lstrip(".")


_TOKENS: dict[str, t.Callable[[InterpolationContext], str]] = {
    "class": lambda ctx: ctx.class_plural,
    "attachment": lambda ctx: ctx.attachment,
    "id": lambda ctx: "" if ctx.id is None else str(ctx.id),
    "style": lambda ctx: ctx.style,
    "basename": lambda ctx: ctx.basename,
    "extension": lambda ctx: ctx.extension,
    "filename": lambda ctx: ctx.filename or "",
}

# Longest names first so a shorter token never wins over a longer one sharing
# its prefix. A token directly followed by a letter is some other word.
_TOKEN_RE = re.compile(
    ":(" + "|".join(sorted(_TOKENS, key=len, reverse=True)) + ")(?![A-Za-z])"
)


def interpolate(pattern: str, context: InterpolationContext) -> str:
    """Replace every recognized token in ``pattern`` with its value.

    Unknown tokens are left untouched.

    Args:
        pattern: Pattern string such as ``":class/:id/:style_:filename"``.
        context: Values for the tokens.

    Returns:
        The interpolated string.
    """
    return _TOKEN_RE.sub(lambda match: _TOKENS[match.group(1)](context), pattern)


def underscore(name: str) -> str:
    """Convert a CamelCase model name to snake case."""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", name)
    return name.replace("-", "_").lower()


def pluralize(word: str) -> str:
    """Pluralize an English noun well enough for directory names."""
    if not word:
        return word
    lower = word.lower()
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if lower.endswith("y") and len(word) > 1 and lower[-2] not in "aeiou":
        return word[:-1] + "ies"
    return word + "s"
