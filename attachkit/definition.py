"""Attachment declarations.

A model declares its attachments on an :class:`AttachmentRegistry`, built
once when the model is defined and shared by all of its instances::

    registry = AttachmentRegistry("User", storage=FilesystemStorage("public"))
    registry.has_attached_file("avatar", styles={"thumb": "100x100#"})
    registry.validates_attachment_size("avatar", less_than=1024 * 1024)
"""

from __future__ import annotations

import logging
import typing as t

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from attachkit.config import Config, get_config
from attachkit.errors import UnknownAttachmentError
from attachkit.geometry import Geometry
from attachkit.interpolation import (
    DEFAULT_MISSING_URL,
    DEFAULT_PATH,
    DEFAULT_URL,
    ORIGINAL_STYLE,
    pluralize,
    underscore,
)
from attachkit.storage import StorageBackend, storage_from_config
from attachkit.thumbnail import ImageMagickTranscoder, Transcoder
from attachkit.validators import ContentType, Presence, Validator, size_range

logger = logging.getLogger(__name__)


class StyleSpec(BaseModel):
    """Geometry and optional output format of one style.

    A ``None`` geometry stores the file unprocessed.
    """

    model_config = ConfigDict(frozen=True)

    geometry: t.Optional[str] = None
    format: t.Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def from_shorthand(cls, value: t.Any) -> t.Any:
        """Accept ``"100x100#"``, ``None`` and ``["100x100#", "png"]``."""
        if value is None or isinstance(value, str):
            return {"geometry": value}
        if isinstance(value, (list, tuple)):
            geometry, *rest = value
            return {"geometry": geometry, "format": rest[0] if rest else None}
        return value

    @field_validator("geometry")
    @classmethod
    def validate_geometry(cls, v: t.Optional[str]) -> t.Optional[str]:
        if v is not None:
            Geometry.parse(v)
        return v

    @property
    def parsed_geometry(self) -> Geometry | None:
        return None if self.geometry is None else Geometry.parse(self.geometry)


class AttachmentDefinition(BaseModel):
    """Options of one declared attachment field.

    Attributes:
        name: Field name; columns are ``<name>_file_name``,
            ``<name>_content_type`` and ``<name>_file_size``
        styles: Style name to StyleSpec
        default_style: Style used when none is requested
        url: URL pattern
        default_url: URL pattern used when no file is present
        path: Storage path pattern
        whiny_thumbnails: Override of the global whiny setting, None inherits
        validators: Validators run against the assigned file
    """

    model_config = ConfigDict(frozen=True)

    name: str
    styles: dict[str, StyleSpec] = Field(default_factory=dict)
    default_style: str = ORIGINAL_STYLE
    url: str = DEFAULT_URL
    default_url: str = DEFAULT_MISSING_URL
    path: str = DEFAULT_PATH
    whiny_thumbnails: t.Optional[bool] = None
    validators: tuple[Validator, ...] = ()

    def style_names(self) -> list[str]:
        """``original`` first, then the declared styles in declaration order."""
        return [ORIGINAL_STYLE] + [name for name in self.styles if name != ORIGINAL_STYLE]

    def style(self, name: str) -> StyleSpec:
        return self.styles.get(name, StyleSpec())

    def whiny(self, config: Config) -> bool:
        if self.whiny_thumbnails is None:
            return config.whiny_thumbnails
        return self.whiny_thumbnails

    def with_validator(self, validator: Validator) -> AttachmentDefinition:
        return self.model_copy(update={"validators": self.validators + (validator,)})


class AttachmentRegistry:
    """Per-model attachment configuration.

    Args:
        model_name: Name of the model class, e.g. ``"UserProfile"``.
        storage: Storage backend; defaults to the one in ``config``.
        transcoder: Transcoder; defaults to ImageMagick configured from ``config``.
        config: Global options; defaults to :func:`attachkit.config.get_config`.
    """

    def __init__(
        self,
        model_name: str,
        storage: StorageBackend | None = None,
        transcoder: Transcoder | None = None,
        config: Config | None = None,
    ):
        self.model_name = model_name
        self.config = config or get_config()
        self.storage = storage or storage_from_config(self.config.storage)
        self.transcoder = transcoder or ImageMagickTranscoder(
            search_path=self.config.transcoder_path, timeout=self.config.transcoder_timeout
        )
        self.class_name = underscore(model_name)
        self.class_plural = pluralize(self.class_name)
        self._definitions: dict[str, AttachmentDefinition] = {}

    @property
    def definitions(self) -> t.Mapping[str, AttachmentDefinition]:
        return dict(self._definitions)

    def definition(self, name: str) -> AttachmentDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise UnknownAttachmentError(self.model_name, name) from None

    @staticmethod
    def columns(name: str) -> tuple[str, str, str]:
        """Names of the three record columns backing attachment ``name``."""
        return f"{name}_file_name", f"{name}_content_type", f"{name}_file_size"

    def has_attached_file(self, name: str, **options: t.Any) -> AttachmentDefinition:
        """Declare an attachment field.

        Args:
            name: Field name.
            **options: Any AttachmentDefinition field except ``name``.

        Returns:
            The validated definition.
        """
        definition = AttachmentDefinition.model_validate({**options, "name": name})
        if name in self._definitions:
            logger.warning("Attachment '%s' on %s declared twice", name, self.model_name)
        self._definitions[name] = definition
        return definition

    def add_validator(self, name: str, validator: Validator) -> None:
        self._definitions[name] = self.definition(name).with_validator(validator)

    def validates_attachment_presence(self, name: str, message: str | None = None) -> None:
        self.add_validator(name, Presence(message=message) if message else Presence())

    def validates_attachment_size(
        self,
        name: str,
        in_: range | tuple[int, int] | None = None,
        less_than: int | None = None,
        greater_than: int | None = None,
        message: str | None = None,
    ) -> None:
        self.add_validator(
            name,
            size_range(in_=in_, less_than=less_than, greater_than=greater_than, message=message),
        )

    def validates_attachment_content_type(
        self,
        name: str,
        content_type: str | t.Iterable[str],
        message: str | None = None,
    ) -> None:
        allowed = frozenset([content_type] if isinstance(content_type, str) else content_type)
        if message:
            self.add_validator(name, ContentType(allowed=allowed, message=message))
        else:
            self.add_validator(name, ContentType(allowed=allowed))

    def validates_attachment_thumbnails(self, name: str) -> None:
        """Make processing failures of ``name`` abort its save."""
        self._definitions[name] = self.definition(name).model_copy(
            update={"whiny_thumbnails": True}
        )
