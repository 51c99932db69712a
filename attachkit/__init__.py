"""File attachments for persisted records.

A record declares attachment fields on an :class:`AttachmentRegistry`. Each
field keeps three columns on the record (file name, content type, size) and
stores its files, plus resized style variants, through a storage backend
when the record is saved.

Example:
    >>> from attachkit import AttachmentRegistry, AttachedFile, HasAttachments
    >>> registry = AttachmentRegistry("User")
    >>> registry.has_attached_file("avatar", styles={"thumb": "100x100#"})
    >>> class User(HasAttachments):
    ...     attachment_registry = registry
    ...     avatar = AttachedFile()
    >>> user.avatar = upload
    >>> user.on_after_save()
    >>> user.avatar.url("thumb")
    'users/avatars/4/thumb_me.jpg'
"""

from attachkit.attachment import Attachment, AttachmentState
from attachkit.config import Config, FilenamePolicy, StorageConfig, configure, get_config
from attachkit.definition import AttachmentDefinition, AttachmentRegistry, StyleSpec
from attachkit.errors import (
    AttachkitError,
    GeometryParseError,
    NotIdentifiedError,
    ProcessingError,
    StorageError,
    UnknownAttachmentError,
)
from attachkit.geometry import Geometry, Modifier
from attachkit.interpolation import InterpolationContext, interpolate
from attachkit.record import AttachedFile, HasAttachments
from attachkit.storage import FilesystemStorage, MemoryStorage, StorageBackend
from attachkit.thumbnail import ImageMagickTranscoder, StyleOutput, Thumbnail, Transcoder
from attachkit.upfile import AttachmentMetadata, Upload
from attachkit.validators import ContentType, Presence, SizeRange, Validator

__all__ = [
    "AttachedFile",
    "AttachkitError",
    "Attachment",
    "AttachmentDefinition",
    "AttachmentMetadata",
    "AttachmentRegistry",
    "AttachmentState",
    "Config",
    "ContentType",
    "FilenamePolicy",
    "FilesystemStorage",
    "Geometry",
    "GeometryParseError",
    "HasAttachments",
    "ImageMagickTranscoder",
    "InterpolationContext",
    "MemoryStorage",
    "Modifier",
    "NotIdentifiedError",
    "Presence",
    "ProcessingError",
    "SizeRange",
    "StorageBackend",
    "StorageConfig",
    "StorageError",
    "StyleOutput",
    "StyleSpec",
    "Thumbnail",
    "Transcoder",
    "UnknownAttachmentError",
    "Upload",
    "Validator",
    "configure",
    "get_config",
    "interpolate",
]
