"""The per-record attachment object.

An :class:`Attachment` ties one declared attachment field to one record. It
buffers assigned files, generates the declared styles, stores them, and
removes superseded files, driven by the owning record's save and destroy
events:

    attachment.assign(upload)   # buffered, validated, nothing stored yet
    attachment.save()           # styles generated and stored, columns written
    attachment.queue_existing_for_delete()
    attachment.flush_deletes()  # files removed

The record's three metadata columns always describe the last successfully
saved file. A file assignment that is never saved leaves them untouched.
"""

from __future__ import annotations

import io
import logging
import os
import shutil
import tempfile
import typing as t
import weakref
from enum import Enum
from pathlib import Path

from attachkit.definition import AttachmentDefinition, AttachmentRegistry
from attachkit.errors import AttachkitError, NotIdentifiedError, ProcessingError
from attachkit.interpolation import ORIGINAL_STYLE, InterpolationContext, interpolate, pluralize
from attachkit.thumbnail import StyleOutput, Thumbnail
from attachkit.upfile import AttachmentMetadata, PendingFile, Upload, buffer_upload

logger = logging.getLogger(__name__)


class AttachmentState(Enum):
    EMPTY = "empty"
    ASSIGNED = "assigned"
    SAVED = "saved"


class Attachment:
    """Manages the file of one attachment field on one record.

    Args:
        name: Attachment field name.
        instance: The owning record. Only a weak reference is kept.
        registry: The model's registry, providing storage and transcoder.
    """

    def __init__(self, name: str, instance: t.Any, registry: AttachmentRegistry):
        self.name = name
        self.registry = registry
        self._instance_ref = weakref.ref(instance)
        self._pending: PendingFile | None = None
        self._dirty = False
        # Columns cleared by assign(None), restored if that change is rolled back.
        self._cleared: AttachmentMetadata | None = None
        self._queued_for_delete: list[str] = []
        self._assign_errors: list[str] = []
        self._errors: list[str] = []
        self.delete_failures: list[tuple[str, Exception]] = []

    def __repr__(self) -> str:
        return f"<Attachment {self.name} state={self.state.value}>"

    def __str__(self) -> str:
        return self.url()

    @property
    def definition(self) -> AttachmentDefinition:
        """The field's current declaration, read from the registry on every use."""
        return self.registry.definition(self.name)

    # -- record access ---------------------------------------------------

    @property
    def instance(self) -> t.Any:
        instance = self._instance_ref()
        if instance is None:
            raise ReferenceError(f"The record owning attachment '{self.name}' no longer exists")
        return instance

    @property
    def storage(self):
        return self.registry.storage

    def _columns(self) -> tuple[str, str, str]:
        return self.registry.columns(self.name)

    @property
    def saved_metadata(self) -> AttachmentMetadata:
        """Metadata as currently held in the record's columns."""
        file_name, content_type, file_size = self._columns()
        instance = self.instance
        return AttachmentMetadata(
            file_name=getattr(instance, file_name, None),
            content_type=getattr(instance, content_type, None),
            file_size=getattr(instance, file_size, None),
        )

    def _write_metadata(self, metadata: AttachmentMetadata) -> None:
        file_name, content_type, file_size = self._columns()
        instance = self.instance
        setattr(instance, file_name, metadata.file_name)
        setattr(instance, content_type, metadata.content_type)
        setattr(instance, file_size, metadata.file_size)

    @property
    def metadata(self) -> AttachmentMetadata:
        """Metadata of the pending assignment if any, else of the saved file."""
        if self._pending is not None:
            return self._pending.metadata
        return self.saved_metadata

    @property
    def original_filename(self) -> str | None:
        return self.metadata.file_name

    @property
    def content_type(self) -> str | None:
        return self.metadata.content_type

    @property
    def size(self) -> int | None:
        return self.metadata.file_size

    @property
    def present(self) -> bool:
        return not self.metadata.blank

    def file(self) -> bool:
        return self.present

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def state(self) -> AttachmentState:
        if self._pending is not None:
            return AttachmentState.ASSIGNED
        if self.saved_metadata.blank:
            return AttachmentState.EMPTY
        return AttachmentState.SAVED

    @property
    def queued_for_delete(self) -> list[str]:
        return list(self._queued_for_delete)

    @property
    def whiny(self) -> bool:
        return self.definition.whiny(self.registry.config)

    # -- paths and urls --------------------------------------------------

    def _context(self, style: str, metadata: AttachmentMetadata) -> InterpolationContext:
        return InterpolationContext(
            class_name=self.registry.class_name,
            class_plural=self.registry.class_plural,
            attachment=pluralize(self.name),
            id=getattr(self.instance, "id", None),
            style=style,
            filename=metadata.file_name,
        )

    def _path_for(self, style: str, metadata: AttachmentMetadata) -> str:
        return interpolate(self.definition.path, self._context(style, metadata))

    def _existing_paths(self, metadata: AttachmentMetadata) -> list[str]:
        return [self._path_for(style, metadata) for style in self.definition.style_names()]

    def url(self, style: str | None = None) -> str:
        """Public URL of ``style`` of the saved file.

        Without a saved file the interpolated ``default_url`` is returned.
        Omitting ``style`` is the same as passing the default style.
        """
        style = style or self.definition.default_style
        metadata = self.saved_metadata
        if metadata.blank:
            return interpolate(self.definition.default_url, self._context(style, metadata))
        url = interpolate(self.definition.url, self._context(style, metadata))
        return self.storage.url_for(url)

    def path(self, style: str | None = None) -> str:
        """Storage path of ``style`` of the saved file.

        Without a saved file the interpolated ``default_url`` is returned,
        exactly like :meth:`url`.
        """
        style = style or self.definition.default_style
        metadata = self.saved_metadata
        if metadata.blank:
            return interpolate(self.definition.default_url, self._context(style, metadata))
        return self._path_for(style, metadata)

    # -- assignment and validation ---------------------------------------

    def assign(self, obj: t.Any) -> None:
        """Assign a new file, or None to remove the current one.

        The previous pending assignment, if any, is discarded. Nothing is
        stored or deleted until :meth:`save`. Validation problems are
        available from :attr:`errors` afterwards.
        """
        self.rollback()
        saved = self.saved_metadata

        if obj is None:
            if not saved.blank:
                self._queued_for_delete = self._existing_paths(saved)
                self._cleared = saved
                self._write_metadata(AttachmentMetadata())
            self._dirty = True
            self.validate()
            return

        pending, problems = buffer_upload(obj, self.registry.config.filename_policy)
        if pending is None:
            self._assign_errors = problems
            self.validate()
            return

        self._pending = pending
        self._dirty = True
        if not saved.blank:
            self._queued_for_delete = self._existing_paths(saved)
        self.validate()

    def validate(self) -> list[str]:
        """Run the declared validators against the current metadata.

        Returns:
            Error messages; empty when the attachment is valid.
        """
        metadata = self.metadata
        messages = list(self._assign_errors)
        for validator in self.definition.validators:
            message = validator.evaluate(metadata)
            if message:
                messages.append(message)
        self._errors = messages
        return list(messages)

    @property
    def errors(self) -> list[str]:
        return list(self._errors)

    @property
    def valid(self) -> bool:
        return not self._errors

    # -- lifecycle -------------------------------------------------------

    def rollback(self) -> None:
        """Discard the pending assignment and queued deletes.

        Columns cleared by ``assign(None)`` are restored.
        """
        if self._pending is not None:
            self._pending.discard()
            self._pending = None
        if self._cleared is not None:
            self._write_metadata(self._cleared)
            self._cleared = None
        self._queued_for_delete = []
        self._assign_errors = []
        self._errors = []
        self._dirty = False

    def save(self) -> bool:
        """Store the pending assignment; called after the record is saved.

        Every style is generated before anything is stored. In whiny mode a
        failing style aborts the save: no file is stored, no column changes,
        the pending assignment is dropped and the failure is added to
        :attr:`errors`. Otherwise the failing style is skipped. An invalid
        attachment is rolled back the same way and keeps its errors.

        Returns:
            True on success or when there was nothing to do.
        """
        if self._errors:
            errors = self._errors
            logger.warning(
                "Not saving invalid attachment '%s': %s", self.name, "; ".join(errors)
            )
            self.rollback()
            self._errors = errors
            return False

        if not self._dirty:
            if self._queued_for_delete:
                self.flush_deletes()
            return True

        pending = self._pending
        if pending is None:
            self._cleared = None
            self._dirty = False
            self.flush_deletes()
            return True

        outputs: dict[str, StyleOutput] = {}
        try:
            outputs = self._post_process(pending)
            written = self._flush_writes(outputs, pending.metadata)
        except (AttachkitError, OSError) as e:
            logger.error("Could not save attachment '%s': %s", self.name, e)
            self.rollback()
            self._errors = [str(e)]
            return False
        finally:
            for output in outputs.values():
                output.discard()

        self._write_metadata(pending.metadata)
        pending.discard()
        self._pending = None
        self._dirty = False
        self._queued_for_delete = [p for p in self._queued_for_delete if p not in written]
        self.flush_deletes()
        return True

    def _post_process(self, pending: PendingFile) -> dict[str, StyleOutput]:
        """Generate every style into temporary files, ``original`` first.

        Derived styles are made from the processed original when the
        original itself has a geometry.
        """
        outputs: dict[str, StyleOutput] = {}
        source = pending.path
        whiny = self.whiny
        try:
            for style in self.definition.style_names():
                spec = self.definition.style(style)
                geometry = spec.parsed_geometry
                if geometry is None:
                    outputs[style] = StyleOutput(style=style, path=self._copy_source(source, style))
                    continue
                try:
                    output = Thumbnail(
                        source,
                        geometry,
                        self.registry.transcoder,
                        format=spec.format,
                        format_hint=pending.extension or None,
                    ).make(style)
                except (NotIdentifiedError, ProcessingError) as e:
                    if whiny:
                        raise
                    logger.warning(
                        "Skipping style '%s' of attachment '%s': %s", style, self.name, e
                    )
                    continue
                outputs[style] = output
                if style == ORIGINAL_STYLE:
                    source = output.path
        except BaseException:
            for output in outputs.values():
                output.discard()
            raise
        return outputs

    @staticmethod
    def _copy_source(source: Path, style: str) -> Path:
        fd, name = tempfile.mkstemp(prefix=f"attachkit-{style}-", suffix=source.suffix)
        with os.fdopen(fd, "wb") as out, source.open("rb") as src:
            shutil.copyfileobj(src, out)
        return Path(name)

    def _flush_writes(
        self, outputs: dict[str, StyleOutput], metadata: AttachmentMetadata
    ) -> list[str]:
        """Store every output; on failure undo what this call stored.

        Paths that already hold a file are read back first, so a failure
        restores the previous contents instead of leaving them overwritten.
        """
        written: list[str] = []
        previous: dict[str, bytes] = {}
        try:
            for style, output in outputs.items():
                path = self._path_for(style, metadata)
                if self.storage.exists(path):
                    with self.storage.open(path) as stream:
                        previous[path] = stream.read()
                self.storage.store(path, output.path)
                written.append(path)
        except BaseException:
            for path in written:
                if path in previous:
                    self.storage.store(path, io.BytesIO(previous[path]))
                else:
                    self.storage.delete(path)
            raise
        return written

    def queue_existing_for_delete(self) -> None:
        """Queue every style of the saved file for deletion and clear the columns.

        Any pending assignment is discarded first.
        """
        self.rollback()
        saved = self.saved_metadata
        if saved.blank:
            return
        self._queued_for_delete = self._existing_paths(saved)
        self._write_metadata(AttachmentMetadata())

    def flush_deletes(self) -> None:
        """Delete every queued path; failures are logged and recorded, never raised."""
        for path in self._queued_for_delete:
            try:
                self.storage.delete(path)
            except (AttachkitError, OSError) as e:
                logger.warning("Could not delete '%s' of attachment '%s': %s", path, self.name, e)
                self.delete_failures.append((path, e))
        self._queued_for_delete = []

    def reprocess(self) -> bool:
        """Regenerate every style from the stored original."""
        saved = self.saved_metadata
        if saved.blank:
            return True

        with self.storage.open(self._path_for(ORIGINAL_STYLE, saved)) as stream:
            self.assign(
                Upload(
                    filename=saved.file_name or "",
                    stream=stream,
                    content_type=saved.content_type,
                )
            )
        # Every style is rewritten in place.
        self._queued_for_delete = []
        return self.save()
