"""Host integration for record classes.

A record class mixes in :class:`HasAttachments`, points
``attachment_registry`` at its registry, and calls the lifecycle methods from
its persistence layer:

    class User(HasAttachments):
        attachment_registry = registry
        avatar = AttachedFile()

    user.avatar = upload           # Attachment.assign
    user.validate_attachments()    # before saving the record
    user.on_after_save()           # after the record is saved
    user.on_before_destroy()       # before the record is destroyed
"""

from __future__ import annotations

import typing as t

from attachkit.attachment import Attachment
from attachkit.definition import AttachmentRegistry


class HasAttachments:
    """Mixin giving a record access to its declared attachments.

    Attachment objects are created on first access and cached per instance.
    """

    attachment_registry: t.ClassVar[AttachmentRegistry]

    def attachment_for(self, name: str) -> Attachment:
        cache = self.__dict__.setdefault("_attachments", {})
        if name not in cache:
            registry = type(self).attachment_registry
            cache[name] = Attachment(name, self, registry)
        return cache[name]

    def each_attachment(self) -> t.Iterator[tuple[str, Attachment]]:
        for name in type(self).attachment_registry.definitions:
            yield name, self.attachment_for(name)

    def has_attachment(self, name: str) -> bool:
        return self.attachment_for(name).present

    def validate_attachments(self) -> dict[str, list[str]]:
        """Validation messages keyed by attachment name; empty when all are valid."""
        errors = {}
        for name, attachment in self.each_attachment():
            messages = attachment.validate()
            if messages:
                errors[name] = messages
        return errors

    def on_after_save(self) -> bool:
        """Save every attachment; returns False if any of them failed."""
        results = [attachment.save() for _, attachment in self.each_attachment()]
        return all(results)

    def on_before_destroy(self) -> None:
        for _, attachment in self.each_attachment():
            attachment.queue_existing_for_delete()
            attachment.flush_deletes()

    def rollback_attachments(self) -> None:
        """Drop pending assignments, e.g. when the record's save was aborted."""
        for _, attachment in self.each_attachment():
            attachment.rollback()


class AttachedFile:
    """Descriptor exposing an attachment as a record attribute.

    Reading returns the :class:`Attachment`, assigning calls
    :meth:`Attachment.assign` and ``del`` assigns None.
    """

    def __init__(self, name: str | None = None):
        self.name = name

    def __set_name__(self, owner: type, name: str) -> None:
        if self.name is None:
            self.name = name

    def __get__(self, instance: HasAttachments | None, owner: type) -> t.Any:
        if instance is None:
            return self
        return instance.attachment_for(t.cast(str, self.name))

    def __set__(self, instance: HasAttachments, value: t.Any) -> None:
        instance.attachment_for(t.cast(str, self.name)).assign(value)

    def __delete__(self, instance: HasAttachments) -> None:
        instance.attachment_for(t.cast(str, self.name)).assign(None)
