"""Exception types raised by attachkit.

Validation problems (missing file, size out of range, disallowed content type,
unsafe filename) are never raised: they are collected as messages on the
attachment. The exceptions below cover operational failures.
"""

from __future__ import annotations


class AttachkitError(Exception):
    """Base class for every error raised by attachkit."""


class GeometryParseError(AttachkitError, ValueError):
    """Raised when a geometry string cannot be parsed.

    This is a subclass of ValueError so pydantic reports it as a regular
    validation error when a style is declared with a bad geometry.
    """

    def __init__(self, spec: str, reason: str) -> None:
        self.spec = spec
        super().__init__(f"Invalid geometry '{spec}': {reason}")


class NotIdentifiedError(AttachkitError):
    """Raised when the transcoder does not recognize the source as an image."""

    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        self.detail = detail
        message = f"'{path}' is not recognized as an image"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProcessingError(AttachkitError):
    """Raised when the transcoder fails while producing a variant.

    Attributes:
        command: The command line that was executed.
        returncode: Exit status, or None when the process never finished.
        stderr: Diagnostic output captured from the process.
    """

    def __init__(self, command: list[str], returncode: int | None, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        status = "timed out" if returncode is None else f"exited with status {returncode}"
        message = f"'{command[0]}' {status}"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class StorageError(AttachkitError):
    """Raised when a storage backend cannot honour a request."""


class UnknownAttachmentError(AttachkitError, KeyError):
    """Raised when an attachment name was never declared on the model."""

    def __init__(self, model_name: str, name: str) -> None:
        self.model_name = model_name
        self.name = name
        super().__init__(f"{model_name} has no attachment named '{name}'")

    def __str__(self) -> str:
        return str(self.args[0])
