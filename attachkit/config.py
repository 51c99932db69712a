"""Configuration module for attachkit.

This module defines the process-wide configuration models and the YAML
parsing logic. Per-attachment options live in :mod:`attachkit.definition`.
"""

import sys
import typing as t

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from attachkit.thumbnail import DEFAULT_TRANSCODER_TIMEOUT


class StrictBaseModel(BaseModel):
    """Base model with immutable (frozen) configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class StorageConfig(StrictBaseModel):
    """Storage backend configuration.

    Attributes:
        type: Backend type, ``filesystem`` or ``memory``
        root: Root directory for the filesystem backend
    """

    type: t.Literal["filesystem", "memory"] = Field(default="filesystem", alias="TYPE")
    root: str = Field(default="public", alias="ROOT")


class FilenamePolicy(StrictBaseModel):
    """How unsafe characters in uploaded filenames are handled.

    Path components are always stripped. Remaining characters outside
    ``allowed_characters`` are replaced (``replace`` mode) or cause the
    assignment to fail validation (``reject`` mode).

    Attributes:
        mode: ``replace`` or ``reject``
        replacement: Replacement for each disallowed character
        allowed_characters: Regular expression character class body
    """

    mode: t.Literal["replace", "reject"] = Field(default="replace", alias="MODE")
    replacement: str = Field(default="_", alias="REPLACEMENT")
    allowed_characters: str = Field(default=r"A-Za-z0-9._\-", alias="ALLOWED_CHARACTERS")

    @field_validator("replacement")
    @classmethod
    def validate_replacement(cls, v: str) -> str:
        """Replacement must not reintroduce path separators."""
        if "/" in v or "\\" in v:
            raise ValueError("Replacement must not contain path separators")
        return v


class Config(StrictBaseModel):
    """Process-wide attachkit configuration.

    Attributes:
        whiny_thumbnails: Abort the save when a style cannot be processed
        transcoder_path: Directory holding the transcoder executables
        transcoder_timeout: Seconds before a transcoder command is killed
        storage: Default storage backend
        filename_policy: Filename sanitization policy
    """

    whiny_thumbnails: bool = Field(default=True, alias="WHINY_THUMBNAILS")
    transcoder_path: t.Optional[str] = Field(default=None, alias="TRANSCODER_PATH")
    transcoder_timeout: float = Field(
        default=DEFAULT_TRANSCODER_TIMEOUT, alias="TRANSCODER_TIMEOUT", gt=0
    )
    storage: StorageConfig = Field(default_factory=StorageConfig, alias="STORAGE")
    filename_policy: FilenamePolicy = Field(default_factory=FilenamePolicy, alias="FILENAME_POLICY")

    @classmethod
    def parse_yaml(cls, path: str) -> "Config":
        """Parse configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Validated Config instance

        Raises:
            SystemExit: If config file is not found
        """
        try:
            with open(path, "r") as f:
                return cls.model_validate(yaml.safe_load(f) or {})
        except FileNotFoundError:
            print(f"Config file not found: {path}", file=sys.stderr)
            raise SystemExit(1)


_config = Config()


def configure(config: Config) -> None:
    """Replace the process-wide defaults."""
    global _config
    _config = config


def get_config() -> Config:
    """Return the process-wide defaults."""
    return _config
