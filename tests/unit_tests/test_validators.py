"""Tests for attachment validators."""

import pytest
from pydantic import TypeAdapter, ValidationError

from attachkit.upfile import AttachmentMetadata
from attachkit.validators import ContentType, Presence, SizeRange, Validator, size_range

EMPTY = AttachmentMetadata()
JPEG = AttachmentMetadata(file_name="me.jpg", content_type="image/jpeg", file_size=2048)


class TestPresence:
    def test_missing_file(self):
        assert Presence().evaluate(EMPTY) == "must be set."

    def test_custom_message(self):
        assert Presence(message="is required").evaluate(EMPTY) == "is required"

    def test_present_file(self):
        assert Presence().evaluate(JPEG) is None


class TestSizeRange:
    def test_within_range(self):
        assert SizeRange(min=1024, max=4096).evaluate(JPEG) is None

    def test_bounds_are_inclusive(self):
        assert SizeRange(min=2048, max=2048).evaluate(JPEG) is None

    def test_too_large(self):
        assert SizeRange(max=1024).evaluate(JPEG) == "file size is not between 0 and 1024 bytes."

    def test_too_small_without_upper_bound(self):
        message = SizeRange(min=4096).evaluate(JPEG)
        assert message == "file size is not between 4096 and Infinity bytes."

    def test_custom_message_placeholders(self):
        validator = SizeRange(min=1, max=10, message="must be :min to :max bytes")
        assert validator.evaluate(JPEG) == "must be 1 to 10 bytes"

    def test_skipped_without_file(self):
        assert SizeRange(min=1, max=10).evaluate(EMPTY) is None

    def test_inverted_bounds_rejected(self):
        with pytest.raises(ValidationError, match="must not be below min"):
            SizeRange(min=10, max=5)


class TestSizeRangeBuilder:
    @pytest.mark.parametrize(
        ("kwargs", "expected"),
        [
            ({"less_than": 100}, (0, 100)),
            ({"greater_than": 100}, (100, None)),
            ({"in_": range(10, 21)}, (10, 20)),
            ({"in_": (10, 20)}, (10, 20)),
            ({}, (0, None)),
            ({"in_": (1, 2), "less_than": 50}, (0, 50)),
        ],
    )
    def test_options(self, kwargs: dict, expected: tuple):
        validator = size_range(**kwargs)
        assert (validator.min, validator.max) == expected

    def test_empty_range(self):
        with pytest.raises(ValueError, match="is empty"):
            size_range(in_=range(0))


class TestContentType:
    def test_allowed(self):
        assert ContentType(allowed=frozenset({"image/jpeg", "image/png"})).evaluate(JPEG) is None

    def test_disallowed(self):
        validator = ContentType(allowed=frozenset({"image/png"}))
        assert validator.evaluate(JPEG) == "is not one of the allowed file types."

    def test_family_wildcard(self):
        assert ContentType(allowed=frozenset({"image/*"})).evaluate(JPEG) is None
        assert ContentType(allowed=frozenset({"video/*"})).evaluate(JPEG) is not None

    def test_empty_allows_everything(self):
        assert ContentType().evaluate(JPEG) is None

    def test_skipped_without_file(self):
        assert ContentType(allowed=frozenset({"image/png"})).evaluate(EMPTY) is None

    def test_custom_message(self):
        validator = ContentType(allowed=frozenset({"image/png"}), message="PNG only")
        assert validator.evaluate(JPEG) == "PNG only"


class TestTaggedValidators:
    def test_parse_from_plain_data(self):
        validators = TypeAdapter(list[Validator]).validate_python(
            [
                {"kind": "presence"},
                {"kind": "size", "max": 1024},
                {"kind": "content_type", "allowed": ["image/png"]},
            ]
        )
        assert validators == [
            Presence(),
            SizeRange(max=1024),
            ContentType(allowed=frozenset({"image/png"})),
        ]

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            TypeAdapter(Validator).validate_python({"kind": "virus_scan"})

    def test_validators_are_immutable(self):
        with pytest.raises(ValidationError):
            Presence().message = "changed"  # type: ignore[misc]
