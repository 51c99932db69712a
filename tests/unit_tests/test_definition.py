"""Tests for attachment declarations and the per-model registry."""

import pytest
from pydantic import ValidationError

from attachkit.config import Config
from attachkit.definition import AttachmentDefinition, AttachmentRegistry, StyleSpec
from attachkit.errors import UnknownAttachmentError
from attachkit.geometry import Geometry, Modifier
from attachkit.storage import MemoryStorage
from attachkit.thumbnail import ImageMagickTranscoder
from attachkit.validators import ContentType, Presence, SizeRange
from tests.unit_tests.fakes import FakeTranscoder


@pytest.fixture
def registry():
    return AttachmentRegistry("UserProfile", storage=MemoryStorage(), transcoder=FakeTranscoder())


class TestStyleSpec:
    """Style shorthand forms."""

    @pytest.mark.parametrize(
        ("value", "geometry", "format"),
        [
            ("100x100#", "100x100#", None),
            (None, None, None),
            (["100x100#", "png"], "100x100#", "png"),
            (("50x50",), "50x50", None),
            ({"geometry": "10x", "format": "gif"}, "10x", "gif"),
        ],
    )
    def test_shorthand(self, value, geometry, format):
        definition = AttachmentDefinition.model_validate({"name": "a", "styles": {"s": value}})
        assert definition.styles["s"] == StyleSpec(geometry=geometry, format=format)

    def test_invalid_geometry_fails_at_declaration(self):
        with pytest.raises(ValidationError, match="Invalid geometry"):
            AttachmentDefinition(name="a", styles={"thumb": "big"})

    def test_parsed_geometry(self):
        assert StyleSpec(geometry="10x20#").parsed_geometry == Geometry(10, 20, Modifier.CROP)
        assert StyleSpec().parsed_geometry is None


class TestAttachmentDefinition:
    def test_defaults(self):
        definition = AttachmentDefinition(name="avatar")
        assert definition.default_style == "original"
        assert definition.path == ":class/:attachment/:id/:style_:filename"
        assert definition.url == ":class/:attachment/:id/:style_:filename"
        assert definition.default_url == "/:class/:attachment/missing_:style.png"
        assert definition.whiny_thumbnails is None
        assert definition.validators == ()

    def test_style_names_start_with_original(self):
        definition = AttachmentDefinition.model_validate(
            {"name": "a", "styles": {"thumb": "10x10", "original": "500x500>", "medium": "50x50"}}
        )
        assert definition.style_names() == ["original", "thumb", "medium"]

    def test_undeclared_style_is_unprocessed(self):
        assert AttachmentDefinition(name="a").style("original") == StyleSpec()

    def test_whiny_inherits_global(self):
        definition = AttachmentDefinition(name="a")
        assert definition.whiny(Config(WHINY_THUMBNAILS=True)) is True
        assert definition.whiny(Config(WHINY_THUMBNAILS=False)) is False
        overridden = AttachmentDefinition(name="a", whiny_thumbnails=False)
        assert overridden.whiny(Config(WHINY_THUMBNAILS=True)) is False

    def test_validators_from_plain_data(self):
        definition = AttachmentDefinition.model_validate(
            {"name": "a", "validators": [{"kind": "presence"}, {"kind": "size", "max": 10}]}
        )
        assert definition.validators == (Presence(), SizeRange(max=10))


class TestAttachmentRegistry:
    def test_class_forms(self, registry: AttachmentRegistry):
        assert registry.class_name == "user_profile"
        assert registry.class_plural == "user_profiles"

    def test_columns(self):
        assert AttachmentRegistry.columns("avatar") == (
            "avatar_file_name",
            "avatar_content_type",
            "avatar_file_size",
        )

    def test_has_attached_file(self, registry: AttachmentRegistry):
        definition = registry.has_attached_file("avatar", styles={"thumb": "100x100#"})
        assert registry.definition("avatar") is definition
        assert list(registry.definitions) == ["avatar"]

    def test_unknown_attachment(self, registry: AttachmentRegistry):
        with pytest.raises(UnknownAttachmentError, match="UserProfile has no attachment named 'x'"):
            registry.definition("x")

    def test_unknown_attachment_is_key_error(self, registry: AttachmentRegistry):
        with pytest.raises(KeyError):
            registry.validates_attachment_presence("x")

    def test_validators_accumulate(self, registry: AttachmentRegistry):
        registry.has_attached_file("avatar")
        registry.validates_attachment_presence("avatar")
        registry.validates_attachment_size("avatar", less_than=1024, message="too big")
        registry.validates_attachment_content_type("avatar", "image/png")
        registry.validates_attachment_content_type(
            "avatar", ["image/jpeg", "image/gif"], message="no"
        )

        assert registry.definition("avatar").validators == (
            Presence(),
            SizeRange(min=0, max=1024, message="too big"),
            ContentType(allowed=frozenset({"image/png"})),
            ContentType(allowed=frozenset({"image/jpeg", "image/gif"}), message="no"),
        )

    def test_validates_attachment_thumbnails(self, registry: AttachmentRegistry):
        registry.has_attached_file("avatar", whiny_thumbnails=False)
        registry.validates_attachment_thumbnails("avatar")
        assert registry.definition("avatar").whiny_thumbnails is True

    def test_redeclaration_warns(self, registry: AttachmentRegistry, caplog):
        registry.has_attached_file("avatar")
        registry.has_attached_file("avatar", default_style="thumb")
        assert "declared twice" in caplog.text
        assert registry.definition("avatar").default_style == "thumb"

    def test_defaults_from_config(self, tmp_path):
        config = Config.model_validate(
            {"TRANSCODER_PATH": "/opt/im", "TRANSCODER_TIMEOUT": 3, "STORAGE": {"TYPE": "memory"}}
        )
        registry = AttachmentRegistry("Photo", config=config)
        assert isinstance(registry.storage, MemoryStorage)
        assert isinstance(registry.transcoder, ImageMagickTranscoder)
        assert registry.transcoder.search_path == "/opt/im"
        assert registry.transcoder.timeout == 3
