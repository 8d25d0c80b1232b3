"""Tests for the configuration system."""

import pytest

from docx_mail_merge.shared.config import (
    DEFAULT_DOCUMENT_PART,
    WORDPROCESSINGML_NAMESPACES,
    XML_NAMESPACE,
    XSI_NAMESPACE,
    ConfigError,
    ConfigValidationError,
    DecoderConfig,
    EncoderConfig,
    MergeConfig,
    UnterminatedLoopPolicy,
    validate_registration,
)
from docx_mail_merge.shared.errors import MergeError


class TestValidateRegistration:
    """Test suite for prefix registration validation."""

    def test_valid_registration(self):
        """Test that an ordinary prefix and URI are accepted."""
        validate_registration("xsi", XSI_NAMESPACE)
        validate_registration("w14", "http://schemas.microsoft.com/office/word/2010/wordml")

    def test_empty_uri_rejected(self):
        """Test that a prefix cannot be bound to an empty namespace."""
        with pytest.raises(ConfigValidationError, match="must not be empty") as exc_info:
            validate_registration("s", "")
        assert exc_info.value.field_name == "namespaces"

    @pytest.mark.parametrize("prefix", ["", "a:b", "1abc", "-x", "has space"])
    def test_invalid_prefix_rejected(self, prefix):
        """Test that prefixes that are not XML names are rejected."""
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_registration(prefix, "space")
        assert exc_info.value.suggestions

    def test_xmlns_prefix_rejected(self):
        """Test that the reserved xmlns prefix cannot be registered."""
        with pytest.raises(ConfigValidationError, match="xmlns"):
            validate_registration("xmlns", "space")

    def test_xml_prefix_only_for_xml_namespace(self):
        """Test that xml may only be bound to the XML namespace."""
        validate_registration("xml", XML_NAMESPACE)
        with pytest.raises(ConfigValidationError, match="reserved"):
            validate_registration("xml", "space")

    def test_validation_error_is_config_error(self):
        """Test the configuration exception hierarchy."""
        assert issubclass(ConfigValidationError, ConfigError)

    def test_config_error_caught_as_merge_error(self):
        """Test that configuration errors belong to the package error family."""
        assert issubclass(ConfigError, MergeError)

        with pytest.raises(MergeError) as exc_info:
            EncoderConfig(namespaces={"xmlns": "space"})
        assert isinstance(exc_info.value, ConfigValidationError)
        assert exc_info.value.field_name == "namespaces"


class TestEncoderConfig:
    """Test suite for EncoderConfig."""

    def test_default_configuration(self):
        """Test default encoder configuration values."""
        config = EncoderConfig()

        assert config.namespaces == {}
        assert config.optimize_namespaces is False
        assert config.prefix_elements is False
        assert config.drop_root_ignorable is True

    def test_invalid_namespaces_rejected_at_construction(self):
        """Test that the registration table is validated in __post_init__."""
        with pytest.raises(ConfigValidationError):
            EncoderConfig(namespaces={"bad:prefix": "space"})

    def test_register_adds_entry(self):
        """Test registering a namespace after construction."""
        config = EncoderConfig()
        config.register("s", "space")

        assert config.namespaces == {"s": "space"}

    def test_register_validates(self):
        """Test that register() rejects invalid entries and leaves the table unchanged."""
        config = EncoderConfig()
        with pytest.raises(ConfigValidationError):
            config.register("xmlns", "space")
        assert config.namespaces == {}

    def test_wordprocessingml_preset(self):
        """Test the WordprocessingML preset."""
        config = EncoderConfig.wordprocessingml()

        assert config.optimize_namespaces is True
        assert config.prefix_elements is True
        assert config.namespaces == WORDPROCESSINGML_NAMESPACES
        assert config.namespaces is not WORDPROCESSINGML_NAMESPACES
        assert config.namespaces["w"] == (
            "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
        )

    def test_configs_do_not_share_tables(self):
        """Test that two encoder configurations have independent tables."""
        first = EncoderConfig()
        second = EncoderConfig()
        first.register("s", "space")

        assert second.namespaces == {}


class TestDecoderConfig:
    """Test suite for DecoderConfig."""

    def test_default_configuration(self):
        """Test default decoder configuration values."""
        config = DecoderConfig()

        assert config.strict is True
        assert config.buffer_size == 8192

    @pytest.mark.parametrize("size", [0, -1])
    def test_buffer_size_must_be_positive(self, size):
        """Test that a non-positive buffer size is rejected."""
        with pytest.raises(ConfigValidationError, match="buffer_size must be > 0") as exc_info:
            DecoderConfig(buffer_size=size)
        assert exc_info.value.field_name == "buffer_size"


class TestMergeConfig:
    """Test suite for MergeConfig."""

    def test_default_configuration(self):
        """Test default merge configuration values."""
        config = MergeConfig()

        assert config.document_part == DEFAULT_DOCUMENT_PART == "word/document.xml"
        assert config.unterminated_loop is UnterminatedLoopPolicy.RAISE
        assert config.correlation_id is None
        assert config.encoder.prefix_elements is True
        assert config.encoder.optimize_namespaces is True
        assert config.decoder.strict is True

    def test_plain_configuration(self):
        """Test the configuration without registrations or optimization."""
        config = MergeConfig.plain()

        assert config.encoder.namespaces == {}
        assert config.encoder.optimize_namespaces is False
        assert config.encoder.prefix_elements is False

    def test_empty_document_part_rejected(self):
        """Test that the main part name must not be empty."""
        with pytest.raises(ConfigValidationError, match="document_part"):
            MergeConfig(document_part="")

    def test_invalid_policy_rejected(self):
        """Test that the unterminated loop policy must be an enum member."""
        with pytest.raises(ConfigValidationError) as exc_info:
            MergeConfig(unterminated_loop="raise")
        assert exc_info.value.field_name == "unterminated_loop"
        assert exc_info.value.suggestions == ["RAISE", "EXTEND_TO_END"]

    def test_to_dict(self):
        """Test conversion to a dictionary for logging."""
        config = MergeConfig(
            encoder=EncoderConfig(namespaces={"s": "space"}),
            unterminated_loop=UnterminatedLoopPolicy.EXTEND_TO_END,
            correlation_id="merge-1",
        )

        data = config.to_dict()

        assert data["unterminated_loop"] == "EXTEND_TO_END"
        assert data["correlation_id"] == "merge-1"
        assert data["encoder"]["namespaces"] == {"s": "space"}
        assert data["decoder"] == {"strict": True, "buffer_size": 8192}
        assert data["document_part"] == "word/document.xml"
