"""Configuration classes for decoding, printing and merging documents.

Configuration objects are passed explicitly to every decoder, printer and
splicer at construction, so documents with different namespace policies can
be processed side by side.
"""

import re
from dataclasses import asdict, dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional

from .errors import MergeError

XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"

# Namespaces declared on the root of a WordprocessingML main document part
WORDPROCESSINGML_NAMESPACES: Dict[str, str] = {
    "wpc": "http://schemas.microsoft.com/office/word/2010/wordprocessingCanvas",
    "mc": "http://schemas.openxmlformats.org/markup-compatibility/2006",
    "o": "urn:schemas-microsoft-com:office:office",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "m": "http://schemas.openxmlformats.org/officeDocument/2006/math",
    "v": "urn:schemas-microsoft-com:vml",
    "wp14": "http://schemas.microsoft.com/office/word/2010/wordprocessingDrawing",
    "wp": "http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing",
    "w10": "urn:schemas-microsoft-com:office:word",
    "w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "w14": "http://schemas.microsoft.com/office/word/2010/wordml",
    "wpg": "http://schemas.microsoft.com/office/word/2010/wordprocessingGroup",
    "wpi": "http://schemas.microsoft.com/office/word/2010/wordprocessingInk",
    "wne": "http://schemas.microsoft.com/office/word/2006/wordml",
    "wps": "http://schemas.microsoft.com/office/word/2010/wordprocessingShape",
}

DEFAULT_DOCUMENT_PART = "word/document.xml"
DEFAULT_BUFFER_SIZE = 8192

_PREFIX_PATTERN = re.compile(r"^[A-Za-z_][\w.\-]*$")


class ConfigError(MergeError):
    """Base exception for configuration errors."""


class ConfigValidationError(ConfigError):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, field_name: Optional[str] = None,
                 suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.field_name = field_name
        self.suggestions = suggestions or []


def validate_registration(prefix: str, uri: str) -> None:
    """Validate one prefix to namespace URI registration.

    Raises:
        ConfigValidationError: If the prefix cannot be declared with ``xmlns:``
    """
    if not uri:
        raise ConfigValidationError(
            f"namespace for prefix '{prefix}' must not be empty",
            field_name="namespaces",
        )
    if not _PREFIX_PATTERN.match(prefix):
        raise ConfigValidationError(
            f"'{prefix}' is not a valid namespace prefix",
            field_name="namespaces",
            suggestions=["Use a name without ':' that starts with a letter or '_'"],
        )
    if prefix == "xmlns":
        raise ConfigValidationError(
            "the 'xmlns' prefix cannot be registered",
            field_name="namespaces",
        )
    if prefix == "xml" and uri != XML_NAMESPACE:
        raise ConfigValidationError(
            f"the 'xml' prefix is reserved for {XML_NAMESPACE}",
            field_name="namespaces",
        )


@dataclass
class EncoderConfig:
    """Namespace policy for the streaming printer.

    Attributes:
        namespaces: Registration table mapping prefix to namespace URI
        optimize_namespaces: Omit declarations already made by an ancestor
        prefix_elements: Write ``prefix:local`` instead of ``xmlns="uri"``
        drop_root_ignorable: Drop ``Ignorable`` attributes from the root element
    """

    namespaces: Dict[str, str] = field(default_factory=dict)
    optimize_namespaces: bool = False
    prefix_elements: bool = False
    drop_root_ignorable: bool = True

    def __post_init__(self) -> None:
        """Validate encoder configuration."""
        for prefix, uri in self.namespaces.items():
            validate_registration(prefix, uri)

    def register(self, prefix: str, uri: str) -> None:
        """Register a namespace to be declared on the root element."""
        validate_registration(prefix, uri)
        self.namespaces[prefix] = uri

    @classmethod
    def wordprocessingml(cls) -> "EncoderConfig":
        """Create configuration that re-emits Word documents with their prefixes."""
        return cls(
            namespaces=dict(WORDPROCESSINGML_NAMESPACES),
            optimize_namespaces=True,
            prefix_elements=True,
        )


@dataclass
class DecoderConfig:
    """Configuration for the streaming decoder."""

    strict: bool = True
    buffer_size: int = DEFAULT_BUFFER_SIZE

    def __post_init__(self) -> None:
        """Validate decoder configuration."""
        if self.buffer_size <= 0:
            raise ConfigValidationError(
                "buffer_size must be > 0", field_name="buffer_size"
            )


class UnterminatedLoopPolicy(Enum):
    """What to do when a loop start marker has no end marker.

    ``EXTEND_TO_END`` only yields well-formed output with exactly one row. The
    body then ends with the end tags of the marker's ancestors, so zero rows
    leave them unclosed and more rows repeat them. The printer rejects both
    with ``StructuralError``.
    """

    RAISE = auto()          # Fail the call, content stays unchanged
    EXTEND_TO_END = auto()  # Treat everything after the start marker as loop body


@dataclass
class MergeConfig:
    """Configuration for merge passes over a document container."""

    encoder: EncoderConfig = field(default_factory=EncoderConfig.wordprocessingml)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    document_part: str = DEFAULT_DOCUMENT_PART
    unterminated_loop: UnterminatedLoopPolicy = UnterminatedLoopPolicy.RAISE
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate merge configuration."""
        if not self.document_part:
            raise ConfigValidationError(
                "document_part must not be empty", field_name="document_part"
            )
        if not isinstance(self.unterminated_loop, UnterminatedLoopPolicy):
            raise ConfigValidationError(
                "unterminated_loop must be an UnterminatedLoopPolicy",
                field_name="unterminated_loop",
                suggestions=[p.name for p in UnterminatedLoopPolicy],
            )

    @classmethod
    def plain(cls) -> "MergeConfig":
        """Create configuration without namespace registrations or optimization."""
        return cls(encoder=EncoderConfig())

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a dictionary for logging."""
        data = asdict(self)
        data["unterminated_loop"] = self.unterminated_loop.name
        return data
