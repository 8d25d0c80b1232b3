"""Docx Mail Merge.

Fill merge fields and repeat loop regions in WordprocessingML documents while
keeping the rest of the document byte-for-byte equivalent. Documents are
processed as a token stream: decoded once, partitioned around a loop region,
and printed again with namespace declarations kept minimal.

Progressive API Disclosure:
- Level 1: Simple functions - open_template(), replace_loop(), roundtrip()
- Level 2: Templates and documents - DocxTemplate, EditableDocument
- Level 3: Token streams - XMLDecoder, XMLPrinter, CharDataReader
"""

__version__ = "0.1.0"
__author__ = "Docx Mail Merge Team"

# Level 1: Simple functions
from .api import open_template, replace_loop, roundtrip

# Level 2: Templates and documents
from .merge import DocxTemplate, EditableDocument, LoopSplicer
from .serialization import XMLPrinter

# Configuration, results and errors
from .shared import (
    DecoderConfig,
    EncoderConfig,
    LoopResult,
    MergeConfig,
    MergeError,
    UnterminatedLoopPolicy,
)

# Level 3: Token streams
from .tokenization import CharDataReader, XMLDecoder

__all__ = [
    # Version and metadata
    "__author__",
    "__version__",

    # Level 1: Simple functions
    "open_template",
    "replace_loop",
    "roundtrip",

    # Level 2: Templates and documents
    "DocxTemplate",
    "EditableDocument",
    "LoopSplicer",

    # Level 3: Token streams
    "CharDataReader",
    "XMLDecoder",
    "XMLPrinter",

    # Configuration, results and errors
    "DecoderConfig",
    "EncoderConfig",
    "LoopResult",
    "MergeConfig",
    "MergeError",
    "UnterminatedLoopPolicy",
]
