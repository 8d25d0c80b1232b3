"""Tokenization layer: token model, streaming decoder and character-data reader.

Key Components:
    XMLDecoder: Pull decoder turning XML bytes into tokens
    CharDataReader: Raw byte stream over one character-data run
    StartElement, EndElement, CharData: Core token types
    Comment, ProcInst, Directive: Structural tokens passed through unchanged
"""

from .chardata import CharDataReader
from .decoder import InputCursor, XMLDecoder
from .tokens import (
    Attr,
    CharData,
    Comment,
    Directive,
    EndElement,
    Name,
    ProcInst,
    StartElement,
    Token,
)

__all__ = [
    "Attr",
    "CharData",
    "CharDataReader",
    "Comment",
    "Directive",
    "EndElement",
    "InputCursor",
    "Name",
    "ProcInst",
    "StartElement",
    "Token",
    "XMLDecoder",
]
