"""Token model produced by the decoder and consumed by the printer.

Tokens are immutable. A token decoded once can be written any number of times,
which the loop splicer relies on when it repeats the loop body per data row.
"""

from dataclasses import dataclass, field
from typing import Tuple, Union


@dataclass(frozen=True)
class Name:
    """Element or attribute name, with ``space`` holding the namespace URI."""

    space: str = ""
    local: str = ""

    def __str__(self) -> str:
        if self.space:
            return f"{{{self.space}}}{self.local}"
        return self.local


@dataclass(frozen=True)
class Attr:
    """Single attribute of a start tag."""

    name: Name
    value: str = ""

    @property
    def is_namespace_declaration(self) -> bool:
        """Check if this attribute is an ``xmlns`` or ``xmlns:prefix`` declaration."""
        return self.name.space == "xmlns" or (
            not self.name.space and self.name.local == "xmlns"
        )


@dataclass(frozen=True)
class StartElement:
    """Start tag; ``empty`` marks a self-closing tag with no matching end tag."""

    name: Name
    attrs: Tuple[Attr, ...] = field(default_factory=tuple)
    empty: bool = False

    def __post_init__(self) -> None:
        """Normalize attributes to a tuple."""
        if not isinstance(self.attrs, tuple):
            object.__setattr__(self, "attrs", tuple(self.attrs))


@dataclass(frozen=True)
class EndElement:
    """End tag."""

    name: Name


@dataclass(frozen=True)
class CharData:
    """Character data with entity references already decoded."""

    text: str


@dataclass(frozen=True)
class Comment:
    """Comment, without the ``<!--`` and ``-->`` delimiters."""

    text: str


@dataclass(frozen=True)
class ProcInst:
    """Processing instruction such as ``<?xml version="1.0"?>``."""

    target: str
    inst: str = ""


@dataclass(frozen=True)
class Directive:
    """Markup declaration such as ``<!DOCTYPE ...>``, without ``<!`` and ``>``."""

    text: str


Token = Union[StartElement, EndElement, CharData, Comment, ProcInst, Directive]
