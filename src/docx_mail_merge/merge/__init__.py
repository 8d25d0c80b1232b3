"""Merge layer: loop splicing and editable document containers."""

from .document import UNBOUNDED, DocxTemplate, EditableDocument
from .loop import (
    CLOSE_DELIMITER,
    OPEN_DELIMITER,
    LoopSegments,
    LoopSplicer,
    LoopState,
    loop_sentinels,
    placeholder,
    placeholder_key,
)

__all__ = [
    "CLOSE_DELIMITER",
    "DocxTemplate",
    "EditableDocument",
    "LoopSegments",
    "LoopSplicer",
    "LoopState",
    "OPEN_DELIMITER",
    "UNBOUNDED",
    "loop_sentinels",
    "placeholder",
    "placeholder_key",
]
