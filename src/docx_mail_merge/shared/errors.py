"""Exception hierarchy for document merging.

Every error raised by the package derives from :class:`MergeError` so callers
can catch the whole family at once. Configuration errors live in
:mod:`docx_mail_merge.shared.config` and derive from it as well.
"""

from typing import Optional


class MergeError(Exception):
    """Base exception for all merge and serialization errors."""


class XMLSyntaxError(MergeError):
    """Raised when the source content is not well-formed XML."""

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        offset: Optional[int] = None
    ) -> None:
        self.message = message
        self.line = line
        self.offset = offset
        if line is not None:
            message = f"{message} (line {line}, offset {offset})"
        super().__init__(message)


class UnexpectedEOFError(XMLSyntaxError):
    """Raised when the input ends inside markup or an open element."""


class StructuralError(MergeError):
    """Raised when a token sequence cannot be serialized as well-formed XML."""


class DocumentPartNotFoundError(MergeError):
    """Raised when the main XML part is missing from a document container."""

    def __init__(self, part_name: str) -> None:
        super().__init__(f"{part_name} not found in document container")
        self.part_name = part_name


class StreamPreconditionError(MergeError):
    """Raised when token reads and character-data streaming are interleaved."""


class UnterminatedLoopError(MergeError):
    """Raised when a loop start marker has no matching end marker."""

    def __init__(self, loop_name: str) -> None:
        super().__init__(f"loop '{loop_name}' has no end marker")
        self.loop_name = loop_name
