"""Streaming access to a single run of character data.

A :class:`CharDataReader` lets a caller relay an arbitrarily large text
payload (for example a base64 encoded attachment) to another consumer without
the decoder ever building it as one in-memory token. Memory use is bounded by
the size of the caller's buffer.

Preconditions:
    The reader must be obtained with ``XMLDecoder.char_data_reader()`` directly
    after ``token()`` returned a non-empty start element, and it must be read
    until end-of-segment (or closed) before ``token()`` is called again. Both
    rules are enforced with ``StreamPreconditionError``.
"""

import io
from typing import TYPE_CHECKING

from docx_mail_merge.shared.errors import UnexpectedEOFError

if TYPE_CHECKING:
    from .decoder import InputCursor


class CharDataReader(io.RawIOBase):
    """Raw binary reader over the text between a start tag and the next ``<``.

    ``readinto()`` returns the number of bytes copied. A return value of 0 for
    a non-empty buffer means end-of-segment and is repeated on every later
    call. The boundary ``<`` is never consumed, so the owning decoder resumes
    with the following tag. Bytes are raw: entity references are not decoded.
    """

    def __init__(self, cursor: "InputCursor") -> None:
        super().__init__()
        self._cursor = cursor
        self._at_end = False
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    @property
    def at_end(self) -> bool:
        """Check if end-of-segment has been reached."""
        return self._at_end

    @property
    def released(self) -> bool:
        """Check if the owning decoder may read tokens again."""
        return self._at_end or self.closed

    def readinto(self, buffer) -> int:  # type: ignore[no-untyped-def]
        """Copy the next bytes of the segment into ``buffer``.

        Raises:
            UnexpectedEOFError: If the source ends before the segment does
        """
        if self.closed:
            raise ValueError("I/O operation on closed CharDataReader")
        view = memoryview(buffer).cast("B")
        if self._at_end or len(view) == 0:
            return 0

        data, boundary = self._cursor.read_text(len(view))
        if boundary:
            self._at_end = True
        elif not data:
            raise UnexpectedEOFError(
                "input ended inside character data",
                self._cursor.line,
                self._cursor.offset,
            )

        n = len(data)
        view[:n] = data
        self.bytes_read += n
        return n
