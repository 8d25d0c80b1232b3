"""Streaming XML decoder producing the token model.

The decoder pulls bytes from an :class:`InputCursor` over any binary source
(bytes, a file, a pipe or a socket), so the document never has to be held in
memory as a whole. Besides ordinary token reads it can hand out a
:class:`~docx_mail_merge.tokenization.chardata.CharDataReader` that streams a
single character-data run directly from the cursor.
"""

import codecs
import io
import logging
import re
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple, Union

from docx_mail_merge.shared.config import XML_NAMESPACE, DecoderConfig
from docx_mail_merge.shared.errors import (
    StreamPreconditionError,
    UnexpectedEOFError,
    XMLSyntaxError,
)

from .chardata import CharDataReader
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

SourceType = Union[bytes, bytearray, str, BinaryIO]

# Byte values used by the state handlers
LT = ord("<")
GT = ord(">")
SLASH = ord("/")
BANG = ord("!")
QUESTION = ord("?")
EQUALS = ord("=")
DASH = ord("-")
LBRACKET = ord("[")
QUOT = ord('"')
APOS = ord("'")
NEWLINE = ord("\n")

WHITESPACE = frozenset(b" \t\r\n")
NAME_TERMINATORS = frozenset(b" \t\r\n/>=<?\"'")

PREDEFINED_ENTITIES = {
    "lt": "<",
    "gt": ">",
    "amp": "&",
    "apos": "'",
    "quot": '"',
}
ENTITY_PATTERN = re.compile(
    r"&(?:#[xX]([0-9a-fA-F]+)|#([0-9]+)|([A-Za-z_:][\w.:\-]*));|&"
)
MAX_CODE_POINT = 0x10FFFF

logger = logging.getLogger(__name__)


class InputCursor:
    """Byte cursor over a binary source with one byte of push-back.

    Reads from the source in chunks of ``buffer_size`` bytes and keeps only the
    unread part of the current chunk.
    """

    def __init__(self, source: BinaryIO, buffer_size: int) -> None:
        self._source = source
        self._reader = getattr(source, "read1", None) or source.read
        self.buffer_size = buffer_size
        self._buffer = b""
        self._pos = 0
        self._eof = False
        self._started = False
        self.offset = 0
        self.line = 1

    @property
    def at_eof(self) -> bool:
        """Check if the source is exhausted and every byte has been consumed."""
        return self._eof and self._pos >= len(self._buffer)

    def _fill(self) -> bool:
        """Read the next chunk from the source; False once it is exhausted."""
        if self._eof:
            return False
        chunk = self._reader(self.buffer_size)
        if not chunk:
            self._eof = True
            return False
        if not isinstance(chunk, (bytes, bytearray)):
            raise TypeError("decoder source must produce bytes, not text")
        chunk = bytes(chunk)
        if not self._started:
            self._started = True
            if chunk.startswith(codecs.BOM_UTF8):
                chunk = chunk[len(codecs.BOM_UTF8):]
        self._buffer = self._buffer[self._pos:] + chunk
        self._pos = 0
        return True

    def _advance(self, data: bytes) -> None:
        self._pos += len(data)
        self.offset += len(data)
        self.line += data.count(b"\n")

    def getc(self) -> Optional[int]:
        """Consume and return the next byte, or None at end of input."""
        if self._pos >= len(self._buffer) and not self._fill():
            return None
        b = self._buffer[self._pos]
        self._pos += 1
        self.offset += 1
        if b == NEWLINE:
            self.line += 1
        return b

    def ungetc(self, b: int) -> None:
        """Push back the byte returned by the last ``getc()``."""
        if self._pos > 0 and self._buffer[self._pos - 1] == b:
            self._pos -= 1
        else:
            self._buffer = bytes((b,)) + self._buffer[self._pos:]
            self._pos = 0
        self.offset -= 1
        if b == NEWLINE:
            self.line -= 1

    def read_text(self, limit: int = -1) -> Tuple[bytes, bool]:
        """Read raw bytes up to, but not including, the next ``<``.

        Args:
            limit: Maximum number of bytes to return, -1 for no limit

        Returns:
            Tuple of (data, boundary_found). When ``boundary_found`` is True the
            next byte on the cursor is ``<``. A short read without a boundary
            means the source is exhausted.
        """
        parts: List[bytes] = []
        remaining = limit
        while remaining != 0:
            if self._pos >= len(self._buffer) and not self._fill():
                break
            end = len(self._buffer)
            if remaining > 0:
                end = min(end, self._pos + remaining)
            index = self._buffer.find(b"<", self._pos, end)
            stop = end if index < 0 else index
            chunk = self._buffer[self._pos:stop]
            self._advance(chunk)
            if chunk:
                parts.append(chunk)
            if remaining > 0:
                remaining -= len(chunk)
            if index >= 0:
                return b"".join(parts), True
        return b"".join(parts), False


def _as_binary_stream(source: SourceType) -> BinaryIO:
    if isinstance(source, str):
        return io.BytesIO(source.encode("utf-8"))
    if isinstance(source, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(source))
    if isinstance(source, io.TextIOBase):
        raise TypeError("decoder source must be opened in binary mode")
    if hasattr(source, "read"):
        return source
    raise TypeError(f"unsupported decoder source: {type(source).__name__}")


def _split_name(raw: str) -> Tuple[str, str]:
    prefix, sep, local = raw.partition(":")
    if not sep or not prefix or not local:
        return "", raw
    return prefix, local


class XMLDecoder:
    """Pull decoder turning XML bytes into tokens.

    Examples:
        >>> decoder = XMLDecoder('<a x="1">hi</a>')
        >>> [type(t).__name__ for t in decoder]
        ['StartElement', 'CharData', 'EndElement']
    """

    def __init__(
        self,
        source: SourceType,
        config: Optional[DecoderConfig] = None,
        correlation_id: Optional[str] = None
    ) -> None:
        """Initialize the decoder.

        Args:
            source: XML as bytes, str or a binary file-like object
            config: Decoder configuration
            correlation_id: Optional correlation ID for log records
        """
        self.config = config or DecoderConfig()
        self.correlation_id = correlation_id
        self._cursor = InputCursor(_as_binary_stream(source), self.config.buffer_size)
        self._open: List[Tuple[str, Name]] = []
        self._scopes: List[Dict[str, str]] = []
        self._last_was_start = False
        self._reader: Optional[CharDataReader] = None
        self._finished = False
        self.tokens_read = 0

    @property
    def input_offset(self) -> int:
        """Number of bytes consumed from the source."""
        return self._cursor.offset

    @property
    def input_line(self) -> int:
        """Line number of the cursor, starting at 1."""
        return self._cursor.line

    @property
    def depth(self) -> int:
        """Number of currently open elements."""
        return len(self._open)

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.token()
            if token is None:
                return
            yield token

    def token(self) -> Optional[Token]:
        """Return the next token, or None at end of input.

        Raises:
            XMLSyntaxError: If the input is not well-formed
            StreamPreconditionError: If a character data reader is mid-segment
        """
        if self._reader is not None:
            if not self._reader.released:
                raise StreamPreconditionError(
                    "token() called while a character data reader is active"
                )
            self._reader = None

        token = self._next_token()
        self._last_was_start = isinstance(token, StartElement) and not token.empty
        if token is None:
            if not self._finished:
                self._finished = True
                logger.debug(
                    "Decoding completed",
                    extra={
                        "component": "xml_decoder",
                        "correlation_id": self.correlation_id,
                        "tokens_read": self.tokens_read,
                        "bytes_read": self._cursor.offset,
                    }
                )
        else:
            self.tokens_read += 1
        return token

    def char_data_reader(self) -> CharDataReader:
        """Return a reader streaming the character data after the last start tag.

        The reader must be requested directly after ``token()`` returned a
        non-empty start element, and must be read to end-of-segment (or closed)
        before ``token()`` is called again.

        Raises:
            StreamPreconditionError: If the previous token was not a start element
        """
        if self._reader is not None and not self._reader.released:
            raise StreamPreconditionError("a character data reader is already active")
        if not self._last_was_start:
            raise StreamPreconditionError(
                "char_data_reader() must directly follow a start element"
            )
        self._last_was_start = False
        self._reader = CharDataReader(self._cursor)
        return self._reader

    def _syntax_error(self, message: str) -> XMLSyntaxError:
        return XMLSyntaxError(message, self._cursor.line, self._cursor.offset)

    def _must_getc(self) -> int:
        b = self._cursor.getc()
        if b is None:
            raise UnexpectedEOFError(
                "unexpected end of input", self._cursor.line, self._cursor.offset
            )
        return b

    def _skip_space(self) -> int:
        while True:
            b = self._must_getc()
            if b not in WHITESPACE:
                return b

    def _decode(self, data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise self._syntax_error(f"invalid UTF-8 data: {e.reason}") from e

    def _unescape(self, text: str) -> str:
        if "&" not in text:
            return text

        def _replace(match: "re.Match[str]") -> str:
            hex_ref, dec_ref, name = match.groups()
            if hex_ref or dec_ref:
                code = int(hex_ref, 16) if hex_ref else int(dec_ref)
                if 0 < code <= MAX_CODE_POINT:
                    return chr(code)
            elif name in PREDEFINED_ENTITIES:
                return PREDEFINED_ENTITIES[name]
            if self.config.strict:
                raise self._syntax_error(
                    f"invalid character entity {match.group(0)!r}"
                )
            return match.group(0)

        return ENTITY_PATTERN.sub(_replace, text)

    def _next_token(self) -> Optional[Token]:
        b = self._cursor.getc()
        if b is None:
            if self._open and self.config.strict:
                raise UnexpectedEOFError(
                    f"unexpected end of input, <{self._open[-1][0]}> is not closed",
                    self._cursor.line,
                    self._cursor.offset,
                )
            return None
        if b != LT:
            self._cursor.ungetc(b)
            data, _ = self._cursor.read_text()
            return CharData(self._unescape(self._decode(data)))

        b = self._must_getc()
        if b == SLASH:
            return self._read_end_element()
        if b == QUESTION:
            return self._read_proc_inst()
        if b == BANG:
            return self._read_bang()
        self._cursor.ungetc(b)
        return self._read_start_element()

    def _read_name(self) -> str:
        data = bytearray()
        while True:
            b = self._must_getc()
            if b in NAME_TERMINATORS:
                self._cursor.ungetc(b)
                break
            data.append(b)
        if not data:
            raise self._syntax_error("expected name")
        name = self._decode(bytes(data))
        if name[0].isdigit() or name[0] in "-.:":
            raise self._syntax_error(f"invalid name {name!r}")
        return name

    def _read_through(self, terminator: bytes) -> bytes:
        data = bytearray()
        while True:
            data.append(self._must_getc())
            if data.endswith(terminator):
                return bytes(data[:-len(terminator)])

    def _read_start_element(self) -> StartElement:
        raw_name = self._read_name()
        raw_attrs: List[Tuple[str, str]] = []
        empty = False
        while True:
            b = self._skip_space()
            if b == GT:
                break
            if b == SLASH:
                if self._must_getc() != GT:
                    raise self._syntax_error(f"expected '/>' in element <{raw_name}>")
                empty = True
                break
            self._cursor.ungetc(b)
            attr_name = self._read_name()
            if self._skip_space() != EQUALS:
                raise self._syntax_error(f"attribute {attr_name!r} without value")
            quote = self._skip_space()
            if quote not in (QUOT, APOS):
                raise self._syntax_error(f"unquoted value for attribute {attr_name!r}")
            value = bytearray()
            while True:
                b = self._must_getc()
                if b == quote:
                    break
                if b == LT:
                    raise self._syntax_error(f"'<' in value of attribute {attr_name!r}")
                value.append(b)
            raw_attrs.append((attr_name, self._unescape(self._decode(bytes(value)))))
        return self._translate_start(raw_name, raw_attrs, empty)

    def _translate_start(
        self,
        raw_name: str,
        raw_attrs: List[Tuple[str, str]],
        empty: bool
    ) -> StartElement:
        scope: Dict[str, str] = {}
        for raw, value in raw_attrs:
            prefix, local = _split_name(raw)
            if prefix == "xmlns":
                scope[local] = value
            elif not prefix and local == "xmlns":
                scope[""] = value
        self._scopes.append(scope)

        attrs = tuple(
            Attr(self._translate(raw, is_attr=True), value) for raw, value in raw_attrs
        )
        name = self._translate(raw_name, is_attr=False)
        if empty:
            self._scopes.pop()
        else:
            self._open.append((raw_name, name))
        return StartElement(name, attrs, empty)

    def _lookup(self, prefix: str) -> Optional[str]:
        for scope in reversed(self._scopes):
            if prefix in scope:
                return scope[prefix]
        return None

    def _translate(self, raw: str, is_attr: bool) -> Name:
        prefix, local = _split_name(raw)
        if prefix == "xmlns":
            return Name("xmlns", local)
        if not prefix:
            if is_attr:
                return Name("", local)
            return Name(self._lookup("") or "", local)
        if prefix == "xml":
            return Name(XML_NAMESPACE, local)
        uri = self._lookup(prefix)
        return Name(uri if uri is not None else prefix, local)

    def _read_end_element(self) -> EndElement:
        raw_name = self._read_name()
        if self._skip_space() != GT:
            raise self._syntax_error(f"invalid characters in end element </{raw_name}>")
        if not self._open or self._open[-1][0] != raw_name:
            if self.config.strict:
                if not self._open:
                    raise self._syntax_error(f"unexpected end element </{raw_name}>")
                raise self._syntax_error(
                    f"element <{self._open[-1][0]}> closed by </{raw_name}>"
                )
            return EndElement(self._translate(raw_name, is_attr=False))
        _, name = self._open.pop()
        self._scopes.pop()
        return EndElement(name)

    def _read_proc_inst(self) -> ProcInst:
        target = self._read_name()
        body = self._decode(self._read_through(b"?>"))
        if body and body[0] not in " \t\r\n":
            raise self._syntax_error(f"invalid processing instruction <?{target}")
        return ProcInst(target, body.lstrip(" \t\r\n"))

    def _read_bang(self) -> Token:
        b = self._must_getc()
        if b == DASH:
            if self._must_getc() != DASH:
                raise self._syntax_error("invalid sequence <!- not part of <!--")
            return Comment(self._decode(self._read_through(b"-->")))
        if b == LBRACKET:
            for expected in b"CDATA[":
                if self._must_getc() != expected:
                    raise self._syntax_error("invalid <![ sequence")
            return CharData(self._decode(self._read_through(b"]]>")))
        self._cursor.ungetc(b)
        return Directive(self._decode(self._read_directive()))

    def _read_directive(self) -> bytes:
        data = bytearray()
        depth = 0
        quote: Optional[int] = None
        while True:
            b = self._must_getc()
            if quote is not None:
                if b == quote:
                    quote = None
            elif b in (QUOT, APOS):
                quote = b
            elif b == LT:
                depth += 1
            elif b == GT:
                if depth == 0:
                    return bytes(data)
                depth -= 1
            data.append(b)
