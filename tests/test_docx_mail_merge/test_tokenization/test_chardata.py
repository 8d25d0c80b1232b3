"""Tests for streaming character data out of the decoder."""

import base64
import gc
import hashlib
import io
import os

import psutil
import pytest

from docx_mail_merge.shared.config import DecoderConfig
from docx_mail_merge.shared.errors import StreamPreconditionError, UnexpectedEOFError
from docx_mail_merge.tokenization.chardata import CharDataReader
from docx_mail_merge.tokenization.decoder import XMLDecoder
from docx_mail_merge.tokenization.tokens import CharData, EndElement, Name, StartElement

MB = 1024 * 1024
RAW_CHUNK_SIZE = 49152  # Multiple of 3, so encoded chunks concatenate without padding
RAW_PAYLOAD_SIZE = 30 * MB  # 40 MB once base64 encoded
READ_BUFFER_SIZE = 32768
MAX_MEMORY_GROWTH = 16 * MB


class Base64MessageSource(io.RawIOBase):
    """Binary source producing ``<Message>BASE64</Message>`` on demand.

    The payload is generated chunk by chunk, so the whole document never
    exists in memory. The digest of the encoded payload is recorded as it is
    produced.
    """

    def __init__(self, raw_size: int) -> None:
        super().__init__()
        self._chunks = self._generate(raw_size)
        self._pending = b""
        self.payload_digest = hashlib.sha256()
        self.payload_size = 0

    def _generate(self, raw_size):
        yield b"<Message>"
        produced = 0
        while produced < raw_size:
            raw = os.urandom(min(RAW_CHUNK_SIZE, raw_size - produced))
            produced += len(raw)
            encoded = base64.b64encode(raw)
            self.payload_digest.update(encoded)
            self.payload_size += len(encoded)
            yield encoded
        yield b"</Message>"

    def readable(self):
        return True

    def readinto(self, buffer):
        if not self._pending:
            self._pending = next(self._chunks, b"")
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


def open_reader(content, **config):
    """Return a decoder positioned after the first start tag and its reader."""
    decoder = XMLDecoder(content, DecoderConfig(**config))
    start = decoder.token()
    assert isinstance(start, StartElement)
    return decoder, decoder.char_data_reader()


class TestCharDataReader:
    """Test the character data reader contract."""

    def test_reads_segment_then_end(self):
        """Test reading a short segment followed by end-of-segment."""
        decoder, reader = open_reader("<Message>Hello world!</Message>")
        buffer = bytearray(64)

        n = reader.readinto(buffer)

        assert bytes(buffer[:n]) == b"Hello world!"
        assert reader.at_end is True
        assert reader.readinto(buffer) == 0
        assert reader.readinto(buffer) == 0
        assert decoder.token() == EndElement(Name("", "Message"))
        assert decoder.token() is None

    def test_small_buffer_reads(self):
        """Test that reads never exceed the caller's buffer."""
        decoder, reader = open_reader("<m>abcdefghij</m>", buffer_size=3)
        buffer = bytearray(4)
        parts = []

        while True:
            n = reader.readinto(buffer)
            if n == 0:
                break
            assert n <= 4
            parts.append(bytes(buffer[:n]))

        assert b"".join(parts) == b"abcdefghij"
        assert reader.bytes_read == 10
        assert decoder.token() == EndElement(Name("", "m"))

    def test_read_and_readall(self):
        """Test the io.RawIOBase convenience methods."""
        decoder, reader = open_reader("<m>0123456789</m>")

        assert reader.read(4) == b"0123"
        assert reader.read() == b"456789"
        assert reader.read(4) == b""
        assert decoder.token() == EndElement(Name("", "m"))

    def test_raw_bytes_not_unescaped(self):
        """Test that entity references are passed through as bytes."""
        _, reader = open_reader("<m>a &amp; b</m>")

        assert reader.read() == b"a &amp; b"

    def test_empty_segment(self):
        """Test a start tag directly followed by its end tag."""
        decoder, reader = open_reader("<m></m>")

        assert reader.readinto(bytearray(8)) == 0
        assert reader.at_end is True
        assert decoder.token() == EndElement(Name("", "m"))

    def test_zero_length_buffer(self):
        """Test that a zero-length buffer changes nothing."""
        _, reader = open_reader("<m>abc</m>")

        assert reader.readinto(bytearray(0)) == 0
        assert reader.at_end is False
        assert reader.read() == b"abc"

    def test_source_closed_mid_segment(self):
        """Test that input ending inside the segment is an error, not end-of-segment."""
        _, reader = open_reader("<m>abc")
        buffer = bytearray(16)

        assert reader.readinto(buffer) == 3
        with pytest.raises(UnexpectedEOFError, match="inside character data"):
            reader.readinto(buffer)
        assert reader.at_end is False

    def test_closed_reader_rejects_reads(self):
        """Test reading after close()."""
        _, reader = open_reader("<m>abc</m>")
        reader.close()

        with pytest.raises(ValueError, match="closed"):
            reader.readinto(bytearray(4))

    def test_close_releases_decoder(self):
        """Test that the decoder resumes with the rest of the text after close()."""
        decoder, reader = open_reader("<m>abcdef</m>")
        assert reader.read(2) == b"ab"
        reader.close()

        assert reader.released is True
        assert decoder.token() == CharData("cdef")
        assert decoder.token() == EndElement(Name("", "m"))

    def test_context_manager(self):
        """Test that the reader can be used as a context manager."""
        decoder, reader = open_reader("<m>abc</m>")
        with reader as stream:
            assert isinstance(stream, CharDataReader)
            assert stream.read() == b"abc"

        assert reader.closed is True
        assert decoder.token() == EndElement(Name("", "m"))


class TestReaderPreconditions:
    """Test that token reads and streaming cannot be interleaved."""

    def test_reader_before_any_token(self):
        """Test requesting a reader before the first start tag."""
        decoder = XMLDecoder("<m>abc</m>")

        with pytest.raises(StreamPreconditionError):
            decoder.char_data_reader()

    def test_reader_after_character_data(self):
        """Test requesting a reader when the last token was not a start tag."""
        decoder = XMLDecoder("<m>abc<n>x</n></m>")
        decoder.token()
        decoder.token()

        with pytest.raises(StreamPreconditionError, match="directly follow a start element"):
            decoder.char_data_reader()

    def test_reader_after_self_closing_tag(self):
        """Test that a self-closing tag has no segment to stream."""
        decoder = XMLDecoder("<m><n/>abc</m>")
        decoder.token()
        decoder.token()

        with pytest.raises(StreamPreconditionError):
            decoder.char_data_reader()

    def test_token_while_reader_active(self):
        """Test calling token() before the reader reached end-of-segment."""
        decoder, reader = open_reader("<m>abcdef</m>")
        reader.read(2)

        with pytest.raises(StreamPreconditionError, match="reader is active"):
            decoder.token()

    def test_second_reader_while_active(self):
        """Test requesting another reader while one is mid-segment."""
        decoder, _ = open_reader("<m>abc</m>")

        with pytest.raises(StreamPreconditionError, match="already active"):
            decoder.char_data_reader()

    def test_reader_for_nested_start(self):
        """Test streaming the text after a nested start tag."""
        decoder = XMLDecoder("<a><b>inner</b>tail</a>")
        decoder.token()
        decoder.token()

        assert decoder.char_data_reader().read() == b"inner"
        assert decoder.token() == EndElement(Name("", "b"))
        assert decoder.token() == CharData("tail")


class TestStreamingPayload:
    """Test streaming a large payload with bounded memory."""

    def test_forty_megabyte_base64_payload(self):
        """Test relaying a 40 MB base64 payload through a small buffer."""
        source = Base64MessageSource(RAW_PAYLOAD_SIZE)
        decoder = XMLDecoder(source)
        assert decoder.token() == StartElement(Name("", "Message"))
        reader = decoder.char_data_reader()

        gc.collect()
        process = psutil.Process()
        baseline_rss = process.memory_info().rss
        peak_rss = baseline_rss

        digest = hashlib.sha256()
        received = 0
        buffer = bytearray(READ_BUFFER_SIZE)
        view = memoryview(buffer)
        reads = 0
        while True:
            n = reader.readinto(buffer)
            if n == 0:
                break
            digest.update(view[:n])
            received += n
            reads += 1
            if reads % 128 == 0:
                peak_rss = max(peak_rss, process.memory_info().rss)
        peak_rss = max(peak_rss, process.memory_info().rss)

        assert received == source.payload_size == 40 * MB
        assert digest.hexdigest() == source.payload_digest.hexdigest()
        assert reader.at_end is True
        assert decoder.token() == EndElement(Name("", "Message"))
        assert decoder.token() is None
        assert peak_rss - baseline_rss < MAX_MEMORY_GROWTH
