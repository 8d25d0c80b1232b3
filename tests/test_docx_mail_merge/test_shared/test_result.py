"""Tests for result objects, diagnostics, errors and logging helpers."""

import logging

import pytest

from docx_mail_merge.shared.errors import (
    DocumentPartNotFoundError,
    MergeError,
    StreamPreconditionError,
    StructuralError,
    UnexpectedEOFError,
    UnterminatedLoopError,
    XMLSyntaxError,
)
from docx_mail_merge.shared.logging import CorrelationLogger, get_logger
from docx_mail_merge.shared.result import (
    DiagnosticEntry,
    DiagnosticSeverity,
    LoopResult,
    LoopStatistics,
)


class TestDiagnosticEntry:
    """Test DiagnosticEntry validation."""

    def test_creation(self):
        """Test creating a diagnostic entry with details."""
        entry = DiagnosticEntry(
            severity=DiagnosticSeverity.WARNING,
            message="End marker before start marker left as text",
            component="loop_splicer",
            details={"loop_name": "topic", "count": 1},
            correlation_id="merge-1",
        )

        assert entry.severity is DiagnosticSeverity.WARNING
        assert entry.details["count"] == 1
        assert entry.timestamp > 0

    def test_empty_message_rejected(self):
        """Test that a diagnostic needs a message."""
        with pytest.raises(ValueError, match="message cannot be empty"):
            DiagnosticEntry(DiagnosticSeverity.INFO, "", "loop_splicer")

    def test_empty_component_rejected(self):
        """Test that a diagnostic needs a component."""
        with pytest.raises(ValueError, match="component cannot be empty"):
            DiagnosticEntry(DiagnosticSeverity.INFO, "message", "")


class TestLoopStatistics:
    """Test LoopStatistics derived counts."""

    def test_defaults(self):
        """Test that a fresh statistics object is empty."""
        stats = LoopStatistics()

        assert stats.iterations == 0
        assert stats.spliced_tokens == 0
        assert stats.emitted_tokens == 0
        assert stats.loop_found is False

    def test_emitted_tokens(self):
        """Test that emitted tokens are before + after + iterations * body."""
        stats = LoopStatistics(before_tokens=4, loop_tokens=7, after_tokens=3, iterations=5)

        assert stats.spliced_tokens == 35
        assert stats.emitted_tokens == 42


class TestLoopResult:
    """Test LoopResult."""

    def test_has_warnings(self):
        """Test warning detection over the diagnostics list."""
        info = DiagnosticEntry(DiagnosticSeverity.INFO, "note", "loop_splicer")
        warning = DiagnosticEntry(DiagnosticSeverity.WARNING, "careful", "loop_splicer")

        assert LoopResult("<a/>", "x").has_warnings is False
        assert LoopResult("<a/>", "x", diagnostics=[info]).has_warnings is False
        assert LoopResult("<a/>", "x", diagnostics=[info, warning]).has_warnings is True


class TestErrors:
    """Test the exception hierarchy."""

    @pytest.mark.parametrize("error_class", [
        XMLSyntaxError,
        UnexpectedEOFError,
        StructuralError,
        StreamPreconditionError,
    ])
    def test_all_errors_derive_from_merge_error(self, error_class):
        """Test that every package error can be caught as MergeError."""
        assert issubclass(error_class, MergeError)

    def test_syntax_error_position(self):
        """Test that line and offset are carried and shown in the message."""
        error = XMLSyntaxError("expected name", line=3, offset=41)

        assert error.line == 3
        assert error.offset == 41
        assert error.message == "expected name"
        assert str(error) == "expected name (line 3, offset 41)"

    def test_syntax_error_without_position(self):
        """Test the message when no position is known."""
        assert str(XMLSyntaxError("bad")) == "bad"

    def test_unexpected_eof_is_syntax_error(self):
        """Test that end of input errors are syntax errors."""
        assert issubclass(UnexpectedEOFError, XMLSyntaxError)

    def test_document_part_not_found(self):
        """Test the missing part error."""
        error = DocumentPartNotFoundError("word/document.xml")

        assert error.part_name == "word/document.xml"
        assert isinstance(error, MergeError)
        assert "word/document.xml" in str(error)

    def test_unterminated_loop(self):
        """Test the unterminated loop error."""
        error = UnterminatedLoopError("topic")

        assert error.loop_name == "topic"
        assert isinstance(error, MergeError)
        assert "topic" in str(error)


class TestCorrelationLogger:
    """Test correlation-aware logging."""

    def test_get_logger(self):
        """Test logger construction and default component."""
        logger = get_logger("docx_mail_merge.merge.loop", "merge-1")

        assert isinstance(logger, CorrelationLogger)
        assert logger.correlation_id == "merge-1"
        assert logger.component == "loop"

    def test_records_carry_correlation_info(self, caplog):
        """Test that component and correlation ID are attached to records."""
        logger = get_logger("docx_mail_merge.test", "merge-7", "splicer")

        with caplog.at_level(logging.DEBUG, logger="docx_mail_merge.test"):
            logger.warning("Loop has no end marker", extra={"loop_name": "topic"})

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.component == "splicer"
        assert record.correlation_id == "merge-7"
        assert record.loop_name == "topic"
