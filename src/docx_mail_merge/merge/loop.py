"""Loop partitioning and splicing over a decoded token stream.

A loop region is delimited by two character-data markers, ``«start:NAME»`` and
``«end:NAME»``. The document is decoded once and its tokens are sorted into
three buckets by a small state machine; the body bucket is then written once
per data row with ``«KEY»`` placeholders substituted, between the tokens that
came before and after the region.
"""

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from docx_mail_merge.serialization.printer import XMLPrinter
from docx_mail_merge.shared.config import MergeConfig, UnterminatedLoopPolicy
from docx_mail_merge.shared.errors import UnterminatedLoopError
from docx_mail_merge.shared.logging import get_logger
from docx_mail_merge.shared.result import (
    DiagnosticEntry,
    DiagnosticSeverity,
    LoopResult,
    LoopStatistics,
)
from docx_mail_merge.tokenization.decoder import XMLDecoder
from docx_mail_merge.tokenization.tokens import CharData, Token

OPEN_DELIMITER = "«"
CLOSE_DELIMITER = "»"

Row = Mapping[str, str]


def placeholder(key: str) -> str:
    """Return the literal form of a merge field, e.g. ``«name»``."""
    return f"{OPEN_DELIMITER}{key}{CLOSE_DELIMITER}"


def loop_sentinels(loop_name: str) -> Tuple[str, str]:
    """Return the start and end markers of loop ``loop_name``."""
    return placeholder(f"start:{loop_name}"), placeholder(f"end:{loop_name}")


def placeholder_key(text: str) -> Optional[str]:
    """Return KEY when ``text`` is exactly ``«KEY»`` apart from surrounding whitespace."""
    value = text.strip()
    if (
        len(value) > len(OPEN_DELIMITER) + len(CLOSE_DELIMITER)
        and value.startswith(OPEN_DELIMITER)
        and value.endswith(CLOSE_DELIMITER)
    ):
        return value[len(OPEN_DELIMITER):-len(CLOSE_DELIMITER)]
    return None


class LoopState(Enum):
    """States of the partitioning state machine."""

    BEFORE = auto()  # Tokens ahead of the start marker
    IN = auto()      # Loop body
    AFTER = auto()   # Tokens after the end marker; terminal


@dataclass
class LoopSegments:
    """Tokens of one document split around a loop region."""

    loop_name: str
    before: List[Token] = field(default_factory=list)
    inside: List[Token] = field(default_factory=list)
    after: List[Token] = field(default_factory=list)
    loop_found: bool = False
    loop_closed: bool = False
    stray_end_markers: int = 0

    @property
    def token_count(self) -> int:
        return len(self.before) + len(self.inside) + len(self.after)


class LoopSplicer:
    """Replace a loop region with one copy of its body per data row.

    Examples:
        >>> splicer = LoopSplicer(MergeConfig.plain())
        >>> content = "<l><i>«start:x»</i><i>«v»</i><i>«end:x»</i></l>"
        >>> splicer.replace_loop(content, "x", [{"v": "1"}, {"v": "2"}]).content
        '<l><i></i><i>1</i><i></i><i>2</i><i></i></l>'
    """

    def __init__(self, config: Optional[MergeConfig] = None) -> None:
        """Initialize the splicer.

        Args:
            config: Decoder, encoder and loop policy settings
        """
        self.config = config or MergeConfig()
        self.logger = get_logger(__name__, self.config.correlation_id, "loop_splicer")

    def partition(self, content: str, loop_name: str) -> LoopSegments:
        """Decode ``content`` and sort its tokens into before, inside and after.

        The marker tokens themselves are dropped. Without a start marker every
        token ends up in ``before`` and the loop is empty.

        Raises:
            XMLSyntaxError: If ``content`` is not well-formed
            UnterminatedLoopError: If the end marker is missing and the policy
                is ``UnterminatedLoopPolicy.RAISE``
        """
        if not loop_name:
            raise ValueError("loop_name must not be empty")

        start_marker, end_marker = loop_sentinels(loop_name)
        segments = LoopSegments(loop_name)
        buckets: Dict[LoopState, List[Token]] = {
            LoopState.BEFORE: segments.before,
            LoopState.IN: segments.inside,
            LoopState.AFTER: segments.after,
        }
        state = LoopState.BEFORE

        decoder = XMLDecoder(content, self.config.decoder, self.config.correlation_id)
        for token in decoder:
            if isinstance(token, CharData):
                value = token.text.strip()
                if state is LoopState.BEFORE and value == start_marker:
                    state = LoopState.IN
                    segments.loop_found = True
                    continue
                if state is LoopState.IN and value == end_marker:
                    state = LoopState.AFTER
                    segments.loop_closed = True
                    continue
                if state is LoopState.BEFORE and value == end_marker:
                    segments.stray_end_markers += 1
            buckets[state].append(token)

        if segments.loop_found and not segments.loop_closed:
            if self.config.unterminated_loop is UnterminatedLoopPolicy.RAISE:
                raise UnterminatedLoopError(loop_name)
            self.logger.warning(
                "Loop has no end marker, extending it to the end of the document",
                extra={"loop_name": loop_name, "loop_tokens": len(segments.inside)}
            )

        self.logger.debug(
            "Partitioned document",
            extra={
                "loop_name": loop_name,
                "before_tokens": len(segments.before),
                "loop_tokens": len(segments.inside),
                "after_tokens": len(segments.after),
            }
        )
        return segments

    def splice(
        self,
        segments: LoopSegments,
        rows: Iterable[Row],
        statistics: Optional[LoopStatistics] = None
    ) -> str:
        """Write the segments back out with the loop body repeated per row.

        Args:
            segments: Result of :meth:`partition`
            rows: Data rows; each supplies values for ``«KEY»`` placeholders
            statistics: Optional statistics object updated in place

        Returns:
            New document content

        Raises:
            StructuralError: If the spliced token stream is not well-formed
        """
        stats = statistics if statistics is not None else LoopStatistics()
        stats.before_tokens = len(segments.before)
        stats.loop_tokens = len(segments.inside)
        stats.after_tokens = len(segments.after)
        stats.loop_found = segments.loop_found

        printer = XMLPrinter(
            config=self.config.encoder, correlation_id=self.config.correlation_id
        )
        printer.write_all(segments.before)
        for row in rows:
            for token in segments.inside:
                printer.write(self._substitute(token, row, stats))
            stats.iterations += 1
        printer.write_all(segments.after)
        printer.close()
        return printer.getvalue()

    def replace_loop(
        self,
        content: str,
        loop_name: str,
        rows: Iterable[Row]
    ) -> LoopResult:
        """Partition ``content`` around ``loop_name`` and splice in ``rows``.

        Placeholders whose key is missing from a row are left unchanged, so a
        later call with another loop name can still fill them.
        """
        started = time.perf_counter()
        segments = self.partition(content, loop_name)
        stats = LoopStatistics()
        new_content = self.splice(segments, rows, stats)
        stats.processing_time_ms = (time.perf_counter() - started) * 1000.0

        self.logger.debug(
            "Loop replaced",
            extra={
                "loop_name": loop_name,
                "iterations": stats.iterations,
                "emitted_tokens": stats.emitted_tokens,
                "processing_time_ms": stats.processing_time_ms,
            }
        )
        return LoopResult(
            content=new_content,
            loop_name=loop_name,
            statistics=stats,
            diagnostics=self._diagnose(segments, stats),
        )

    @staticmethod
    def _substitute(token: Token, row: Row, stats: LoopStatistics) -> Token:
        if not isinstance(token, CharData):
            return token
        key = placeholder_key(token.text)
        if key is None:
            return token
        if key in row:
            stats.placeholders_replaced += 1
            return CharData(str(row[key]))
        stats.placeholders_unmatched += 1
        return token

    def _diagnose(
        self,
        segments: LoopSegments,
        stats: LoopStatistics
    ) -> List[DiagnosticEntry]:
        diagnostics: List[DiagnosticEntry] = []

        def _add(severity: DiagnosticSeverity, message: str, **details: int) -> None:
            diagnostics.append(DiagnosticEntry(
                severity=severity,
                message=message,
                component="loop_splicer",
                details={"loop_name": segments.loop_name, **details},
                correlation_id=self.config.correlation_id,
            ))

        if not segments.loop_found:
            _add(DiagnosticSeverity.INFO, "Loop markers not found, loop is empty")
        elif not segments.loop_closed:
            _add(
                DiagnosticSeverity.WARNING,
                "Loop end marker missing, loop extended to end of document",
            )
        if segments.stray_end_markers:
            _add(
                DiagnosticSeverity.WARNING,
                "End marker before start marker left as text",
                count=segments.stray_end_markers,
            )
        if stats.placeholders_unmatched:
            _add(
                DiagnosticSeverity.INFO,
                "Placeholders without a value in their row left unchanged",
                count=stats.placeholders_unmatched,
            )
        return diagnostics
