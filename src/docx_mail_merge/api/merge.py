"""Module-level entry points for merging documents.

These functions cover the common cases with one call each. For repeated work
on the same document, use :class:`~docx_mail_merge.merge.DocxTemplate` and
:class:`~docx_mail_merge.merge.LoopSplicer` directly.
"""

import time
from pathlib import Path
from typing import Iterable, Optional, Union

from docx_mail_merge.merge import DocxTemplate, LoopSplicer
from docx_mail_merge.merge.loop import Row
from docx_mail_merge.serialization import XMLPrinter
from docx_mail_merge.shared import LoopResult, MergeConfig, MergeError, get_logger
from docx_mail_merge.tokenization import XMLDecoder

ContentType = Union[str, bytes]

PREVIEW_LENGTH = 100  # Max length for content preview in logs
MS_PER_SECOND = 1000  # Milliseconds per second conversion


def _preview(content: ContentType) -> str:
    text = content if isinstance(content, str) else content.decode("utf-8", "replace")
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text


def open_template(
    path: Union[str, Path],
    config: Optional[MergeConfig] = None
) -> DocxTemplate:
    """Open a document template from ``path``.

    Args:
        path: Path of the ``.docx`` container
        config: Merge configuration, WordprocessingML defaults if None

    Returns:
        DocxTemplate holding the main XML part

    Raises:
        DocumentPartNotFoundError: If the container has no main XML part
    """
    return DocxTemplate.open(path, config)


def replace_loop(
    content: str,
    loop_name: str,
    rows: Iterable[Row],
    config: Optional[MergeConfig] = None
) -> LoopResult:
    """Repeat the loop region ``loop_name`` of ``content`` once per row.

    Args:
        content: Serialized XML content holding the loop markers
        loop_name: Name used in the ``«start:NAME»`` and ``«end:NAME»`` markers
        rows: Data rows supplying values for ``«KEY»`` placeholders
        config: Merge configuration, WordprocessingML defaults if None

    Returns:
        LoopResult with the new content, statistics and diagnostics

    Examples:
        >>> result = replace_loop(
        ...     "<t>«start:p»<n>«name»</n>«end:p»</t>",
        ...     "p",
        ...     [{"name": "Ann"}, {"name": "Bob"}],
        ...     MergeConfig.plain(),
        ... )
        >>> result.content
        '<t><n>Ann</n><n>Bob</n></t>'
    """
    config = config or MergeConfig()
    logger = get_logger(__name__, config.correlation_id, "replace_loop")
    start_time = time.time()

    logger.debug(
        "Starting loop replacement",
        extra={
            "loop_name": loop_name,
            "content_length": len(content),
            "preview": _preview(content),
        }
    )

    try:
        return LoopSplicer(config).replace_loop(content, loop_name, rows)
    except MergeError:
        logger.error(
            "Loop replacement failed",
            extra={
                "loop_name": loop_name,
                "processing_time_ms": (time.time() - start_time) * MS_PER_SECOND,
            }
        )
        raise


def roundtrip(content: ContentType, config: Optional[MergeConfig] = None) -> str:
    """Decode ``content`` and print it again without changing any token.

    Apart from the root element adjustments made by the printer (dropped
    ``Ignorable`` attributes, registered namespace declarations) the output
    is equivalent to the input, with one exception: the printer never writes
    ``xmlns=""``. An element without a namespace inside a namespaced parent
    ends up in the parent's namespace, so ``<a xmlns:p="ns"><p:b><c/></p:b></a>``
    prints as ``<a xmlns:p="ns"><b xmlns="ns"><c/></b></a>``. With ``p``
    registered and ``prefix_elements`` enabled, ``c`` inherits the prefix and
    prints as ``<p:c/>``.

    Examples:
        >>> roundtrip('<a x="1"><b/>text &amp; more</a>', MergeConfig.plain())
        '<a x="1"><b/>text &amp; more</a>'
    """
    config = config or MergeConfig()
    logger = get_logger(__name__, config.correlation_id, "roundtrip")

    decoder = XMLDecoder(content, config.decoder, config.correlation_id)
    printer = XMLPrinter(config=config.encoder, correlation_id=config.correlation_id)
    try:
        printer.write_all(decoder)
        printer.close()
    except MergeError:
        logger.error(
            "Roundtrip failed",
            extra={
                "tokens_read": decoder.tokens_read,
                "input_line": decoder.input_line,
            }
        )
        raise

    logger.debug(
        "Roundtrip completed",
        extra={
            "tokens_read": decoder.tokens_read,
            "tokens_written": printer.tokens_written,
        }
    )
    return printer.getvalue()
