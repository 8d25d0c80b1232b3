"""Editable office documents backed by a zip container.

Only the main XML part is edited; every other entry of the container is copied
unchanged when the document is written.
"""

import io
import zipfile
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Union
from xml.sax.saxutils import escape

from docx_mail_merge.shared.config import MergeConfig
from docx_mail_merge.shared.errors import DocumentPartNotFoundError, XMLSyntaxError
from docx_mail_merge.shared.logging import get_logger
from docx_mail_merge.shared.result import LoopResult

from .loop import LoopSplicer, Row, placeholder

PathType = Union[str, Path]

UNBOUNDED = -1


def _read_part(archive: zipfile.ZipFile, part_name: str) -> str:
    try:
        info = archive.getinfo(part_name)
    except KeyError:
        raise DocumentPartNotFoundError(part_name) from None
    data = archive.read(info)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise XMLSyntaxError(f"{part_name} is not valid UTF-8: {e.reason}") from e


def _copy_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    # writestr() mutates the ZipInfo it is given
    clone = zipfile.ZipInfo(info.filename, info.date_time)
    clone.compress_type = info.compress_type
    clone.comment = info.comment
    clone.create_system = info.create_system
    clone.external_attr = info.external_attr
    return clone


class DocxTemplate:
    """Read-only template; call :meth:`editable` to get a document to merge into.

    Examples:
        >>> with DocxTemplate.open("template.docx") as template:  # doctest: +SKIP
        ...     document = template.editable()
        ...     document.replace("host", "Paranoid Android")
        ...     document.write_to_file("output.docx")
    """

    def __init__(
        self,
        archive: zipfile.ZipFile,
        content: str,
        config: Optional[MergeConfig] = None
    ) -> None:
        self._archive = archive
        self._content = content
        self.config = config or MergeConfig()

    @classmethod
    def open(cls, path: PathType, config: Optional[MergeConfig] = None) -> "DocxTemplate":
        """Open a template from a file path.

        Raises:
            DocumentPartNotFoundError: If the main XML part is missing
        """
        return cls._load(zipfile.ZipFile(path), config)

    @classmethod
    def from_bytes(cls, data: bytes, config: Optional[MergeConfig] = None) -> "DocxTemplate":
        """Open a template held in memory.

        Raises:
            DocumentPartNotFoundError: If the main XML part is missing
        """
        return cls._load(zipfile.ZipFile(io.BytesIO(data)), config)

    @classmethod
    def _load(cls, archive: zipfile.ZipFile, config: Optional[MergeConfig]) -> "DocxTemplate":
        config = config or MergeConfig()
        try:
            content = _read_part(archive, config.document_part)
        except Exception:
            archive.close()
            raise
        get_logger(__name__, config.correlation_id, "docx_template").debug(
            "Template loaded",
            extra={
                "document_part": config.document_part,
                "entries": len(archive.infolist()),
                "content_length": len(content),
            }
        )
        return cls(archive, content, config)

    @property
    def content(self) -> str:
        """Original content of the main XML part."""
        return self._content

    def editable(self) -> "EditableDocument":
        """Return a new editable document starting from the template content."""
        return EditableDocument(self._archive, self._content, self.config)

    def close(self) -> None:
        """Close the underlying container."""
        self._archive.close()

    def __enter__(self) -> "DocxTemplate":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class EditableDocument:
    """Main XML part of a template together with the merge operations on it.

    The content is replaced as a whole after each successful call and is left
    untouched when a call fails. Instances are not safe for concurrent use.
    """

    def __init__(
        self,
        archive: zipfile.ZipFile,
        content: str,
        config: Optional[MergeConfig] = None
    ) -> None:
        self._archive = archive
        self._content = content
        self.config = config or MergeConfig()
        self._splicer = LoopSplicer(self.config)
        self.logger = get_logger(__name__, self.config.correlation_id, "editable_document")

    @property
    def content(self) -> str:
        """Current content of the main XML part."""
        return self._content

    def replace(self, old_key: str, new_value: str, limit: int = UNBOUNDED) -> int:
        """Replace the merge field ``«old_key»`` with ``new_value``.

        This is a plain substring replacement on the serialized content, not a
        token-aware one. Key and value are escaped as character data first, so
        it only matches fields that sit inside text.

        Args:
            old_key: Field name without the guillemets
            new_value: Replacement text
            limit: Maximum number of replacements, ``UNBOUNDED`` (-1) for all

        Returns:
            Number of occurrences replaced
        """
        key = escape(placeholder(old_key))
        value = escape(new_value)
        found = self._content.count(key)
        replaced = found if limit < 0 else min(found, limit)
        self._content = self._content.replace(key, value, limit)
        self.logger.debug(
            "Replaced merge field",
            extra={"key": old_key, "found": found, "replaced": replaced}
        )
        return replaced

    def replace_loop(self, loop_name: str, rows: Iterable[Row]) -> LoopResult:
        """Repeat loop ``loop_name`` once per row, see :class:`LoopSplicer`."""
        result = self._splicer.replace_loop(self._content, loop_name, rows)
        self._content = result.content
        return result

    def write(self, stream: BinaryIO) -> None:
        """Write the container with the edited main part to ``stream``."""
        with zipfile.ZipFile(stream, "w") as target:
            for info in self._archive.infolist():
                if info.filename == self.config.document_part:
                    data = self._content.encode("utf-8")
                else:
                    data = self._archive.read(info)
                target.writestr(_copy_info(info), data)
        self.logger.debug(
            "Document written",
            extra={"entries": len(self._archive.infolist())}
        )

    def write_to_file(self, path: PathType) -> None:
        """Write the container to ``path``."""
        with open(path, "wb") as target:
            self.write(target)

    def to_bytes(self) -> bytes:
        """Return the container as bytes."""
        buffer = io.BytesIO()
        self.write(buffer)
        return buffer.getvalue()
