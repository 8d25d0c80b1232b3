"""Streaming XML printer with namespace optimization.

The printer consumes tokens in document order and writes markup to a text
writer. It keeps the open-element stack that the :class:`NamespaceResolver`
reads, and it is the only place the stack is changed.
"""

import io
from typing import Iterable, List, Optional, TextIO, Tuple
from xml.sax.saxutils import escape

from docx_mail_merge.shared.config import XSI_NAMESPACE, EncoderConfig
from docx_mail_merge.shared.errors import StructuralError
from docx_mail_merge.shared.logging import get_logger
from docx_mail_merge.tokenization.tokens import (
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

from .namespaces import NamespaceResolver, OpenElement, declared_bindings

XSI_NIL_TRUE = Attr(Name(XSI_NAMESPACE, "nil"), "true")

_ATTR_ENTITIES = {
    '"': "&quot;",
    "\t": "&#9;",
    "\n": "&#10;",
    "\r": "&#13;",
}


def escape_text(text: str) -> str:
    """Escape character data."""
    return escape(text)


def escape_attr(value: str) -> str:
    """Escape a double-quoted attribute value."""
    return escape(value, _ATTR_ENTITIES)


class XMLPrinter:
    """Write tokens as XML, resolving prefixes and namespace declarations.

    Examples:
        >>> printer = XMLPrinter(config=EncoderConfig(optimize_namespaces=True))
        >>> printer.write(StartElement(Name("space", "Parent")))
        >>> printer.write(StartElement(Name("space", "Child")))
        >>> printer.write(EndElement(Name("space", "Child")))
        >>> printer.write(EndElement(Name("space", "Parent")))
        >>> printer.getvalue()
        '<Parent xmlns="space"><Child></Child></Parent>'
    """

    def __init__(
        self,
        writer: Optional[TextIO] = None,
        config: Optional[EncoderConfig] = None,
        correlation_id: Optional[str] = None
    ) -> None:
        """Initialize the printer.

        Args:
            writer: Text stream receiving the markup; an in-memory buffer if None
            config: Namespace policy; the registration table is copied
            correlation_id: Optional correlation ID for log records
        """
        self.config = config or EncoderConfig()
        self._writer: TextIO = writer if writer is not None else io.StringIO()
        self._resolver = NamespaceResolver(self.config.namespaces)
        self._stack: List[OpenElement] = []
        self._root_written = False
        self._chars_written = 0
        self.tokens_written = 0
        self.logger = get_logger(__name__, correlation_id, "xml_printer")

    @property
    def resolver(self) -> NamespaceResolver:
        return self._resolver

    @property
    def depth(self) -> int:
        """Number of currently open elements."""
        return len(self._stack)

    @property
    def stack(self) -> Tuple[OpenElement, ...]:
        """Snapshot of the open-element stack, innermost last."""
        return tuple(self._stack)

    def write(self, token: Token) -> None:
        """Write one token.

        Raises:
            StructuralError: If the token cannot be written at this position
        """
        if isinstance(token, StartElement):
            self._write_start(token)
        elif isinstance(token, EndElement):
            self._write_end(token)
        elif isinstance(token, CharData):
            self._emit(escape_text(token.text))
        elif isinstance(token, Comment):
            if "--" in token.text:
                raise StructuralError("comment must not contain '--'")
            self._emit(f"<!--{token.text}-->")
        elif isinstance(token, ProcInst):
            self._write_proc_inst(token)
        elif isinstance(token, Directive):
            self._emit(f"<!{token.text}>")
        else:
            raise TypeError(f"invalid token type: {type(token).__name__}")
        self.tokens_written += 1

    def write_all(self, tokens: Iterable[Token]) -> None:
        """Write every token of ``tokens`` in order."""
        for token in tokens:
            self.write(token)

    def write_nil(self, start: StartElement) -> None:
        """Write ``start`` as an empty element marked ``xsi:nil="true"``."""
        self._write_start(
            StartElement(start.name, start.attrs + (XSI_NIL_TRUE,), empty=True)
        )
        self.tokens_written += 1

    def flush(self) -> None:
        """Flush the underlying writer."""
        flush = getattr(self._writer, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        """Check that every element was closed, then flush.

        Raises:
            StructuralError: If elements are still open
        """
        if self._stack:
            raise StructuralError(f"unclosed tag <{self._stack[-1].name.local}>")
        self.flush()

    def getvalue(self) -> str:
        """Return everything written so far when writing to the default buffer."""
        if not isinstance(self._writer, io.StringIO):
            raise TypeError("getvalue() requires the printer's in-memory buffer")
        return self._writer.getvalue()

    def _emit(self, text: str) -> None:
        self._writer.write(text)
        self._chars_written += len(text)

    def _prepare_root(self, attrs: List[Attr]) -> List[Attr]:
        if self.config.drop_root_ignorable:
            kept = [attr for attr in attrs if attr.name.local.lower() != "ignorable"]
            if len(kept) != len(attrs):
                self.logger.debug(
                    "Dropped Ignorable attribute from root element",
                    extra={"dropped": len(attrs) - len(kept)}
                )
            attrs = kept
        return attrs + self._resolver.root_declarations(attrs)

    def _write_start(self, start: StartElement) -> None:
        name = start.name
        if not name.local:
            raise StructuralError("start tag with no name")

        attrs = list(start.attrs)
        if not self._stack and not self._root_written:
            attrs = self._prepare_root(attrs)
            self._root_written = True

        bindings = declared_bindings(attrs)
        # An own default declaration for another namespace cannot be inherited.
        own_default = bindings.get("", name.space)
        namespace = name.space
        if self.config.optimize_namespaces and own_default == name.space:
            namespace = self._resolver.optimize_namespace(self._stack, namespace)
        prefix = self._resolver.resolve_prefix(self._stack, namespace)
        # An inherited prefix is always written, whatever prefix_elements says.
        prefixed = bool(prefix) and (self.config.prefix_elements or not namespace)

        head = []
        if namespace and not prefixed:
            if own_default != namespace:
                prefix, declare = self._resolver.attribute_prefix(
                    self._stack, bindings, namespace
                )
                prefixed = True
                if declare:
                    head.append(f' xmlns:{prefix}="{escape_attr(namespace)}"')
                    bindings[prefix] = namespace
            elif "" not in bindings:
                head.append(f' xmlns="{escape_attr(namespace)}"')
                bindings[""] = namespace
        elif namespace:
            scope = self._resolver.in_scope(self._stack, bindings)
            if scope.get(prefix) != namespace:
                head.append(f' xmlns:{prefix}="{escape_attr(namespace)}"')
                bindings[prefix] = namespace
        if not prefixed:
            prefix = ""

        parts = ["<", f"{prefix}:{name.local}" if prefixed else name.local, *head]

        for attr in attrs:
            attr_name = attr.name
            if not attr_name.local:
                continue
            if attr_name.space == "xmlns":
                qualified = f"xmlns:{attr_name.local}"
            elif not attr_name.space:
                qualified = attr_name.local
            else:
                attr_prefix, declare = self._resolver.attribute_prefix(
                    self._stack, bindings, attr_name.space
                )
                if declare:
                    parts.append(
                        f' xmlns:{attr_prefix}="{escape_attr(attr_name.space)}"'
                    )
                    bindings[attr_prefix] = attr_name.space
                qualified = f"{attr_prefix}:{attr_name.local}"
            parts.append(f' {qualified}="{escape_attr(attr.value)}"')

        if start.empty:
            parts.append("/>")
        else:
            parts.append(">")
            self._stack.append(OpenElement(name, namespace, prefix, bindings))
        self._emit("".join(parts))

    def _write_end(self, end: EndElement) -> None:
        if not self._stack:
            raise StructuralError(f"end tag </{end.name.local}> without start tag")
        top = self._stack[-1]
        if top.name.local != end.name.local:
            raise StructuralError(
                f"end tag </{end.name.local}> does not match start tag "
                f"<{top.name.local}>"
            )
        if top.name.space != end.name.space:
            raise StructuralError(
                f"end tag </{end.name.local}> in namespace {end.name.space!r} does "
                f"not match start tag in namespace {top.name.space!r}"
            )
        self._stack.pop()
        if top.prefix:
            self._emit(f"</{top.prefix}:{end.name.local}>")
        else:
            self._emit(f"</{end.name.local}>")

    def _write_proc_inst(self, token: ProcInst) -> None:
        if not token.target or "?>" in token.inst:
            raise StructuralError(f"invalid processing instruction <?{token.target}")
        if token.target == "xml" and self._chars_written:
            raise StructuralError(
                "xml declaration is only valid as the first token written"
            )
        if token.inst:
            self._emit(f"<?{token.target} {token.inst}?>")
        else:
            self._emit(f"<?{token.target}?>")
