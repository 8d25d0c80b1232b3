"""Namespace and prefix resolution for the streaming printer.

The resolver is stateless apart from the registration table it was built
with. It reads the printer's open-element stack to decide which prefix an
element gets and whether a namespace declaration can be omitted.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from docx_mail_merge.shared.config import XML_NAMESPACE
from docx_mail_merge.tokenization.tokens import Attr, Name

_PREFIX_SEPARATORS = re.compile(r"[-. ]")
_VALID_PREFIX = re.compile(r"^[A-Za-z_][\w.\-]*$")
FALLBACK_PREFIX = "_"


@dataclass(frozen=True)
class OpenElement:
    """Entry of the open-element stack kept by the printer.

    Attributes:
        name: Name of the start tag as written by the caller
        namespace: Namespace after optimization; empty when inherited
        prefix: Prefix written on the start tag, inherited by children without
            a namespace
        bindings: Prefix to URI declarations made on this element ("" is default)
    """

    name: Name
    namespace: str = ""
    prefix: str = ""
    bindings: Dict[str, str] = field(default_factory=dict)


def namespace_to_prefix(url: str) -> str:
    """Synthesize a prefix for a namespace URL.

    Uses the last path segment of the URL. A single word is lower-cased, a
    segment made of several words separated by ``-``, ``.`` or spaces becomes
    the lower-cased initials of those words.

    Examples:
        >>> namespace_to_prefix("http://www.w3.org/2001/XMLSchema-instance")
        'xi'
        >>> namespace_to_prefix("http://example.com/Space/")
        'space'
    """
    prefix = url.rstrip("/")
    index = prefix.rfind("/")
    if index >= 0:
        prefix = prefix[index + 1:]

    parts = [part for part in _PREFIX_SEPARATORS.split(prefix) if part]
    if len(parts) == 1:
        prefix = parts[0].lower()
    else:
        prefix = "".join(part[0].lower() for part in parts)

    if not _VALID_PREFIX.match(prefix) or prefix.startswith("xml"):
        return FALLBACK_PREFIX
    return prefix


def declared_bindings(attrs: Sequence[Attr]) -> Dict[str, str]:
    """Collect the namespace declarations made by a list of attributes."""
    bindings: Dict[str, str] = {}
    for attr in attrs:
        if attr.is_namespace_declaration:
            prefix = attr.name.local if attr.name.space == "xmlns" else ""
            bindings[prefix] = attr.value
    return bindings


class NamespaceResolver:
    """Decide prefixes and namespace declarations for start tags."""

    def __init__(self, registrations: Optional[Mapping[str, str]] = None) -> None:
        """Initialize the resolver.

        Args:
            registrations: Mapping from prefix to namespace URI; copied so the
                table stays fixed for the lifetime of the resolver
        """
        self._registrations: Dict[str, str] = dict(registrations or {})
        self._prefixes: Dict[str, str] = {
            uri: prefix for prefix, uri in self._registrations.items()
        }

    @property
    def registrations(self) -> Dict[str, str]:
        """Copy of the registration table (prefix to URI)."""
        return dict(self._registrations)

    def registered_prefix(self, uri: str) -> Optional[str]:
        """Return the prefix registered for ``uri``, if any."""
        return self._prefixes.get(uri)

    def resolve_prefix(self, stack: Sequence[OpenElement], namespace: str) -> str:
        """Return the prefix for an element in ``namespace``.

        An element without a namespace inherits the prefix of its parent, since
        an unprefixed child of a prefixed element would otherwise leave the
        parent's namespace. An element with a namespace gets the registered
        prefix, or "" when the namespace is not registered.
        """
        if not namespace:
            return stack[-1].prefix if stack else ""
        return self.registered_prefix(namespace) or ""

    @staticmethod
    def optimize_namespace(stack: Sequence[OpenElement], namespace: str) -> str:
        """Return "" when the nearest namespaced ancestor already uses ``namespace``.

        Ancestors without a namespace are skipped. The walk stops at the first
        ancestor with a different namespace, which keeps ``namespace`` as is.
        """
        if not namespace:
            return namespace
        for entry in reversed(stack):
            if not entry.namespace:
                continue
            if entry.namespace != namespace:
                return namespace
            return ""
        return namespace

    def root_declarations(self, attrs: Sequence[Attr]) -> List[Attr]:
        """Return ``xmlns:prefix`` attributes for every registered namespace.

        Prefixes the root element already declares itself are skipped.
        """
        declared = declared_bindings(attrs)
        return [
            Attr(Name("xmlns", prefix), uri)
            for prefix, uri in self._registrations.items()
            if prefix not in declared and prefix != "xml"
        ]

    @staticmethod
    def in_scope(
        stack: Sequence[OpenElement],
        bindings: Optional[Mapping[str, str]] = None
    ) -> Dict[str, str]:
        """Return the prefix bindings visible to an element."""
        scope: Dict[str, str] = {}
        for entry in stack:
            scope.update(entry.bindings)
        if bindings:
            scope.update(bindings)
        return scope

    def attribute_prefix(
        self,
        stack: Sequence[OpenElement],
        bindings: Mapping[str, str],
        uri: str
    ) -> Tuple[str, bool]:
        """Return the prefix for an attribute in ``uri``.

        Attributes never use the default namespace, so a prefix is always
        needed: an in-scope binding, then the registered prefix, then a
        synthesized one.

        Returns:
            Tuple of (prefix, needs_declaration)
        """
        if uri == XML_NAMESPACE:
            return "xml", False

        scope = self.in_scope(stack, bindings)
        for prefix, bound in scope.items():
            if prefix and bound == uri:
                return prefix, False

        registered = self.registered_prefix(uri)
        if registered and registered not in scope:
            return registered, True

        base = namespace_to_prefix(uri)
        prefix = base
        sequence = 1
        while prefix in scope:
            prefix = f"{base}_{sequence}"
            sequence += 1
        return prefix, True
