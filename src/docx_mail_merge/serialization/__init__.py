"""Serialization layer: namespace resolution and the streaming printer."""

from .namespaces import (
    NamespaceResolver,
    OpenElement,
    declared_bindings,
    namespace_to_prefix,
)
from .printer import XSI_NIL_TRUE, XMLPrinter, escape_attr, escape_text

__all__ = [
    "NamespaceResolver",
    "OpenElement",
    "XMLPrinter",
    "XSI_NIL_TRUE",
    "declared_bindings",
    "escape_attr",
    "escape_text",
    "namespace_to_prefix",
]
