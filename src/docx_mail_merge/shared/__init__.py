"""Shared utilities for document merging.

This module provides configuration objects, result types, exceptions and
logging helpers used across the tokenization, serialization and merge layers.
"""

from .config import (
    ConfigError,
    ConfigValidationError,
    DecoderConfig,
    EncoderConfig,
    MergeConfig,
    UnterminatedLoopPolicy,
)
from .errors import (
    DocumentPartNotFoundError,
    MergeError,
    StreamPreconditionError,
    StructuralError,
    UnexpectedEOFError,
    UnterminatedLoopError,
    XMLSyntaxError,
)
from .logging import (
    CorrelationLogger,
    get_logger,
)
from .result import (
    DiagnosticEntry,
    DiagnosticSeverity,
    LoopResult,
    LoopStatistics,
)

__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "DecoderConfig",
    "EncoderConfig",
    "MergeConfig",
    "UnterminatedLoopPolicy",
    "DocumentPartNotFoundError",
    "MergeError",
    "StreamPreconditionError",
    "StructuralError",
    "UnexpectedEOFError",
    "UnterminatedLoopError",
    "XMLSyntaxError",
    "CorrelationLogger",
    "get_logger",
    "DiagnosticEntry",
    "DiagnosticSeverity",
    "LoopResult",
    "LoopStatistics",
]
