"""Result objects and diagnostic types for merge passes."""

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional


class DiagnosticSeverity(Enum):
    """Severity levels for diagnostic entries."""

    INFO = auto()
    WARNING = auto()


@dataclass
class DiagnosticEntry:
    """Single diagnostic entry with context information."""

    severity: DiagnosticSeverity
    message: str
    component: str
    details: Optional[Dict[str, Any]] = None
    timestamp: float = field(default_factory=time.time)
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate diagnostic entry."""
        if not self.message:
            raise ValueError("Diagnostic message cannot be empty")
        if not self.component:
            raise ValueError("Diagnostic component cannot be empty")


@dataclass
class LoopStatistics:
    """Token counts and timings for one loop splice."""

    before_tokens: int = 0
    loop_tokens: int = 0
    after_tokens: int = 0
    iterations: int = 0
    placeholders_replaced: int = 0
    placeholders_unmatched: int = 0
    loop_found: bool = False
    processing_time_ms: float = 0.0

    @property
    def spliced_tokens(self) -> int:
        """Number of tokens emitted for the repeated loop body."""
        return self.iterations * self.loop_tokens

    @property
    def emitted_tokens(self) -> int:
        """Total number of tokens written to the new content."""
        return self.before_tokens + self.after_tokens + self.spliced_tokens


@dataclass
class LoopResult:
    """Outcome of a loop replacement."""

    content: str
    loop_name: str
    statistics: LoopStatistics = field(default_factory=LoopStatistics)
    diagnostics: List[DiagnosticEntry] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        """Check if any diagnostic is a warning."""
        return any(
            d.severity is DiagnosticSeverity.WARNING for d in self.diagnostics
        )
