"""Public API functions for merging documents."""

from .merge import open_template, replace_loop, roundtrip

__all__ = [
    "open_template",
    "replace_loop",
    "roundtrip",
]
