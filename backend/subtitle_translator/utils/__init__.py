"""Utility modules for the subtitle translator."""

from .text import one_line, safe_truncate

__all__ = ["one_line", "safe_truncate"]
