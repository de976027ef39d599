"""Output processor for ``INDEX|TEXT`` model responses.

This module turns a model's free-form reply back into entries. The reply is
parsed as a small state machine: a line of the form ``digits|rest`` opens a
new entry, and any other line is appended to the open entry. That keeps
translations intact when the model emits a real line break instead of the
placeholder.
"""

import re
from typing import List, Optional

from subtitle_translator.errors import ResponseDecodeError

from ..models.entry import Entry
from .prompt_engine import NEWLINE_PLACEHOLDER

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
CODE_FENCE = "```"

_INDEX_LINE = re.compile(r"^\s*(\d+)\s*\|")


def strip_think_blocks(text: str) -> str:
    """Remove ``<think>...</think>`` reasoning blocks.

    An unterminated ``<think>`` stops stripping; the rest of the document is
    left as-is.
    """
    while True:
        start = text.find(THINK_OPEN)
        if start == -1:
            return text
        end = text.find(THINK_CLOSE, start + len(THINK_OPEN))
        if end == -1:
            return text
        text = text[:start] + text[end + len(THINK_CLOSE) :]


def restore_line_breaks(text: str) -> str:
    """Convert the placeholder and literal escapes back to real newlines."""
    return (
        text.replace(NEWLINE_PLACEHOLDER, "\n")
        .replace("\\N", "\n")
        .replace("\\n", "\n")
    )


def parse_index_line(line: str) -> Optional[Entry]:
    """Parse ``digits|rest``; return None for any other line.

    The text is returned raw, with placeholders still in place.
    """
    match = _INDEX_LINE.match(line)
    if not match:
        return None
    return Entry(int(match.group(1)), line[match.end() :])


class ResponseParser:
    """Line-by-line decoder with open-index and accumulated-text state."""

    def __init__(self) -> None:
        self.results: List[Entry] = []
        self._current_index: Optional[int] = None
        self._current_text = ""

    def feed_line(self, raw_line: str) -> None:
        line = raw_line.rstrip()
        if not line or line.startswith(CODE_FENCE):
            return

        parsed = parse_index_line(line)
        if parsed is not None:
            self._flush()
            self._current_index, self._current_text = parsed
            return

        # Continuation of the open entry; stray text before the first entry is dropped
        if self._current_index is not None:
            if self._current_text:
                self._current_text += "\n"
            self._current_text += line

    def finish(self) -> List[Entry]:
        self._flush()
        return self.results

    def _flush(self) -> None:
        if self._current_index is None:
            return
        self.results.append(
            Entry(self._current_index, restore_line_breaks(self._current_text))
        )
        self._current_index = None
        self._current_text = ""


class OutputProcessor:
    """Processes raw LLM responses into translated entries."""

    def process(self, content: str) -> List[Entry]:
        """Decode a complete (non-streamed) response.

        Raises:
            ResponseDecodeError: If no ``INDEX|TEXT`` line was found
        """
        parser = ResponseParser()
        for line in strip_think_blocks(content).split("\n"):
            parser.feed_line(line)

        results = parser.finish()
        if not results:
            raise ResponseDecodeError("Failed to parse translation response")
        return results
