"""Incremental decoding of streamed model output.

Text fragments arrive in arbitrary pieces. Every newline character closes a
protocol line, which is parsed and emitted at once; whatever is left when the
stream ends is parsed as a final line. Unlike the batch decoder, a streamed
line never continues the previous entry.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set

from ..models.entry import Entry
from .output_processor import CODE_FENCE, parse_index_line, restore_line_breaks
from .tag_validator import tags_compatible

logger = logging.getLogger(__name__)


class StreamLineAssembler:
    """Rebuilds complete lines from a stream of text fragments."""

    def __init__(self) -> None:
        self._current: List[str] = []

    def feed(self, fragment: str) -> List[str]:
        """Add a fragment and return the lines it completed."""
        lines = []
        for ch in fragment:
            if ch == "\n":
                lines.append("".join(self._current))
                self._current = []
            else:
                self._current.append(ch)
        return lines

    def finish(self) -> Optional[str]:
        """Return the residual partial line, if any."""
        residual = "".join(self._current)
        self._current = []
        return residual or None


class StreamProcessor:
    """Decodes and validates streamed lines for one batch.

    Lines for an index outside the batch, or for an index already emitted,
    are ignored.

    Args:
        originals: The batch being translated
        drop_incompatible: Drop lines whose tags do not match their original.
            When False such lines are kept and the caller validates the batch.
    """

    def __init__(self, originals: Sequence[Entry], drop_incompatible: bool = True):
        self._originals: Dict[int, str] = {entry.index: entry.text for entry in originals}
        self._drop_incompatible = drop_incompatible
        self._assembler = StreamLineAssembler()
        self._seen: Set[int] = set()
        self.dropped: List[Entry] = []

    def feed(self, fragment: str) -> List[Entry]:
        """Consume a fragment and return the entries it completed."""
        results = []
        for line in self._assembler.feed(fragment):
            entry = self._decode_line(line)
            if entry is not None:
                results.append(entry)
        return results

    def finish(self) -> List[Entry]:
        """Flush the residual partial line as a final candidate."""
        residual = self._assembler.finish()
        if residual is None:
            return []
        entry = self._decode_line(residual)
        return [entry] if entry is not None else []

    def _decode_line(self, raw_line: str) -> Optional[Entry]:
        line = raw_line.strip()
        if not line or line.startswith(CODE_FENCE):
            return None

        parsed = parse_index_line(line)
        if parsed is None:
            return None

        original = self._originals.get(parsed.index)
        if original is None or parsed.index in self._seen:
            logger.warning(f"Ignoring streamed line for unexpected index #{parsed.index}")
            return None

        entry = Entry(parsed.index, restore_line_breaks(parsed.text))
        if self._drop_incompatible and not tags_compatible(original, entry.text):
            logger.warning(
                f"Dropping streamed entry #{entry.index}: override tags do not match the original"
            )
            self.dropped.append(entry)
            return None

        self._seen.add(entry.index)
        return entry
