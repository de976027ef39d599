"""Prompt engine for the ``INDEX|TEXT`` line protocol.

Every entry travels as one line, ``{index}|{text}``. Line breaks inside an
entry (real newlines and the ``\\N`` / ``\\n`` escapes used by subtitle
formats) are replaced by a placeholder so they cannot be confused with the
protocol's own line separators.
"""

from typing import Sequence, Tuple

from ..models.entry import Entry

NEWLINE_PLACEHOLDER = "<<NEWLINE>>"

FORMAT_INSTRUCTIONS = """---
CRITICAL FORMAT INSTRUCTIONS:
1. Return translations in EXACTLY this format: INDEX|TRANSLATED_TEXT
2. Each subtitle must be on its own line: number|translated text
3. The marker {ph} represents a LINE BREAK within a subtitle. You MUST preserve it exactly as-is in your translation.
   Example input:  5|It's a special event{ph}that everyone attends
   Example output: 5|É um evento especial{ph}que todos participam
4. Do NOT remove, split, or modify {ph} markers - they indicate where line breaks occur in the subtitle display."""


class PromptEngine:
    """Builds the instruction and payload for one batch request."""

    @staticmethod
    def escape_line_breaks(text: str) -> str:
        """Replace every line break form with the placeholder."""
        return (
            text.replace("\\N", NEWLINE_PLACEHOLDER)
            .replace("\\n", NEWLINE_PLACEHOLDER)
            .replace("\n", NEWLINE_PLACEHOLDER)
        )

    @classmethod
    def encode_entries(cls, entries: Sequence[Entry]) -> str:
        """Encode a batch as newline-separated ``INDEX|TEXT`` lines."""
        return "\n".join(
            f"{index}|{cls.escape_line_breaks(text)}" for index, text in entries
        )

    @staticmethod
    def build_instruction(system_prompt: str) -> str:
        """Append the protocol rules to the caller's translation prompt."""
        return f"{system_prompt}\n\n{FORMAT_INSTRUCTIONS.format(ph=NEWLINE_PLACEHOLDER)}"

    @classmethod
    def build(cls, system_prompt: str, entries: Sequence[Entry]) -> Tuple[str, str]:
        """Return ``(instruction, payload)`` for a batch."""
        return cls.build_instruction(system_prompt), cls.encode_entries(entries)
