"""Entry models.

An entry is an ``(index, text)`` pair. The index is assigned by the caller
and is the only key correlating a request line with a response line; it is
unique but need not be contiguous.
"""

from typing import List, NamedTuple, Sequence

from pydantic import BaseModel, Field


class Entry(NamedTuple):
    """A subtitle line to translate, or its translation."""

    index: int
    text: str


class TranslatedEntryEvent(BaseModel):
    """Emitted as soon as a streamed entry is decoded and validated."""

    index: int = Field(..., ge=0, description="Entry index")
    text: str = Field(..., description="Translated text with real line breaks")


def as_entries(pairs: Sequence[Sequence]) -> List[Entry]:
    """Coerce ``(index, text)`` pairs (tuples, lists, Entry) into Entry objects."""
    return [Entry(int(pair[0]), str(pair[1])) for pair in pairs]
