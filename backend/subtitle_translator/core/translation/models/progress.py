"""Progress and report models.

Progress is always derived from the set of known results, never mutated
independently.
"""

from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from .entry import Entry


class TranslationProgress(BaseModel):
    """Progress tracking for translation."""

    total_entries: int = Field(default=0, description="Entries in the whole input")
    translated_entries: int = Field(default=0, description="Entries with a result")
    last_translated_index: int = Field(
        default=0, description="Highest index with a result (0 when none)"
    )
    is_partial: bool = Field(default=False, description="Fewer results than entries")
    can_continue: bool = Field(default=False, description="A resumed run can make progress")

    @classmethod
    def from_translations(
        cls, total_entries: int, translations: Sequence[Entry]
    ) -> "TranslationProgress":
        """Derive progress from the results known so far."""
        translated = len(translations)
        is_partial = translated < total_entries
        return cls(
            total_entries=total_entries,
            translated_entries=translated,
            last_translated_index=max((entry.index for entry in translations), default=0),
            is_partial=is_partial,
            can_continue=is_partial,
        )


class BatchTranslationResult(BaseModel):
    """Result of a single resumable batch."""

    translations: List[Entry] = Field(default_factory=list)
    progress: TranslationProgress


class TranslationBatchReport(BaseModel):
    """Final output of a batched run.

    A non-null ``error_message`` means the run stopped before completion.
    """

    translations: List[Entry] = Field(default_factory=list)
    progress: TranslationProgress
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error_message is None and not self.progress.is_partial
