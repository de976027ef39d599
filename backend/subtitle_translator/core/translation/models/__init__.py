"""Translation data models.

This module provides structured data models for the translation pipeline,
ensuring type safety and clear contracts between components.
"""

from .entry import Entry, TranslatedEntryEvent, as_entries
from .events import (
    EntryEvent,
    ErrorEvent,
    ProgressEvent,
    RetryEvent,
    TranslationErrorInfo,
    TranslationEvent,
    TranslationRetryInfo,
)
from .progress import BatchTranslationResult, TranslationBatchReport, TranslationProgress
from .settings import TagMismatchPolicy, TranslationSettings

__all__ = [
    # Entry models
    "Entry",
    "TranslatedEntryEvent",
    "as_entries",
    # Settings
    "TagMismatchPolicy",
    "TranslationSettings",
    # Progress and reports
    "TranslationProgress",
    "BatchTranslationResult",
    "TranslationBatchReport",
    # Events
    "ProgressEvent",
    "RetryEvent",
    "ErrorEvent",
    "EntryEvent",
    "TranslationEvent",
    "TranslationRetryInfo",
    "TranslationErrorInfo",
]
