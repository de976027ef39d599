"""Translation package.

This package provides the translation pipeline and orchestration components.

Architecture:
- models/: Data models (Entry, TranslationSettings, progress, events)
- pipeline/: Pipeline components (PromptEngine, OutputProcessor, etc.)
- orchestrator.py: Batched, concurrent, resumable orchestration
"""

# Re-export models for convenience
from .models import (
    # Entry models
    Entry,
    TranslatedEntryEvent,
    as_entries,
    # Settings
    TagMismatchPolicy,
    TranslationSettings,
    # Progress and reports
    TranslationProgress,
    BatchTranslationResult,
    TranslationBatchReport,
    # Events
    ProgressEvent,
    RetryEvent,
    ErrorEvent,
    EntryEvent,
    TranslationEvent,
)

# Re-export pipeline components
from .pipeline import (
    OutputProcessor,
    PromptEngine,
    StreamProcessor,
    TranslationPipeline,
    tags_compatible,
)

from .orchestrator import EventSink, TranslationOrchestrator

__all__ = [
    # Models
    "Entry",
    "TranslatedEntryEvent",
    "as_entries",
    "TagMismatchPolicy",
    "TranslationSettings",
    "TranslationProgress",
    "BatchTranslationResult",
    "TranslationBatchReport",
    "ProgressEvent",
    "RetryEvent",
    "ErrorEvent",
    "EntryEvent",
    "TranslationEvent",
    # Pipeline
    "OutputProcessor",
    "PromptEngine",
    "StreamProcessor",
    "TranslationPipeline",
    "tags_compatible",
    # Orchestration
    "EventSink",
    "TranslationOrchestrator",
]
