"""Orchestration event models.

Events are emitted, never stored. They form a discriminated union on
``kind`` so a consumer reading them off a channel can dispatch on one field.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .progress import TranslationProgress


class ProgressEvent(BaseModel):
    """Emitted after every group of batches is folded into the results."""

    kind: Literal["progress"] = "progress"
    progress: TranslationProgress


class RetryEvent(BaseModel):
    """Emitted before a failed batch is resubmitted."""

    kind: Literal["retry"] = "retry"
    batch_index: int = Field(..., description="Zero-based batch number")
    attempt: int = Field(..., description="Retry number, starting at 1")
    max_retries: int
    error_message: str
    progress: TranslationProgress


class ErrorEvent(BaseModel):
    """Emitted when a batch has exhausted its retries."""

    kind: Literal["error"] = "error"
    batch_index: int = Field(..., description="Zero-based batch number")
    error_message: str
    progress: TranslationProgress


class EntryEvent(BaseModel):
    """Emitted in streaming mode as soon as one entry is decoded."""

    kind: Literal["entry"] = "entry"
    index: int
    text: str


TranslationEvent = Annotated[
    Union[ProgressEvent, RetryEvent, ErrorEvent, EntryEvent],
    Field(discriminator="kind"),
]

# Payload names used by callers that only care about the info part
TranslationRetryInfo = RetryEvent
TranslationErrorInfo = ErrorEvent
