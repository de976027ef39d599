"""Translation settings models."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TagMismatchPolicy(str, Enum):
    """What to do with translated lines whose override tags do not match."""

    REJECT_BATCH = "reject_batch"  # Fail the whole batch (retryable)
    DROP_ENTRY = "drop_entry"  # Drop only the offending line


class TranslationSettings(BaseModel):
    """Batch processing settings.

    ``batch_size`` and ``parallel_requests`` below 1 are clamped to 1.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    batch_size: int = Field(default=50, description="Entries per request")
    parallel_requests: int = Field(
        default=1, description="Batches dispatched concurrently per group"
    )
    max_retries: int = Field(default=3, ge=0, description="Retries per failed batch")
    auto_continue: bool = Field(
        default=True, description="Keep processing groups until all entries are done"
    )
    continue_on_error: bool = Field(
        default=False, description="Skip exhausted batches instead of stopping"
    )
    streaming: bool = Field(default=False, description="Decode responses incrementally")

    # Seconds between retries of a failed batch
    retry_delay: float = Field(default=1.0, ge=0.0)

    # None selects the mode's own policy: reject_batch for batch mode,
    # drop_entry for streaming mode
    tag_mismatch_policy: Optional[TagMismatchPolicy] = None

    @field_validator("batch_size", "parallel_requests", mode="before")
    @classmethod
    def _clamp_to_one(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and value < 1:
            return 1
        return value

    @classmethod
    def from_settings(cls, settings: Any = None) -> "TranslationSettings":
        """Build defaults from application settings."""
        if settings is None:
            from subtitle_translator.config import settings

        return cls(
            batch_size=settings.default_batch_size,
            parallel_requests=settings.default_parallel_requests,
            max_retries=settings.max_retries,
            auto_continue=settings.auto_continue,
            continue_on_error=settings.continue_on_error,
            streaming=settings.streaming,
            retry_delay=settings.retry_delay,
        )

    def effective_tag_policy(self) -> TagMismatchPolicy:
        if self.tag_mismatch_policy is not None:
            return self.tag_mismatch_policy
        if self.streaming:
            return TagMismatchPolicy.DROP_ENTRY
        return TagMismatchPolicy.REJECT_BATCH
