"""Error definitions for the subtitle translator.

Errors fall into five categories:
- Configuration: the LLM client cannot be built (empty endpoint or model)
- Transport: connection failures, timeouts and non-2xx responses
- Decode: the model returned nothing that parses as ``INDEX|TEXT`` lines
- Validation: translated lines lost or corrupted their override tags
- Cancellation: the caller asked the run to stop

Transport, decode and validation errors are retried by the orchestrator.
Cancellation is never retried.
"""

from typing import TYPE_CHECKING, List, Optional, Tuple

if TYPE_CHECKING:
    from .core.translation.models import Entry, TranslationProgress


class SubtitleTranslatorError(Exception):
    """Base exception for all custom errors."""


class LLMConfigurationError(SubtitleTranslatorError):
    """Raised when the LLM client is misconfigured."""


class TranslationError(SubtitleTranslatorError):
    """Raised when a single translation request fails and may be retried."""


class LLMTransportError(TranslationError):
    """Raised when the HTTP exchange with the LLM endpoint fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ResponseDecodeError(TranslationError):
    """Raised when a model response cannot be decoded into entries."""


class TagMismatchError(TranslationError):
    """Raised when translated lines do not keep their override tags.

    ``mismatches`` holds ``(index, original, translated)`` triples for
    every offending line, not only the ones quoted in the message.
    """

    def __init__(self, message: str, mismatches: List[Tuple[int, str, str]]):
        super().__init__(message)
        self.mismatches = mismatches


class TranslationCancelledError(SubtitleTranslatorError):
    """Raised when the caller cancels a translation run."""

    def __init__(
        self,
        message: str = "Translation cancelled",
        translations: Optional[List["Entry"]] = None,
        progress: Optional["TranslationProgress"] = None,
    ):
        super().__init__(message)
        self.translations = translations or []
        self.progress = progress
