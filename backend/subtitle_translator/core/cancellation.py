"""Cooperative cancellation for translation runs.

Cancellation is polled, not preemptive: a request already on the wire
finishes its current network call (or byte read, when streaming) before the
next check observes the flag.
"""

import logging
from typing import Optional

from subtitle_translator.errors import TranslationCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """A flag shared between the caller and a running orchestration."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation. Safe to call more than once."""
        if not self._cancelled:
            logger.info(f"Cancellation requested: {reason or 'no reason given'}")
        self._cancelled = True
        self._reason = reason or self._reason

    def raise_if_cancelled(self) -> None:
        """Raise TranslationCancelledError if cancellation was requested."""
        if self._cancelled:
            message = "Translation cancelled"
            if self._reason:
                message = f"{message}: {self._reason}"
            raise TranslationCancelledError(message)


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """Poll an optional token."""
    if token is not None:
        token.raise_if_cancelled()
