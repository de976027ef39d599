"""Endpoint normalization for the two supported wire dialects.

The user supplies a base URL (``https://api.openai.com/v1``,
``https://api.anthropic.com/v1/messages``, a local proxy, ...) and an
``ApiFormat``. The adapter resolves ``auto`` to a concrete dialect and binds
the URL to that dialect's resource suffix.
"""

from enum import Enum

OPENAI_SUFFIX = "/chat/completions"
ANTHROPIC_SUFFIX = "/messages"
MODELS_SUFFIX = "/models"


class ApiFormat(str, Enum):
    """Wire dialect of the LLM endpoint."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    AUTO = "auto"


def detect_api_format(endpoint: str, configured: ApiFormat) -> ApiFormat:
    """Resolve ``ApiFormat.AUTO`` from the endpoint URL.

    Explicit formats are returned unchanged.
    """
    if configured != ApiFormat.AUTO:
        return configured

    lower = endpoint.lower()
    if (
        "anthropic" in lower
        or lower.endswith(ANTHROPIC_SUFFIX)
        or "/v1/messages" in lower
    ):
        return ApiFormat.ANTHROPIC
    return ApiFormat.OPENAI


def normalize_endpoint(endpoint: str, api_format: ApiFormat) -> str:
    """Return the absolute request URL for the given dialect.

    Whitespace-only input yields an empty string, which callers must reject
    before dispatching.
    """
    trimmed = endpoint.strip().rstrip("/")
    if not trimmed:
        return ""

    suffix = ANTHROPIC_SUFFIX if api_format == ApiFormat.ANTHROPIC else OPENAI_SUFFIX
    if trimmed.endswith(suffix):
        return trimmed
    return f"{trimmed}{suffix}"


def models_url(endpoint: str) -> str:
    """Derive the sibling "list models" URL from a request endpoint."""
    base = endpoint.strip()
    if base.endswith(OPENAI_SUFFIX):
        base = base[: -len(OPENAI_SUFFIX)]
    if base.endswith(ANTHROPIC_SUFFIX):
        base = base[: -len(ANTHROPIC_SUFFIX)]
    return f"{base.rstrip('/')}{MODELS_SUFFIX}"
