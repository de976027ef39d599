"""API dependencies for authentication and orchestrator construction.

This module provides:
- Optional API key authentication for network-exposed deployments
- The shared httpx client and per-request TranslationOrchestrator
- Mapping from translator errors to HTTP errors
"""

import logging
import secrets
from typing import Annotated, Optional

import httpx
from fastapi import Depends, Header, HTTPException, Request

from subtitle_translator.config import settings
from subtitle_translator.core.llm import LLMConfig, LLMRuntimeConfig, UnifiedLLMGateway
from subtitle_translator.core.translation import TranslationOrchestrator
from subtitle_translator.errors import (
    LLMConfigurationError,
    SubtitleTranslatorError,
    TranslationCancelledError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Authentication Dependencies
# =============================================================================


def _presented_token(authorization: Optional[str], x_api_key: Optional[str]) -> Optional[str]:
    """Return the bearer token, falling back to the X-API-Key header."""
    scheme, _, credentials = (authorization or "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return x_api_key or None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def verify_api_token(
    authorization: Annotated[Optional[str], Header()] = None,
    x_api_key: Annotated[Optional[str], Header(alias="X-API-Key")] = None,
) -> bool:
    """Guard the translation routes when API_AUTH_TOKEN is set.

    The token is read from ``Authorization: Bearer <token>`` or from
    ``X-API-Key``. With no token configured every request passes.

    Raises:
        HTTPException: 401 if the token is missing or wrong
    """
    expected = settings.api_auth_token
    if not expected:
        return True

    token = _presented_token(authorization, x_api_key)
    if token is None:
        raise _unauthorized("Missing API token (Authorization: Bearer or X-API-Key)")

    if not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Rejected request with an invalid API token")
        raise _unauthorized("Invalid API token")

    return True


RequireAuth = Annotated[bool, Depends(verify_api_token)]


# =============================================================================
# LLM Dependencies
# =============================================================================


async def get_http_client(request: Request) -> httpx.AsyncClient:
    """Return the application-wide client created at startup."""
    return request.app.state.http_client


HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]


def build_orchestrator(
    llm: Optional[LLMConfig], client: httpx.AsyncClient
) -> TranslationOrchestrator:
    """Build an orchestrator for the request's endpoint, or the configured default.

    The shared client is injected, so closing the orchestrator leaves it open.
    """
    if llm is None:
        config = LLMRuntimeConfig.from_settings(settings)
    else:
        config = LLMRuntimeConfig.from_config(
            llm,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_request_timeout,
        )
    return TranslationOrchestrator(UnifiedLLMGateway(config, client=client))


def to_http_error(error: SubtitleTranslatorError) -> HTTPException:
    """Map a translator error onto an HTTP status."""
    if isinstance(error, LLMConfigurationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, TranslationCancelledError):
        return HTTPException(status_code=409, detail=str(error))

    logger.error(f"Translation request failed: {error}")
    return HTTPException(status_code=502, detail=str(error))
