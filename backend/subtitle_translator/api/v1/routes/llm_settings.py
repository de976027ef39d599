"""LLM Settings API routes - model discovery and connection checks."""

import logging
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from subtitle_translator.api.dependencies import HttpClient, build_orchestrator, to_http_error
from subtitle_translator.core.llm import LLMConfig, LLMModel
from subtitle_translator.errors import SubtitleTranslatorError

logger = logging.getLogger(__name__)

router = APIRouter()


class LLMEndpointRequest(BaseModel):
    """Request naming an endpoint; None = the configured default."""
    llm: Optional[LLMConfig] = None


@router.post("/llm/models")
async def list_models(request: LLMEndpointRequest, client: HttpClient) -> List[LLMModel]:
    """List models advertised by the endpoint's /models resource.

    Returns models with:
    - id: Model identifier to send in requests
    - object: Object type (OpenAI "object", Anthropic "type")
    - name: Human-readable name, when the endpoint provides one
    """
    orchestrator = build_orchestrator(request.llm, client)
    try:
        return await orchestrator.list_models()
    except SubtitleTranslatorError as e:
        raise to_http_error(e)


@router.post("/llm/test")
async def test_connection(request: LLMEndpointRequest, client: HttpClient):
    """Test LLM endpoint connection.

    Returns:
        success: Whether the endpoint answered a minimal request
        message: Status message
    """
    orchestrator = build_orchestrator(request.llm, client)
    model = orchestrator.gateway.config.model
    is_success = await orchestrator.health_check()
    return {
        "success": is_success,
        "message": "Connection successful" if is_success else "Connection failed; see server logs",
        "model": model,
    }
