"""LLM integration package.

This package provides:
- Endpoint normalization and dialect detection (OpenAI / Anthropic)
- Runtime configuration (LLMConfig, LLMRuntimeConfig)
- The HTTP gateway used for raw, streamed and model-listing calls

For batch translation, use the translation orchestrator:
- subtitle_translator.core.translation.TranslationOrchestrator
"""

from .endpoint import ApiFormat, detect_api_format, models_url, normalize_endpoint
from .gateway import LLMGateway, LLMModel, LLMResponse, UnifiedLLMGateway
from .runtime_config import LLMConfig, LLMRuntimeConfig
from .sse import ServerSentEventDecoder

__all__ = [
    "ApiFormat",
    "detect_api_format",
    "models_url",
    "normalize_endpoint",

    "LLMGateway",
    "LLMModel",
    "LLMResponse",
    "UnifiedLLMGateway",

    "LLMConfig",
    "LLMRuntimeConfig",
    "ServerSentEventDecoder",
]
