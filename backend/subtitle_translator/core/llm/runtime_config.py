"""LLM runtime configuration.

This module provides the configuration that flows from the caller to the
actual HTTP request:

- LLMConfig: language-agnostic value object supplied by callers
  (``endpoint, apiKey, model, apiFormat, headers``)
- LLMRuntimeConfig: resolved configuration for a single client, with the
  dialect detected and the endpoint normalized
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from subtitle_translator.errors import LLMConfigurationError

from .endpoint import ApiFormat, detect_api_format, normalize_endpoint

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_TIMEOUT = 300.0


class LLMConfig(BaseModel):
    """Connection settings as supplied by the caller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    endpoint: str = Field(
        default="http://localhost:8317/v1/chat/completions",
        description="Base URL or full request URL of the LLM endpoint",
    )
    api_key: str = Field(default="dummy", description="API key for the endpoint")
    model: str = Field(default="gemini-2.5-pro", description="Model identifier")
    api_format: ApiFormat = Field(
        default=ApiFormat.OPENAI, description="Wire dialect: openai, anthropic or auto"
    )
    headers: List[Tuple[str, str]] = Field(
        default_factory=list, description="Extra request headers as (name, value) pairs"
    )


@dataclass
class LLMRuntimeConfig:
    """Complete LLM configuration resolved for one client.

    ``api_format`` is never ``AUTO`` and ``endpoint`` is already bound to the
    dialect's resource suffix.
    """

    endpoint: str
    api_key: str
    model: str
    api_format: ApiFormat = ApiFormat.OPENAI
    headers: List[Tuple[str, str]] = field(default_factory=list)

    # Anthropic requires max_tokens on every request
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def resolve(
        cls,
        endpoint: str,
        api_key: str,
        model: str,
        api_format: ApiFormat = ApiFormat.OPENAI,
        headers: Optional[List[Tuple[str, str]]] = None,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "LLMRuntimeConfig":
        """Detect the dialect and normalize the endpoint."""
        detected = detect_api_format(endpoint, ApiFormat(api_format))
        normalized = normalize_endpoint(endpoint, detected)

        logger.debug(
            f"Resolved endpoint: {endpoint!r} -> {normalized!r} (format={detected.value})"
        )

        return cls(
            endpoint=normalized,
            api_key=api_key,
            model=model,
            api_format=detected,
            headers=list(headers or []),
            max_tokens=max_tokens,
            timeout=timeout,
        )

    @classmethod
    def from_config(
        cls,
        config: LLMConfig,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "LLMRuntimeConfig":
        return cls.resolve(
            config.endpoint,
            config.api_key,
            config.model,
            config.api_format,
            config.headers,
            max_tokens=max_tokens,
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, settings: Any = None) -> "LLMRuntimeConfig":
        """Build the runtime config from application settings."""
        if settings is None:
            from subtitle_translator.config import settings

        try:
            api_format = ApiFormat(settings.llm_api_format.strip().lower())
        except ValueError:
            raise LLMConfigurationError(
                f"Unknown LLM API format: {settings.llm_api_format!r}"
            ) from None

        return cls.resolve(
            settings.llm_endpoint,
            settings.llm_api_key,
            settings.llm_model,
            api_format,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_request_timeout,
        )

    def validate(self) -> None:
        """Fail fast before any network attempt.

        Raises:
            LLMConfigurationError: If the endpoint or model is empty
        """
        errors = []
        if not self.endpoint:
            errors.append("endpoint is empty")
        if not self.model.strip():
            errors.append("model is empty")
        if errors:
            raise LLMConfigurationError(
                "Invalid LLM configuration: " + ", ".join(errors)
            )

    def build_headers(self) -> Dict[str, str]:
        """Dialect auth headers plus caller-supplied extras.

        A blank API key sends no auth header. Extra headers with a blank
        name are skipped.
        """
        headers: Dict[str, str] = {}
        has_key = bool(self.api_key.strip())

        if self.api_format == ApiFormat.ANTHROPIC:
            if has_key:
                headers["X-Api-Key"] = self.api_key
            headers["anthropic-version"] = ANTHROPIC_VERSION
        else:
            if has_key:
                headers["Authorization"] = f"Bearer {self.api_key}"

        for name, value in self.headers:
            name = name.strip()
            if not name:
                continue
            headers[name] = value

        return headers

    def build_body(
        self, system_prompt: str, content: str, *, stream: bool = False
    ) -> Dict[str, Any]:
        """Build the JSON request body for the configured dialect.

        OpenAI-style endpoints get the prompt and content joined into a single
        user message. Anthropic endpoints get the prompt as ``system``. When
        ``content`` is empty the prompt itself is the user message.
        """
        if self.api_format == ApiFormat.ANTHROPIC:
            body: Dict[str, Any] = {
                "model": self.model,
                "max_tokens": self.max_tokens,
            }
            if content:
                body["system"] = system_prompt
                body["messages"] = [{"role": "user", "content": content}]
            else:
                body["messages"] = [{"role": "user", "content": system_prompt}]
            if stream:
                body["stream"] = True
            return body

        full_content = f"{system_prompt}\n\n{content}" if content else system_prompt
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": full_content}],
            "stream": stream,
        }
