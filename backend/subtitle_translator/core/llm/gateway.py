"""Unified LLM Gateway for all endpoint access.

This module provides a single gateway for every HTTP exchange with the LLM
endpoint. It takes an LLMRuntimeConfig directly, so the resolved dialect,
endpoint and headers reach every request unchanged.

Key benefits:
- Single entry point for raw, streamed and model-listing calls
- One long-lived httpx.AsyncClient shared across batches
- Consistent logging and error mapping (transport vs. decode errors)
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from subtitle_translator.core.cancellation import CancellationToken, check_cancelled
from subtitle_translator.errors import LLMTransportError, ResponseDecodeError
from subtitle_translator.utils.text import one_line, safe_truncate

from .endpoint import ApiFormat, models_url
from .runtime_config import LLMRuntimeConfig
from .sse import ServerSentEventDecoder

logger = logging.getLogger(__name__)


class LLMModel(BaseModel):
    """Model advertised by the endpoint's ``/models`` resource.

    OpenAI reports ``object``, Anthropic ``type``; OpenRouter reports
    ``name``, Anthropic ``display_name``.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    object: str = Field(default="", validation_alias=AliasChoices("object", "type"))
    owned_by: Optional[str] = None
    name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("name", "display_name")
    )
    description: Optional[str] = None
    context_length: Optional[int] = None


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    api_format: str
    latency_ms: int = 0

    # Raw response for debugging
    raw_response: Optional[Dict[str, Any]] = None


class UnifiedLLMGateway:
    """Gateway for all interactions with one configured LLM endpoint.

    The gateway owns its httpx.AsyncClient unless one is injected, in which
    case the caller is responsible for closing it.

    Usage:
        config = LLMRuntimeConfig.resolve(endpoint, api_key, model)
        async with UnifiedLLMGateway(config) as gateway:
            text = await gateway.translate("Translate to French:", "1|Hello")
    """

    def __init__(
        self,
        config: LLMRuntimeConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )

        logger.info(
            f"[LLM Gateway] Initialized: format={config.api_format.value}, "
            f"model={config.model}, endpoint={config.endpoint}"
        )

    async def __aenter__(self) -> "UnifiedLLMGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def execute(self, system_prompt: str, content: str) -> LLMResponse:
        """Issue exactly one request/response round trip.

        Args:
            system_prompt: Instruction text
            content: Payload text; may be empty

        Returns:
            Standardized LLMResponse

        Raises:
            LLMConfigurationError: If the endpoint or model is empty
            LLMTransportError: On connection errors and non-2xx responses
            ResponseDecodeError: If the body has no usable content
        """
        self.config.validate()
        start_time = time.time()
        body = self.config.build_body(system_prompt, content, stream=False)

        logger.info(
            f"LLM call: model={self.config.model}, "
            f"format={self.config.api_format.value}, chars={len(content)}"
        )

        try:
            response = await self._client.post(
                self.config.endpoint,
                json=body,
                headers=self.config.build_headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"LLM call failed: model={self.config.model}, error={e}")
            raise LLMTransportError(f"Translation request failed: {e}") from e

        if not response.is_success:
            raise self._status_error(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise ResponseDecodeError(
                f"Failed to parse translation response: {e}"
            ) from e

        result = LLMResponse(
            content=self._extract_content(payload),
            model=self.config.model,
            api_format=self.config.api_format.value,
            latency_ms=int((time.time() - start_time) * 1000),
            raw_response=payload if isinstance(payload, dict) else None,
        )

        logger.info(f"LLM response: chars={len(result.content)}, latency={result.latency_ms}ms")
        logger.debug(f"LLM raw content: {safe_truncate(one_line(result.content), 500)}")

        return result

    async def translate(self, system_prompt: str, content: str) -> str:
        """Send one translation request and return the raw model text."""
        response = await self.execute(system_prompt, content)
        return response.content

    async def stream(
        self,
        system_prompt: str,
        content: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """Stream the model's text as it arrives.

        Yields text fragments in arrival order. The cancellation token is
        polled before dispatch and after every body chunk.

        Raises:
            LLMTransportError: On connection errors and non-2xx responses
            TranslationCancelledError: If the token is cancelled mid-stream
        """
        self.config.validate()
        check_cancelled(cancel_token)

        start_time = time.time()
        body = self.config.build_body(system_prompt, content, stream=True)
        decoder = ServerSentEventDecoder()
        fragment_count = 0

        logger.info(
            f"LLM stream: model={self.config.model}, "
            f"format={self.config.api_format.value}, chars={len(content)}"
        )

        try:
            async with self._client.stream(
                "POST",
                self.config.endpoint,
                json=body,
                headers=self.config.build_headers(),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise self._status_error(response.status_code, response.text)

                async for chunk in response.aiter_bytes():
                    check_cancelled(cancel_token)
                    for fragment in decoder.feed(chunk):
                        fragment_count += 1
                        yield fragment
                    if decoder.done:
                        break
        except httpx.HTTPError as e:
            logger.error(f"LLM stream failed: model={self.config.model}, error={e}")
            raise LLMTransportError(f"Stream error: {e}") from e

        for fragment in decoder.flush():
            fragment_count += 1
            yield fragment

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(f"LLM stream complete: fragments={fragment_count}, latency={latency_ms}ms")

    async def list_models(self) -> List[LLMModel]:
        """List the models available at the endpoint."""
        url = models_url(self.config.endpoint)
        try:
            response = await self._client.get(url, headers=self.config.build_headers())
        except httpx.HTTPError as e:
            raise LLMTransportError(f"Failed to fetch models: {e}") from e

        if not response.is_success:
            raise LLMTransportError(
                f"API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
            items = payload["data"]
            return [LLMModel.model_validate(item) for item in items]
        except (ValueError, KeyError, TypeError) as e:
            raise ResponseDecodeError(f"Failed to parse models response: {e}") from e

    async def health_check(self) -> bool:
        """Check if the endpoint answers a minimal request."""
        try:
            await self.execute("Reply with OK.", "")
            return True
        except Exception as e:
            logger.warning(f"Health check failed for {self.config.model}: {e}")
            return False

    def _status_error(self, status_code: int, body: str) -> LLMTransportError:
        logger.error(
            f"LLM call failed: model={self.config.model}, status={status_code}, "
            f"body={safe_truncate(one_line(body), 300)}"
        )
        return LLMTransportError(
            f"Translation API error {status_code}: {body}",
            status_code=status_code,
            body=body,
        )

    def _extract_content(self, payload: Any) -> str:
        """Pull the first text block out of a dialect-specific response."""
        try:
            if self.config.api_format == ApiFormat.ANTHROPIC:
                blocks = payload["content"]
                if not blocks:
                    raise ResponseDecodeError("No response from model")
                return blocks[0]["text"]

            choices = payload["choices"]
            if not choices:
                raise ResponseDecodeError("No response from model")
            return choices[0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ResponseDecodeError(
                f"Failed to parse translation response: missing {e}; "
                f"body={safe_truncate(json.dumps(payload, ensure_ascii=False), 300)}"
            ) from e


# Convenience alias for shorter imports
LLMGateway = UnifiedLLMGateway
