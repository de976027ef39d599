"""Shared fixtures: a fake LLM endpoint served through httpx.MockTransport."""

import asyncio
import json
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from subtitle_translator.core.llm import LLMRuntimeConfig, UnifiedLLMGateway
from subtitle_translator.core.translation import Entry, TranslationOrchestrator, TranslationSettings

ENDPOINT = "http://llm.test/v1"
MODEL = "test-model"
PROMPT = "Translate to French."


def openai_reply(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def anthropic_reply(content: str) -> dict:
    return {"content": [{"type": "text", "text": content}]}


def sse_body(text: str, chunk_size: int = 7) -> bytes:
    """Encode ``text`` as an OpenAI-style event stream split into small deltas."""
    frames = [
        "data: " + json.dumps({"choices": [{"delta": {"content": text[i : i + chunk_size]}}]})
        for i in range(0, len(text), chunk_size)
    ]
    frames.append("data: [DONE]")
    return "".join(f"{frame}\n\n" for frame in frames).encode("utf-8")


def request_body(request: httpx.Request) -> dict:
    return json.loads(request.content)


def request_payload(request: httpx.Request) -> str:
    """Return the encoded ``INDEX|TEXT`` lines sent in an OpenAI-style request."""
    content = request_body(request)["messages"][0]["content"]
    return content.rsplit("\n\n", 1)[1]


def parse_payload(payload: str) -> List[Tuple[int, str]]:
    pairs = []
    for line in payload.split("\n"):
        index, _, text = line.partition("|")
        pairs.append((int(index), text))
    return pairs


def translate_payload(payload: str, prefix: str = "FR:") -> str:
    """Answer every request line, keeping tags in place."""
    return "\n".join(f"{index}|{prefix}{text}" for index, text in parse_payload(payload))


def make_entries(count: int, start: int = 1) -> List[Entry]:
    return [Entry(i, f"line {i}") for i in range(start, start + count)]


def fast_settings(**overrides) -> TranslationSettings:
    overrides.setdefault("retry_delay", 0)
    return TranslationSettings(**overrides)


class FakeLLM:
    """MockTransport handler that translates every line it receives.

    Args:
        failures: First entry index of a batch -> number of times that batch
            fails with HTTP 500 before succeeding
        transform: Optional override producing the reply text from the
            request's entries
        delay: Optional per-request delay, as a function of the entries
    """

    def __init__(
        self,
        failures: Optional[Dict[int, int]] = None,
        transform: Optional[Callable[[List[Tuple[int, str]]], str]] = None,
        delay: Optional[Callable[[List[Tuple[int, str]]], float]] = None,
    ):
        self.failures = dict(failures or {})
        self.transform = transform
        self.delay = delay
        self.requests: List[List[Tuple[int, str]]] = []

    def batches_for(self, first_index: int) -> int:
        return sum(1 for pairs in self.requests if pairs[0][0] == first_index)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = request_body(request)
        payload = request_payload(request)
        pairs = parse_payload(payload)
        self.requests.append(pairs)

        if self.delay is not None:
            await asyncio.sleep(self.delay(pairs))
        else:
            await asyncio.sleep(0)

        first = pairs[0][0]
        if self.failures.get(first, 0) > 0:
            self.failures[first] -= 1
            return httpx.Response(500, text="upstream exploded")

        if self.transform is not None:
            text = self.transform(pairs)
        else:
            text = translate_payload(payload)

        if body.get("stream"):
            return httpx.Response(
                200, content=sse_body(text), headers={"content-type": "text/event-stream"}
            )
        return httpx.Response(200, json=openai_reply(text))


def runtime_config(**overrides) -> LLMRuntimeConfig:
    params = {"endpoint": ENDPOINT, "api_key": "sk-test", "model": MODEL}
    params.update(overrides)
    return LLMRuntimeConfig.resolve(**params)


@pytest.fixture
async def http_clients():
    clients: List[httpx.AsyncClient] = []
    yield clients
    for client in clients:
        await client.aclose()


@pytest.fixture
def make_gateway(http_clients):
    def factory(handler, **config_overrides) -> UnifiedLLMGateway:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        http_clients.append(client)
        return UnifiedLLMGateway(runtime_config(**config_overrides), client=client)

    return factory


@pytest.fixture
def make_orchestrator(make_gateway):
    def factory(handler, **config_overrides) -> TranslationOrchestrator:
        return TranslationOrchestrator(make_gateway(handler, **config_overrides))

    return factory

