"""Translation API routes."""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from subtitle_translator.api.dependencies import (
    HttpClient,
    RequireAuth,
    build_orchestrator,
    to_http_error,
)
from subtitle_translator.core.llm import LLMConfig
from subtitle_translator.core.translation import (
    Entry,
    TranslationBatchReport,
    TranslationProgress,
    TranslationSettings,
)
from subtitle_translator.errors import SubtitleTranslatorError

logger = logging.getLogger(__name__)

router = APIRouter()


class SubtitleEntry(BaseModel):
    """One subtitle line on the wire."""
    index: int = Field(..., ge=0)
    text: str


class TranslationRequestBase(BaseModel):
    """Fields shared by every translation request."""
    # None = use the endpoint configured in the environment
    llm: Optional[LLMConfig] = None
    system_prompt: str


class TranslateTextRequest(TranslationRequestBase):
    """Request to translate free text."""
    text: str


class TranslateSubtitlesRequest(TranslationRequestBase):
    """Request to translate entries in one request (or one stream per batch)."""
    entries: List[SubtitleEntry]
    streaming: bool = False
    batch_size: int = 50


class TranslateBatchRequest(TranslationRequestBase):
    """Request to translate the next batch at or after start_index."""
    entries: List[SubtitleEntry]
    start_index: int = 0
    batch_size: int = 50


class TranslateFullRequest(TranslationRequestBase):
    """Request to translate every entry in concurrent batches."""
    entries: List[SubtitleEntry]
    # None = defaults from the environment
    settings: Optional[TranslationSettings] = None


class ContinueTranslationRequest(TranslateBatchRequest):
    """Request to resume a partial translation."""
    translations: List[SubtitleEntry] = Field(default_factory=list)


class TranslationsResponse(BaseModel):
    """Translated entries with progress."""
    translations: List[SubtitleEntry]
    progress: Optional[TranslationProgress] = None
    error_message: Optional[str] = None


def _to_entries(items: List[SubtitleEntry]) -> List[Entry]:
    return [Entry(item.index, item.text) for item in items]


def _to_wire(entries: List[Entry]) -> List[SubtitleEntry]:
    return [SubtitleEntry(index=index, text=text) for index, text in entries]


def _report_payload(report: TranslationBatchReport) -> dict:
    return {
        "kind": "report",
        "translations": [{"index": index, "text": text} for index, text in report.translations],
        "progress": report.progress.model_dump(),
        "error_message": report.error_message,
    }


@router.post("/translation/text")
async def translate_text(
    request: TranslateTextRequest,
    client: HttpClient,
    _auth: RequireAuth,
):
    """Translate free text with one raw request."""
    orchestrator = build_orchestrator(request.llm, client)
    try:
        translation = await orchestrator.translate_text(request.system_prompt, request.text)
    except SubtitleTranslatorError as e:
        raise to_http_error(e)
    return {"translation": translation}


@router.post("/translation/subtitles", response_model=TranslationsResponse)
async def translate_subtitles(
    request: TranslateSubtitlesRequest,
    client: HttpClient,
    _auth: RequireAuth,
):
    """Translate all entries in a single request, or stream them batch by batch."""
    orchestrator = build_orchestrator(request.llm, client)
    entries = _to_entries(request.entries)
    try:
        if request.streaming:
            translations = await orchestrator.translate_subtitles_streaming(
                request.system_prompt, entries, request.batch_size
            )
        else:
            translations = await orchestrator.translate_subtitles(request.system_prompt, entries)
    except SubtitleTranslatorError as e:
        raise to_http_error(e)

    return TranslationsResponse(
        translations=_to_wire(translations),
        progress=TranslationProgress.from_translations(len(entries), translations),
    )


@router.post("/translation/batch", response_model=TranslationsResponse)
async def translate_batch(
    request: TranslateBatchRequest,
    client: HttpClient,
    _auth: RequireAuth,
):
    """Translate one batch; progress.last_translated_index + 1 is the next start_index."""
    orchestrator = build_orchestrator(request.llm, client)
    try:
        result = await orchestrator.translate_batch(
            request.system_prompt,
            _to_entries(request.entries),
            request.start_index,
            request.batch_size,
        )
    except SubtitleTranslatorError as e:
        raise to_http_error(e)

    return TranslationsResponse(
        translations=_to_wire(result.translations),
        progress=result.progress,
    )


@router.post("/translation/continue", response_model=TranslationsResponse)
async def continue_translation(
    request: ContinueTranslationRequest,
    client: HttpClient,
    _auth: RequireAuth,
):
    """Translate the next batch and merge it into earlier translations."""
    orchestrator = build_orchestrator(request.llm, client)
    try:
        result = await orchestrator.continue_translation(
            request.system_prompt,
            _to_entries(request.entries),
            _to_entries(request.translations),
            request.start_index,
            request.batch_size,
        )
    except SubtitleTranslatorError as e:
        raise to_http_error(e)

    return TranslationsResponse(
        translations=_to_wire(result.translations),
        progress=result.progress,
    )


@router.post("/translation/full", response_model=TranslationsResponse)
async def translate_full(
    request: TranslateFullRequest,
    client: HttpClient,
    _auth: RequireAuth,
):
    """Translate every entry with batching, retries and auto-continue.

    A run that stops on an exhausted batch still answers 200; the partial
    translations come back with ``error_message`` set.
    """
    orchestrator = build_orchestrator(request.llm, client)
    settings = request.settings or TranslationSettings.from_settings()
    try:
        report = await orchestrator.translate_all_batched(
            request.system_prompt, _to_entries(request.entries), settings
        )
    except SubtitleTranslatorError as e:
        raise to_http_error(e)

    return TranslationsResponse(
        translations=_to_wire(report.translations),
        progress=report.progress,
        error_message=report.error_message,
    )


@router.post("/translation/full/stream")
async def translate_full_stream(
    request: TranslateFullRequest,
    client: HttpClient,
    _auth: RequireAuth,
):
    """Translate every entry, streaming orchestration events.

    Returns a Server-Sent Events (SSE) stream. Each event is a JSON object
    with a ``kind`` of progress, retry, error or entry; the final event has
    kind ``report`` and carries the translations.
    """
    orchestrator = build_orchestrator(request.llm, client)
    settings = request.settings or TranslationSettings.from_settings()
    entries = _to_entries(request.entries)

    # Fail before opening the stream on a bad endpoint or model
    try:
        orchestrator.gateway.config.validate()
    except SubtitleTranslatorError as e:
        raise to_http_error(e)

    async def event_generator():
        """Generate SSE events from the orchestration."""
        try:
            async for item in orchestrator.iter_events(request.system_prompt, entries, settings):
                if isinstance(item, TranslationBatchReport):
                    payload = _report_payload(item)
                else:
                    payload = item.model_dump()
                yield f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
        except SubtitleTranslatorError as e:
            logger.error(f"Streaming translation failed: {e}")
            error_event = {"kind": "failed", "error_message": str(e)}
            yield f"data: {json.dumps(error_event, ensure_ascii=False)}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
