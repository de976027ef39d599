"""Translation Orchestrator - Manages batched translation of subtitle entries.

The entry list is split into fixed-size batches. Batches are dispatched in
groups of ``parallel_requests``: a group's first attempts run concurrently
and are awaited jointly, then its failed batches are retried one at a time
in batch order. Results land in one slot per batch, so the final output can
be assembled and sorted regardless of completion order.
"""

import asyncio
import logging
from itertools import chain
from typing import (
    AsyncIterator,
    Callable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from subtitle_translator.core.cancellation import CancellationToken, check_cancelled
from subtitle_translator.core.llm.gateway import LLMModel, UnifiedLLMGateway
from subtitle_translator.core.llm.runtime_config import LLMConfig, LLMRuntimeConfig
from subtitle_translator.errors import (
    ResponseDecodeError,
    TranslationCancelledError,
    TranslationError,
)

from .models import (
    BatchTranslationResult,
    Entry,
    EntryEvent,
    ErrorEvent,
    ProgressEvent,
    RetryEvent,
    TagMismatchPolicy,
    TranslatedEntryEvent,
    TranslationBatchReport,
    TranslationEvent,
    TranslationProgress,
    TranslationSettings,
    as_entries,
)
from .pipeline import TranslationPipeline

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TranslationProgress], None]
RetryCallback = Callable[[RetryEvent], None]
ErrorCallback = Callable[[ErrorEvent], None]
EntryCallback = Callable[[TranslatedEntryEvent], None]


class EventSink:
    """Single emission point for orchestration events.

    Every event is put on the queue (when given) and then handed to the
    matching callback, so both consumers observe the same order.
    """

    def __init__(
        self,
        queue: Optional[asyncio.Queue] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_retry: Optional[RetryCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_entry: Optional[EntryCallback] = None,
    ):
        self.queue = queue
        self.on_progress = on_progress
        self.on_retry = on_retry
        self.on_error = on_error
        self.on_entry = on_entry

    def emit(self, event: TranslationEvent) -> None:
        if self.queue is not None:
            self.queue.put_nowait(event)

        if isinstance(event, ProgressEvent):
            if self.on_progress is not None:
                self.on_progress(event.progress)
        elif isinstance(event, RetryEvent):
            if self.on_retry is not None:
                self.on_retry(event)
        elif isinstance(event, ErrorEvent):
            if self.on_error is not None:
                self.on_error(event)
        elif isinstance(event, EntryEvent):
            if self.on_entry is not None:
                self.on_entry(TranslatedEntryEvent(index=event.index, text=event.text))

    def entry(self, entry: Entry) -> None:
        self.emit(EntryEvent(index=entry.index, text=entry.text))


def collect_translations(slots: Sequence[Optional[List[Entry]]]) -> List[Entry]:
    """Flatten the filled batch slots into one index-sorted list."""
    return sorted(
        chain.from_iterable(slot for slot in slots if slot is not None),
        key=lambda entry: entry.index,
    )


class TranslationOrchestrator:
    """Orchestrates batched translation against one LLM endpoint.

    Usage:
        config = LLMRuntimeConfig.resolve(endpoint, api_key, model)
        async with TranslationOrchestrator.from_config(config) as orchestrator:
            report = await orchestrator.translate_all_batched(prompt, entries)
    """

    def __init__(
        self,
        gateway: UnifiedLLMGateway,
        cancel_token: Optional[CancellationToken] = None,
    ):
        """Initialize the orchestrator.

        Args:
            gateway: Gateway for the configured endpoint
            cancel_token: Shared cancellation flag; a private one is created
                when omitted
        """
        self.gateway = gateway
        self.pipeline = TranslationPipeline(gateway)
        self.cancel_token = cancel_token or CancellationToken()

    @classmethod
    def from_config(
        cls,
        config: Union[LLMConfig, LLMRuntimeConfig],
        *,
        client: Optional[httpx.AsyncClient] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "TranslationOrchestrator":
        if isinstance(config, LLMConfig):
            config = LLMRuntimeConfig.from_config(config)
        return cls(UnifiedLLMGateway(config, client=client), cancel_token=cancel_token)

    async def __aenter__(self) -> "TranslationOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.gateway.aclose()

    def cancel(self, reason: Optional[str] = None) -> None:
        """Ask the running orchestration to stop at its next checkpoint."""
        self.cancel_token.cancel(reason)

    # ------------------------------------------------------------------
    # Single-request operations
    # ------------------------------------------------------------------

    async def translate(self, system_prompt: str, content: str) -> str:
        """Send one raw request and return the model's text."""
        return await self.gateway.translate(system_prompt, content)

    async def translate_text(self, system_prompt: str, text: str) -> str:
        """Translate free text without the line protocol."""
        logger.info(f"[Orchestrator] Translating free text ({len(text)} chars)")
        return await self.translate(system_prompt, text)

    async def translate_subtitles(
        self, system_prompt: str, entries: Sequence[Entry]
    ) -> List[Entry]:
        """Translate all entries in one request, rejecting tag mismatches."""
        return await self.pipeline.translate_entries(
            system_prompt,
            as_entries(entries),
            tag_policy=TagMismatchPolicy.REJECT_BATCH,
            cancel_token=self.cancel_token,
        )

    async def translate_subtitles_streaming(
        self,
        system_prompt: str,
        entries: Sequence[Entry],
        batch_size: int = 50,
        on_entry: Optional[EntryCallback] = None,
    ) -> List[Entry]:
        """Stream every batch in turn, reporting each entry as it completes.

        A batch that yields nothing is skipped; the call fails only when no
        batch yielded anything.

        Raises:
            ResponseDecodeError: If no entry was decoded at all
        """
        entries = as_entries(entries)
        batch_size = max(batch_size, 1)
        sink = EventSink(on_entry=on_entry)
        results: List[Entry] = []

        for start in range(0, len(entries), batch_size):
            batch = entries[start : start + batch_size]
            try:
                results.extend(
                    await self.pipeline.translate_entries_streaming(
                        system_prompt,
                        batch,
                        on_entry=sink.entry,
                        cancel_token=self.cancel_token,
                    )
                )
            except ResponseDecodeError as e:
                logger.warning(
                    f"[Orchestrator] Streaming batch at #{batch[0].index} yielded no entries: {e}"
                )

        if not results:
            raise ResponseDecodeError("Failed to parse streaming translation response")

        return sorted(results, key=lambda entry: entry.index)

    # ------------------------------------------------------------------
    # Resumable single batch
    # ------------------------------------------------------------------

    async def translate_batch(
        self,
        system_prompt: str,
        entries: Sequence[Entry],
        start_index: int,
        batch_size: int,
    ) -> BatchTranslationResult:
        """Translate the next batch of entries at or after ``start_index``.

        Progress counts every entry before ``start_index`` as already done,
        so ``last_translated_index + 1`` is the cursor for the next call.
        """
        entries = as_entries(entries)
        total_entries = len(entries)
        batch_size = max(batch_size, 1)

        already_done = sum(1 for entry in entries if entry.index < start_index)
        batch = [entry for entry in entries if entry.index >= start_index][:batch_size]

        if not batch:
            return BatchTranslationResult(
                translations=[],
                progress=TranslationProgress(
                    total_entries=total_entries,
                    translated_entries=already_done,
                    last_translated_index=max(start_index - 1, 0),
                    is_partial=False,
                    can_continue=False,
                ),
            )

        logger.info(
            f"[Orchestrator] Translating batch from #{batch[0].index} "
            f"({len(batch)} of {total_entries} entries)"
        )
        translations = await self.translate_subtitles(system_prompt, batch)

        translated_entries = already_done + len(translations)
        is_partial = translated_entries < total_entries
        return BatchTranslationResult(
            translations=translations,
            progress=TranslationProgress(
                total_entries=total_entries,
                translated_entries=translated_entries,
                last_translated_index=max((entry.index for entry in translations), default=0),
                is_partial=is_partial,
                can_continue=is_partial and bool(translations),
            ),
        )

    async def continue_translation(
        self,
        system_prompt: str,
        entries: Sequence[Entry],
        previous: Sequence[Entry],
        start_index: int,
        batch_size: int,
    ) -> BatchTranslationResult:
        """Translate the next batch and merge it into earlier translations.

        New translations replace earlier ones with the same index. Progress
        counts every input entry that now has a translation.
        """
        entries = as_entries(entries)
        result = await self.translate_batch(system_prompt, entries, start_index, batch_size)

        merged = {entry.index: entry for entry in as_entries(previous)}
        merged.update((entry.index, entry) for entry in result.translations)

        known = {entry.index for entry in entries}
        translations = sorted(
            (entry for index, entry in merged.items() if index in known),
            key=lambda entry: entry.index,
        )
        is_partial = len(translations) < len(entries)

        return BatchTranslationResult(
            translations=translations,
            progress=TranslationProgress(
                total_entries=len(entries),
                translated_entries=len(translations),
                last_translated_index=result.progress.last_translated_index,
                is_partial=is_partial,
                can_continue=is_partial,
            ),
        )

    # ------------------------------------------------------------------
    # Full batched run
    # ------------------------------------------------------------------

    async def translate_all_batched(
        self,
        system_prompt: str,
        entries: Sequence[Entry],
        settings: Optional[TranslationSettings] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_retry: Optional[RetryCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        *,
        on_entry: Optional[EntryCallback] = None,
        events: Optional[asyncio.Queue] = None,
    ) -> TranslationBatchReport:
        """Translate every entry in concurrent groups of batches.

        Args:
            system_prompt: The caller's translation instruction
            entries: ``(index, text)`` pairs with unique indices
            settings: Batch processing settings (defaults when omitted)
            on_progress: Called with progress after every group
            on_retry: Called before a failed batch is resubmitted
            on_error: Called when a batch has exhausted its retries
            on_entry: Called per decoded entry in streaming mode
            events: Queue receiving every event, in emission order

        Returns:
            TranslationBatchReport with index-sorted translations. A set
            ``error_message`` means the run stopped on an exhausted batch.

        Raises:
            LLMConfigurationError: Before any request if the endpoint or
                model is empty
            TranslationCancelledError: Carrying the partial translations and
                progress when the run is cancelled
        """
        settings = settings or TranslationSettings()
        entries = as_entries(entries)
        sink = EventSink(events, on_progress, on_retry, on_error, on_entry)

        self.gateway.config.validate()

        total_entries = len(entries)
        batch_size = settings.batch_size
        batches = [
            entries[start : start + batch_size]
            for start in range(0, total_entries, batch_size)
        ]
        slots: List[Optional[List[Entry]]] = [None] * len(batches)

        logger.info(
            f"[Orchestrator] Translating {total_entries} entries in {len(batches)} batches "
            f"(batch_size={batch_size}, parallel={settings.parallel_requests}, "
            f"streaming={settings.streaming})"
        )

        try:
            for group_start in range(0, len(batches), settings.parallel_requests):
                group = list(
                    range(group_start, min(group_start + settings.parallel_requests, len(batches)))
                )
                report = await self._run_group(
                    system_prompt, batches, group, slots, total_entries, settings, sink
                )
                if report is not None:
                    return report

                progress = self._progress(total_entries, slots)
                sink.emit(ProgressEvent(progress=progress))

                if not settings.auto_continue and progress.is_partial:
                    logger.info(
                        f"[Orchestrator] Pausing after {progress.translated_entries}/"
                        f"{total_entries} entries (auto_continue disabled)"
                    )
                    return TranslationBatchReport(
                        translations=collect_translations(slots), progress=progress
                    )
        except TranslationCancelledError as e:
            e.translations = collect_translations(slots)
            e.progress = self._progress(total_entries, slots)
            logger.info(
                f"[Orchestrator] Cancelled after {e.progress.translated_entries}/"
                f"{total_entries} entries"
            )
            raise

        translations = collect_translations(slots)
        logger.info(
            f"[Orchestrator] Finished: {len(translations)}/{total_entries} entries translated"
        )
        return TranslationBatchReport(
            translations=translations,
            progress=TranslationProgress.from_translations(total_entries, translations),
        )

    async def iter_events(
        self,
        system_prompt: str,
        entries: Sequence[Entry],
        settings: Optional[TranslationSettings] = None,
    ) -> AsyncIterator[Union[TranslationEvent, TranslationBatchReport]]:
        """Run translate_all_batched, yielding its events and then its report.

        Closing the iterator early cancels the run.
        """
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(
            self.translate_all_batched(system_prompt, entries, settings, events=queue)
        )

        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait(
                    {getter, task}, return_when=asyncio.FIRST_COMPLETED
                )
                if getter in done:
                    yield getter.result()
                    continue
                getter.cancel()
                break

            while not queue.empty():
                yield queue.get_nowait()

            yield task.result()
        finally:
            if not task.done():
                self.cancel("event consumer closed")
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, TranslationCancelledError):
                    logger.debug("[Orchestrator] Event run stopped after consumer closed")

    async def _run_group(
        self,
        system_prompt: str,
        batches: List[List[Entry]],
        group: List[int],
        slots: List[Optional[List[Entry]]],
        total_entries: int,
        settings: TranslationSettings,
        sink: EventSink,
    ) -> Optional[TranslationBatchReport]:
        """Run one group; return a report only when the run must stop."""
        check_cancelled(self.cancel_token)
        logger.debug(
            f"[Orchestrator] Dispatching batches {group[0] + 1}-{group[-1] + 1} of {len(batches)}"
        )

        outcomes = await asyncio.gather(
            *(self._dispatch(system_prompt, batches[i], settings, sink) for i in group),
            return_exceptions=True,
        )

        failures: List[Tuple[int, TranslationError]] = []
        raised: Optional[BaseException] = None
        for batch_index, outcome in zip(group, outcomes):
            if isinstance(outcome, TranslationError):
                logger.warning(f"[Orchestrator] Batch {batch_index + 1} failed: {outcome}")
                failures.append((batch_index, outcome))
            elif isinstance(outcome, BaseException):
                raised = raised or outcome
            else:
                slots[batch_index] = outcome

        # Finished batches are kept before any cancellation propagates
        if raised is not None:
            raise raised
        check_cancelled(self.cancel_token)

        for batch_index, error in failures:
            try:
                slots[batch_index] = await self._retry_batch(
                    system_prompt,
                    batch_index,
                    batches[batch_index],
                    error,
                    slots,
                    total_entries,
                    settings,
                    sink,
                )
            except TranslationError as e:
                message = f"Translation failed after {settings.max_retries} retries: {e}"
                progress = self._progress(total_entries, slots)
                progress = progress.model_copy(
                    update={"can_continue": settings.continue_on_error and progress.is_partial}
                )

                logger.error(f"[Orchestrator] Batch {batch_index + 1} exhausted: {message}")
                sink.emit(
                    ErrorEvent(batch_index=batch_index, error_message=message, progress=progress)
                )

                if not settings.continue_on_error:
                    return TranslationBatchReport(
                        translations=collect_translations(slots),
                        progress=progress,
                        error_message=message,
                    )

        return None

    async def _retry_batch(
        self,
        system_prompt: str,
        batch_index: int,
        batch: List[Entry],
        first_error: TranslationError,
        slots: List[Optional[List[Entry]]],
        total_entries: int,
        settings: TranslationSettings,
        sink: EventSink,
    ) -> List[Entry]:
        """Retry a batch whose first attempt already failed with ``first_error``.

        Raises:
            TranslationError: The last failure once retries are exhausted
        """

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.warning(
                f"[Orchestrator] Retrying batch {batch_index + 1} "
                f"({retry_state.attempt_number}/{settings.max_retries}) "
                f"in {settings.retry_delay}s: {error}"
            )
            sink.emit(
                RetryEvent(
                    batch_index=batch_index,
                    attempt=retry_state.attempt_number,
                    max_retries=settings.max_retries,
                    error_message=str(error),
                    progress=self._progress(total_entries, slots),
                )
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(settings.max_retries + 1),
            wait=wait_fixed(settings.retry_delay),
            retry=retry_if_exception_type(TranslationError),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        pending_error: Optional[TranslationError] = first_error
        translations: List[Entry] = []
        async for attempt in retrying:
            with attempt:
                # The first attempt already ran inside the group
                if pending_error is not None:
                    error, pending_error = pending_error, None
                    raise error
                translations = await self._dispatch(system_prompt, batch, settings, sink)

        return translations

    async def _dispatch(
        self,
        system_prompt: str,
        batch: List[Entry],
        settings: TranslationSettings,
        sink: EventSink,
    ) -> List[Entry]:
        check_cancelled(self.cancel_token)
        tag_policy = settings.effective_tag_policy()

        if settings.streaming:
            return await self.pipeline.translate_entries_streaming(
                system_prompt,
                batch,
                on_entry=sink.entry,
                tag_policy=tag_policy,
                cancel_token=self.cancel_token,
            )

        return await self.pipeline.translate_entries(
            system_prompt,
            batch,
            tag_policy=tag_policy,
            cancel_token=self.cancel_token,
        )

    async def _sleep(self, seconds: float) -> None:
        check_cancelled(self.cancel_token)
        await asyncio.sleep(seconds)
        check_cancelled(self.cancel_token)

    @staticmethod
    def _progress(
        total_entries: int, slots: Sequence[Optional[List[Entry]]]
    ) -> TranslationProgress:
        return TranslationProgress.from_translations(
            total_entries, collect_translations(slots)
        )

    # ------------------------------------------------------------------
    # Endpoint utilities
    # ------------------------------------------------------------------

    async def list_models(self) -> List[LLMModel]:
        return await self.gateway.list_models()

    async def health_check(self) -> bool:
        return await self.gateway.health_check()
