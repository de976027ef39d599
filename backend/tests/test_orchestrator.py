"""Tests for batched orchestration."""

import asyncio

import httpx
import pytest

from conftest import PROMPT, FakeLLM, fast_settings, make_entries, openai_reply
from subtitle_translator.core.translation import (
    Entry,
    EntryEvent,
    ErrorEvent,
    ProgressEvent,
    RetryEvent,
    TagMismatchPolicy,
    TranslatedEntryEvent,
    TranslationBatchReport,
    TranslationSettings,
)
from subtitle_translator.errors import (
    LLMConfigurationError,
    ResponseDecodeError,
    TagMismatchError,
    TranslationCancelledError,
)

UPSTREAM_ERROR = "Translation API error 500: upstream exploded"


def drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def echo(pairs) -> str:
    return "\n".join(f"{index}|{text}" for index, text in pairs)


class TestSettings:
    def test_defaults(self):
        settings = TranslationSettings()
        assert (settings.batch_size, settings.parallel_requests, settings.max_retries) == (50, 1, 3)
        assert settings.auto_continue is True
        assert settings.continue_on_error is False
        assert settings.streaming is False

    def test_camel_case_and_clamping(self):
        settings = TranslationSettings.model_validate(
            {"batchSize": 0, "parallelRequests": -2, "continueOnError": True}
        )
        assert settings.batch_size == 1
        assert settings.parallel_requests == 1
        assert settings.continue_on_error is True

    def test_tag_policy_follows_mode(self):
        assert TranslationSettings().effective_tag_policy() == TagMismatchPolicy.REJECT_BATCH
        assert (
            TranslationSettings(streaming=True).effective_tag_policy()
            == TagMismatchPolicy.DROP_ENTRY
        )
        assert (
            TranslationSettings(tag_mismatch_policy="drop_entry").effective_tag_policy()
            == TagMismatchPolicy.DROP_ENTRY
        )


class TestTranslateAllBatched:
    async def test_translates_everything_in_order(self, make_orchestrator):
        backend = FakeLLM(delay=lambda pairs: 0.02 if pairs[0][0] == 1 else 0)
        orchestrator = make_orchestrator(backend)
        progress_updates = []

        report = await orchestrator.translate_all_batched(
            PROMPT,
            make_entries(120),
            fast_settings(batch_size=50, parallel_requests=3),
            on_progress=progress_updates.append,
        )

        assert [entry.index for entry in report.translations] == list(range(1, 121))
        assert report.translations[0] == Entry(1, "FR:line 1")
        assert report.error_message is None
        assert report.succeeded
        assert report.progress.translated_entries == 120
        assert report.progress.last_translated_index == 120
        assert len(backend.requests) == 3
        assert len(progress_updates) == 1

    async def test_failed_batch_is_retried(self, make_orchestrator):
        backend = FakeLLM(failures={51: 2})
        orchestrator = make_orchestrator(backend)
        events: asyncio.Queue = asyncio.Queue()
        retries = []

        report = await orchestrator.translate_all_batched(
            PROMPT,
            make_entries(120),
            fast_settings(batch_size=50, parallel_requests=2),
            on_retry=retries.append,
            events=events,
        )

        assert [retry.attempt for retry in retries] == [1, 2]
        assert all(retry.batch_index == 1 for retry in retries)
        assert retries[0].max_retries == 3
        assert retries[0].error_message == UPSTREAM_ERROR
        assert retries[0].progress.translated_entries == 50
        assert backend.batches_for(51) == 3

        assert report.progress.translated_entries == 120
        assert report.progress.is_partial is False
        assert report.error_message is None

        kinds = [event.kind for event in drain(events)]
        assert kinds == ["retry", "retry", "progress", "progress"]

    async def test_fail_fast_after_max_retries(self, make_orchestrator):
        backend = FakeLLM(failures={51: 99})
        orchestrator = make_orchestrator(backend)
        errors = []

        report = await orchestrator.translate_all_batched(
            PROMPT,
            make_entries(120),
            fast_settings(batch_size=50, parallel_requests=2, max_retries=2),
            on_error=errors.append,
        )

        expected = f"Translation failed after 2 retries: {UPSTREAM_ERROR}"
        assert report.error_message == expected
        assert [entry.index for entry in report.translations] == list(range(1, 51))
        assert report.progress.is_partial is True
        assert report.progress.can_continue is False
        assert backend.batches_for(51) == 3
        assert backend.batches_for(101) == 0

        assert len(errors) == 1
        assert isinstance(errors[0], ErrorEvent)
        assert errors[0].batch_index == 1
        assert errors[0].error_message == expected

    async def test_continue_on_error_skips_exhausted_batch(self, make_orchestrator):
        backend = FakeLLM(failures={51: 99})
        orchestrator = make_orchestrator(backend)
        errors = []

        report = await orchestrator.translate_all_batched(
            PROMPT,
            make_entries(120),
            fast_settings(batch_size=50, parallel_requests=2, max_retries=1, continue_on_error=True),
            on_error=errors.append,
        )

        assert report.error_message is None
        assert report.progress.translated_entries == 70
        assert report.progress.is_partial is True
        assert report.progress.can_continue is True
        assert errors[0].progress.can_continue is True
        assert backend.batches_for(101) == 1

    async def test_zero_retries(self, make_orchestrator):
        backend = FakeLLM(failures={1: 1})
        orchestrator = make_orchestrator(backend)
        retries = []

        report = await orchestrator.translate_all_batched(
            PROMPT, make_entries(10), fast_settings(max_retries=0), on_retry=retries.append
        )

        assert retries == []
        assert report.error_message == f"Translation failed after 0 retries: {UPSTREAM_ERROR}"
        assert report.translations == []

    async def test_auto_continue_disabled_stops_after_first_group(self, make_orchestrator):
        backend = FakeLLM()
        orchestrator = make_orchestrator(backend)

        report = await orchestrator.translate_all_batched(
            PROMPT, make_entries(120), fast_settings(batch_size=50, auto_continue=False)
        )

        assert len(backend.requests) == 1
        assert report.error_message is None
        assert report.progress.translated_entries == 50
        assert report.progress.last_translated_index == 50
        assert report.progress.is_partial is True
        assert report.progress.can_continue is True

    async def test_unknown_and_duplicate_indices_are_discarded(self, make_orchestrator):
        def transform(pairs):
            return echo(pairs) + f"\n999|ghost\n{pairs[0][0]}|duplicate"

        orchestrator = make_orchestrator(FakeLLM(transform=transform))

        report = await orchestrator.translate_all_batched(PROMPT, make_entries(5), fast_settings())

        assert [entry.index for entry in report.translations] == [1, 2, 3, 4, 5]
        assert report.translations[0].text == "line 1"

    async def test_reply_with_only_foreign_indices_is_retried(self, make_orchestrator):
        def transform(pairs):
            return "\n".join(f"{index + 1000}|x" for index, _ in pairs)

        backend = FakeLLM(transform=transform)
        orchestrator = make_orchestrator(backend)
        retries = []

        report = await orchestrator.translate_all_batched(
            PROMPT, make_entries(3), fast_settings(max_retries=2), on_retry=retries.append
        )

        assert len(backend.requests) == 3
        assert [retry.attempt for retry in retries] == [1, 2]
        assert report.error_message == (
            "Translation failed after 2 retries: Failed to parse translation response"
        )
        assert report.translations == []

    async def test_tag_mismatch_is_retried(self, make_orchestrator):
        calls = []

        def transform(pairs):
            calls.append(pairs)
            if len(calls) == 1:
                return "\n".join(f"{index}|plain" for index, _ in pairs)
            return echo(pairs)

        orchestrator = make_orchestrator(FakeLLM(transform=transform))
        entries = [Entry(1, r"{\i1}Hello{\i0}"), Entry(2, "World")]
        retries = []

        report = await orchestrator.translate_all_batched(
            PROMPT, entries, fast_settings(), on_retry=retries.append
        )

        assert len(retries) == 1
        assert "incompatible ASS tags" in retries[0].error_message
        assert report.translations == [Entry(1, r"{\i1}Hello{\i0}"), Entry(2, "World")]

    async def test_drop_entry_policy_in_batch_mode(self, make_orchestrator):
        def transform(pairs):
            return "\n".join(f"{index}|plain" for index, _ in pairs)

        orchestrator = make_orchestrator(FakeLLM(transform=transform))
        entries = [Entry(1, r"{\i1}Hello{\i0}"), Entry(2, "World")]
        retries = []

        report = await orchestrator.translate_all_batched(
            PROMPT,
            entries,
            fast_settings(tag_mismatch_policy=TagMismatchPolicy.DROP_ENTRY),
            on_retry=retries.append,
        )

        assert retries == []
        assert report.translations == [Entry(2, "plain")]
        assert report.progress.is_partial is True

    async def test_streaming_mode_emits_entries(self, make_orchestrator):
        backend = FakeLLM()
        orchestrator = make_orchestrator(backend)
        events: asyncio.Queue = asyncio.Queue()
        received = []

        report = await orchestrator.translate_all_batched(
            PROMPT,
            make_entries(5),
            fast_settings(batch_size=2, parallel_requests=2, streaming=True),
            on_entry=received.append,
            events=events,
        )

        assert [entry.index for entry in report.translations] == [1, 2, 3, 4, 5]
        assert all(isinstance(event, TranslatedEntryEvent) for event in received)
        assert sorted(event.index for event in received) == [1, 2, 3, 4, 5]
        assert {event.text for event in received} >= {"FR:line 1", "FR:line 5"}

        emitted = drain(events)
        assert sum(isinstance(event, EntryEvent) for event in emitted) == 5
        assert sum(isinstance(event, ProgressEvent) for event in emitted) == 2

    async def test_streaming_mode_drops_incompatible_entries(self, make_orchestrator):
        def transform(pairs):
            return "\n".join(
                f"{index}|{'plain' if index == 1 else text}" for index, text in pairs
            )

        orchestrator = make_orchestrator(FakeLLM(transform=transform))
        entries = [Entry(1, r"{\b1}Bold"), Entry(2, "Two"), Entry(3, "Three")]

        report = await orchestrator.translate_all_batched(
            PROMPT, entries, fast_settings(streaming=True)
        )

        assert [entry.index for entry in report.translations] == [2, 3]
        assert report.progress.is_partial is True

    async def test_cancellation_between_groups(self, make_orchestrator):
        backend = FakeLLM()
        orchestrator = make_orchestrator(backend)

        def on_progress(progress):
            orchestrator.cancel("user pressed stop")

        with pytest.raises(TranslationCancelledError) as exc_info:
            await orchestrator.translate_all_batched(
                PROMPT, make_entries(120), fast_settings(batch_size=50), on_progress=on_progress
            )

        error = exc_info.value
        assert len(backend.requests) == 1
        assert len(error.translations) == 50
        assert error.progress.translated_entries == 50
        assert error.progress.is_partial is True

    async def test_cancellation_during_retry_backoff(self, make_orchestrator):
        backend = FakeLLM(failures={51: 5})
        orchestrator = make_orchestrator(backend)

        def on_retry(retry: RetryEvent):
            orchestrator.cancel()

        with pytest.raises(TranslationCancelledError) as exc_info:
            await orchestrator.translate_all_batched(
                PROMPT,
                make_entries(120),
                fast_settings(batch_size=50, parallel_requests=2),
                on_retry=on_retry,
            )

        assert backend.batches_for(51) == 1
        assert [entry.index for entry in exc_info.value.translations] == list(range(1, 51))

    async def test_cancellation_keeps_batches_finished_in_flight(self, make_orchestrator):
        backend = FakeLLM(delay=lambda pairs: 0.05)
        orchestrator = make_orchestrator(backend)

        run = asyncio.create_task(
            orchestrator.translate_all_batched(
                PROMPT, make_entries(40), fast_settings(batch_size=10, parallel_requests=2)
            )
        )
        await asyncio.sleep(0.01)
        orchestrator.cancel("user pressed stop")

        with pytest.raises(TranslationCancelledError) as exc_info:
            await run

        error = exc_info.value
        assert len(backend.requests) == 2
        assert [entry.index for entry in error.translations] == list(range(1, 21))
        assert error.progress.translated_entries == 20
        assert error.progress.is_partial is True

    async def test_configuration_error_before_any_request(self, make_orchestrator):
        backend = FakeLLM()
        orchestrator = make_orchestrator(backend, model=" ")

        with pytest.raises(LLMConfigurationError):
            await orchestrator.translate_all_batched(PROMPT, make_entries(3), fast_settings())
        assert backend.requests == []

    async def test_iter_events_ends_with_report(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeLLM())

        items = [
            item
            async for item in orchestrator.iter_events(
                PROMPT, make_entries(30), fast_settings(batch_size=10, parallel_requests=2)
            )
        ]

        assert [item.kind for item in items[:-1]] == ["progress", "progress"]
        assert isinstance(items[-1], TranslationBatchReport)
        assert items[-1].progress.translated_entries == 30

    async def test_closing_iter_events_stops_the_run(self, make_orchestrator):
        backend = FakeLLM(delay=lambda pairs: 0.01)
        orchestrator = make_orchestrator(backend)

        events = orchestrator.iter_events(
            PROMPT, make_entries(30), fast_settings(batch_size=10)
        )
        first = await events.__anext__()
        await events.aclose()

        assert first.kind == "progress"
        assert orchestrator.cancel_token.is_cancelled
        current = asyncio.current_task()
        assert all(task.done() for task in asyncio.all_tasks() if task is not current)
        assert len(backend.requests) < 3


class TestTranslateBatch:
    async def test_translates_next_batch(self, make_orchestrator):
        backend = FakeLLM()
        orchestrator = make_orchestrator(backend)

        result = await orchestrator.translate_batch(PROMPT, make_entries(10), 4, 3)

        assert [entry.index for entry in result.translations] == [4, 5, 6]
        assert backend.requests == [[(4, "line 4"), (5, "line 5"), (6, "line 6")]]
        assert result.progress.translated_entries == 6
        assert result.progress.last_translated_index == 6
        assert result.progress.is_partial is True
        assert result.progress.can_continue is True

    async def test_empty_selection(self, make_orchestrator):
        backend = FakeLLM()
        orchestrator = make_orchestrator(backend)

        result = await orchestrator.translate_batch(PROMPT, make_entries(10), 11, 5)

        assert result.translations == []
        assert backend.requests == []
        assert result.progress.translated_entries == 10
        assert result.progress.last_translated_index == 10
        assert result.progress.is_partial is False
        assert result.progress.can_continue is False

    async def test_resuming_matches_uninterrupted_run(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeLLM())
        entries = make_entries(23)

        merged = []
        start = 1
        while True:
            result = await orchestrator.translate_batch(PROMPT, entries, start, 10)
            merged.extend(result.translations)
            if not result.progress.can_continue:
                break
            start = result.progress.last_translated_index + 1

        full = await orchestrator.translate_all_batched(
            PROMPT, entries, fast_settings(batch_size=10)
        )

        assert sorted(merged) == full.translations

    async def test_continue_translation_merges(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeLLM())
        previous = [Entry(1, "vieux 1"), Entry(2, "vieux 2"), Entry(3, "vieux 3")]

        result = await orchestrator.continue_translation(
            PROMPT, make_entries(6), previous, start_index=3, batch_size=2
        )

        assert result.translations == [
            Entry(1, "vieux 1"),
            Entry(2, "vieux 2"),
            Entry(3, "FR:line 3"),
            Entry(4, "FR:line 4"),
        ]
        assert result.progress.translated_entries == 4
        assert result.progress.last_translated_index == 4
        assert result.progress.can_continue is True


class TestSingleRequest:
    async def test_translate_is_one_raw_round_trip(self, make_orchestrator):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=openai_reply("Salut"))

        orchestrator = make_orchestrator(handler)

        assert await orchestrator.translate("Say hi in French.", "") == "Salut"
        assert await orchestrator.translate_text("Translate:", "Hi") == "Salut"
        assert len(calls) == 2

    async def test_translate_subtitles_rejects_lost_tags(self, make_orchestrator):
        def transform(pairs):
            return "\n".join(f"{index}|plain" for index, _ in pairs)

        orchestrator = make_orchestrator(FakeLLM(transform=transform))

        with pytest.raises(TagMismatchError):
            await orchestrator.translate_subtitles(PROMPT, [Entry(1, r"{\i1}Hi")])

    async def test_translate_subtitles_with_only_unknown_indices_fails(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeLLM(transform=lambda pairs: "999|ghost"))

        with pytest.raises(ResponseDecodeError):
            await orchestrator.translate_subtitles(PROMPT, make_entries(3))

    async def test_streaming_skips_empty_batches(self, make_orchestrator):
        def transform(pairs):
            if pairs[0][0] == 3:
                return "I cannot translate this."
            return echo(pairs)

        orchestrator = make_orchestrator(FakeLLM(transform=transform))
        received = []

        translations = await orchestrator.translate_subtitles_streaming(
            PROMPT, make_entries(5), batch_size=2, on_entry=received.append
        )

        assert [entry.index for entry in translations] == [1, 2, 5]
        assert [event.index for event in received] == [1, 2, 5]

    async def test_streaming_with_no_output_fails(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeLLM(transform=lambda pairs: "nothing useful"))

        with pytest.raises(ResponseDecodeError):
            await orchestrator.translate_subtitles_streaming(PROMPT, make_entries(3), batch_size=2)
