"""Translation pipeline for a single batch.

This module provides the TranslationPipeline class that coordinates all
pipeline components for one request:

    entries -> PromptEngine -> LLMGateway -> OutputProcessor -> tag validation

Batch mode makes one request and decodes the full reply. Streaming mode
decodes the reply line by line and hands each entry to a callback as soon as
it is complete.
"""

import logging
from typing import Callable, List, Optional, Sequence

from subtitle_translator.core.cancellation import CancellationToken, check_cancelled
from subtitle_translator.core.llm.gateway import UnifiedLLMGateway
from subtitle_translator.errors import ResponseDecodeError

from ..models.entry import Entry
from ..models.settings import TagMismatchPolicy
from .output_processor import OutputProcessor
from .prompt_engine import PromptEngine
from .stream_processor import StreamProcessor
from .tag_validator import ensure_tags_preserved, find_mismatches

logger = logging.getLogger(__name__)

EntryCallback = Callable[[Entry], None]


def correlate(originals: Sequence[Entry], translations: Sequence[Entry]) -> List[Entry]:
    """Keep only the first translation for each index present in ``originals``."""
    known = {entry.index for entry in originals}
    seen = set()
    correlated = []
    for entry in translations:
        if entry.index not in known or entry.index in seen:
            logger.warning(f"Ignoring translation for unexpected index #{entry.index}")
            continue
        seen.add(entry.index)
        correlated.append(entry)
    return correlated


class TranslationPipeline:
    """Translates one batch of entries through a gateway.

    Args:
        gateway: Configured LLM gateway
    """

    def __init__(self, gateway: UnifiedLLMGateway):
        self.gateway = gateway
        self.output_processor = OutputProcessor()

    async def translate_entries(
        self,
        system_prompt: str,
        entries: Sequence[Entry],
        *,
        tag_policy: TagMismatchPolicy = TagMismatchPolicy.REJECT_BATCH,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Entry]:
        """Translate a batch with one request/response round trip.

        Raises:
            LLMTransportError: On HTTP failures
            ResponseDecodeError: If no usable line came back
            TagMismatchError: If any line lost its tags under REJECT_BATCH
        """
        check_cancelled(cancel_token)
        instruction, payload = PromptEngine.build(system_prompt, entries)

        content = await self.gateway.translate(instruction, payload)
        results = correlate(entries, self.output_processor.process(content))
        if not results:
            raise ResponseDecodeError("Failed to parse translation response")

        return self._apply_tag_policy(entries, results, tag_policy)

    async def translate_entries_streaming(
        self,
        system_prompt: str,
        entries: Sequence[Entry],
        *,
        on_entry: Optional[EntryCallback] = None,
        tag_policy: TagMismatchPolicy = TagMismatchPolicy.DROP_ENTRY,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Entry]:
        """Translate a batch over a streamed response.

        Under DROP_ENTRY each entry is passed to ``on_entry`` the moment its
        line completes. Under REJECT_BATCH the whole batch must validate
        first, so entries are passed on only after the stream ends.

        Raises:
            ResponseDecodeError: If the stream produced no usable line
            TagMismatchError: If any line lost its tags under REJECT_BATCH
            TranslationCancelledError: If cancelled while reading the stream
        """
        check_cancelled(cancel_token)
        instruction, payload = PromptEngine.build(system_prompt, entries)

        emit_immediately = tag_policy == TagMismatchPolicy.DROP_ENTRY
        processor = StreamProcessor(entries, drop_incompatible=emit_immediately)
        results: List[Entry] = []

        def collect(decoded: List[Entry]) -> None:
            for entry in decoded:
                results.append(entry)
                if emit_immediately and on_entry is not None:
                    on_entry(entry)

        async for fragment in self.gateway.stream(instruction, payload, cancel_token):
            collect(processor.feed(fragment))
        collect(processor.finish())

        if not results:
            raise ResponseDecodeError("Failed to parse streaming translation response")

        if not emit_immediately:
            ensure_tags_preserved(entries, results)
            if on_entry is not None:
                for entry in results:
                    on_entry(entry)

        return results

    def _apply_tag_policy(
        self,
        entries: Sequence[Entry],
        results: List[Entry],
        tag_policy: TagMismatchPolicy,
    ) -> List[Entry]:
        if tag_policy == TagMismatchPolicy.REJECT_BATCH:
            ensure_tags_preserved(entries, results)
            return results

        mismatched = {index for index, _, _ in find_mismatches(entries, results)}
        if mismatched:
            logger.warning(
                f"Dropping {len(mismatched)} entries with mismatched override tags: "
                f"{sorted(mismatched)[:10]}"
            )
        kept = [entry for entry in results if entry.index not in mismatched]
        if not kept:
            raise ResponseDecodeError("No translated line kept its override tags")
        return kept
