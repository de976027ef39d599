"""Translation pipeline components.

This module provides the core pipeline components for translation:
- PromptEngine: Encodes entries as ``INDEX|TEXT`` lines with protocol rules
- OutputProcessor: Decodes complete model responses
- StreamProcessor: Decodes streamed model responses line by line
- tag_validator: Override-tag compatibility checks
- TranslationPipeline: Runs one batch through the gateway
"""

from .output_processor import OutputProcessor, ResponseParser, strip_think_blocks
from .pipeline import TranslationPipeline, correlate
from .prompt_engine import NEWLINE_PLACEHOLDER, PromptEngine
from .stream_processor import StreamLineAssembler, StreamProcessor
from .tag_validator import (
    ensure_tags_preserved,
    extract_tags,
    find_mismatches,
    normalize_tag,
    tags_compatible,
)

__all__ = [
    "NEWLINE_PLACEHOLDER",
    "PromptEngine",
    "OutputProcessor",
    "ResponseParser",
    "strip_think_blocks",
    "StreamLineAssembler",
    "StreamProcessor",
    "extract_tags",
    "normalize_tag",
    "tags_compatible",
    "find_mismatches",
    "ensure_tags_preserved",
    "TranslationPipeline",
    "correlate",
]
