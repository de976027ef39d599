"""Server-sent event decoding for streamed completions.

Both dialects stream ``data: <json>`` frames separated by blank lines:

- OpenAI: ``{"choices": [{"delta": {"content": "..."}}]}``, terminated by
  the literal frame ``data: [DONE]``
- Anthropic: ``{"type": "content_block_delta", "delta": {"text": "..."}}``,
  terminated by a ``message_stop`` event

The decoder turns raw body bytes into the text fragments carried by those
frames. Bytes may arrive split anywhere, including inside a UTF-8 sequence.
"""

import codecs
import json
import logging
from typing import Any, List

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"


class ServerSentEventDecoder:
    """Incremental ``text/event-stream`` decoder.

    Usage:
        decoder = ServerSentEventDecoder()
        async for chunk in response.aiter_bytes():
            for fragment in decoder.feed(chunk):
                ...
        for fragment in decoder.flush():
            ...
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, chunk: bytes) -> List[str]:
        """Consume a chunk of body bytes and return completed text fragments."""
        self._buffer += self._decoder.decode(chunk)
        fragments: List[str] = []

        while True:
            newline_pos = self._buffer.find("\n")
            if newline_pos == -1:
                break
            line = self._buffer[:newline_pos]
            self._buffer = self._buffer[newline_pos + 1 :]
            fragments.extend(self._process_line(line))

        return fragments

    def flush(self) -> List[str]:
        """Process whatever is left once the body ends."""
        self._buffer += self._decoder.decode(b"", final=True)
        line, self._buffer = self._buffer, ""
        return self._process_line(line)

    def _process_line(self, raw_line: str) -> List[str]:
        line = raw_line.strip()
        if not line or not line.startswith(DATA_PREFIX):
            # Blank separators, "event:" names, ids and comments carry no text
            return []

        payload = line[len(DATA_PREFIX) :].strip()
        if payload == DONE_MARKER:
            self.done = True
            return []

        try:
            frame = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed SSE frame: {payload[:200]!r}")
            return []

        return self._extract_fragments(frame)

    def _extract_fragments(self, frame: Any) -> List[str]:
        if not isinstance(frame, dict):
            return []

        frame_type = frame.get("type")
        if frame_type == "message_stop":
            self.done = True
            return []
        if frame_type == "content_block_delta":
            delta = frame.get("delta") or {}
            text = delta.get("text") if isinstance(delta, dict) else None
            return [text] if isinstance(text, str) and text else []

        fragments = []
        for choice in frame.get("choices") or []:
            if not isinstance(choice, dict):
                continue
            delta = choice.get("delta") or {}
            content = delta.get("content") if isinstance(delta, dict) else None
            if isinstance(content, str) and content:
                fragments.append(content)
        return fragments
