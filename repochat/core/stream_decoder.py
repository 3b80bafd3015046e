# repochat/core/stream_decoder.py
"""
Server-sent-event decoders for streamed completions.

Each decoder is fed raw body chunks as they arrive and returns the text
tokens completed by that chunk. Lines are framed on ``\\n``; an incomplete
trailing line is held back until the next chunk (or ``flush()`` at end of
stream), and UTF-8 sequences split across chunks are decoded incrementally.
Only ``data: `` lines are considered. A payload that is not valid JSON is
logged and skipped without aborting the stream.
"""
import codecs
import json
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional

from loguru import logger

DATA_PREFIX = "data: "

class StreamDecoder(ABC):
    """Base class handling line framing. Subclasses extract tokens from payloads."""
    name: str = "unnamed"

    def __init__(self):
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.done = False # Set once the provider's end-of-stream sentinel is seen
        self.skipped_events = 0

    def decode(self, chunk: bytes) -> List[str]:
        """Decodes one body chunk, returning any tokens it completes."""
        text = self._pending + self._utf8.decode(chunk)
        lines = text.split("\n")
        self._pending = lines.pop() # Empty when the chunk ended on a line break
        return self._decode_lines(lines)

    def flush(self) -> List[str]:
        """Decodes whatever is left once the body has ended."""
        tail = self._pending + self._utf8.decode(b"", final=True)
        self._pending = ""
        return self._decode_lines([tail])

    def _decode_lines(self, lines: Iterable[str]) -> List[str]:
        tokens: List[str] = []
        for raw_line in lines:
            line = raw_line.rstrip("\r")
            if not line.strip() or not line.startswith(DATA_PREFIX):
                continue
            if self.done:
                logger.trace(f"[{self.name}] Ignoring event after end of stream.")
                continue

            data = line[len(DATA_PREFIX):]
            token = self._handle_data(data)
            if token:
                tokens.append(token)
        return tokens

    def _handle_data(self, data: str) -> Optional[str]:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            self.skipped_events += 1
            logger.warning(f"[{self.name}] Failed to parse stream event: {e}")
            return None
        return self.extract_token(payload)

    @abstractmethod
    def extract_token(self, payload: Any) -> Optional[str]:
        """Returns the text delta carried by one parsed event, if any."""
        pass

class OpenAIStreamDecoder(StreamDecoder):
    """Chat-completions stream: ``choices[0].delta.content``, ended by ``[DONE]``."""
    name = "openai"
    DONE_SENTINEL = "[DONE]"

    def _handle_data(self, data: str) -> Optional[str]:
        if data.strip() == self.DONE_SENTINEL:
            self.done = True
            return None
        return super()._handle_data(data)

    def extract_token(self, payload: Any) -> Optional[str]:
        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not choices or not isinstance(choices, list):
            return None
        delta = choices[0].get("delta") if isinstance(choices[0], dict) else None
        if not isinstance(delta, dict):
            return None
        content = delta.get("content")
        return content if isinstance(content, str) else None

class AnthropicStreamDecoder(StreamDecoder):
    """Messages stream: text from ``content_block_delta`` events, everything else ignored."""
    name = "anthropic"

    def extract_token(self, payload: Any) -> Optional[str]:
        if not isinstance(payload, dict):
            return None
        event_type = payload.get("type")
        if event_type == "content_block_delta":
            delta = payload.get("delta") or {}
            text = delta.get("text") if isinstance(delta, dict) else None
            return text if isinstance(text, str) else None
        if event_type == "message_stop":
            self.done = True
        elif event_type == "error":
            logger.warning(f"[{self.name}] Provider reported a stream error event: {payload.get('error')}")
        return None
