"""Incremental parsing of server-sent LLM response streams."""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from ai_summary.core.logging import get_logger
from ai_summary.models.providers import SummaryResult

logger = get_logger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
REASONING_KEYS = (
    "reasoning_content",
    "reasoningContent",
    "reasoning",
    "thought",
    "thoughts",
    "thinking",
    "analysis",
)


@dataclass(frozen=True)
class StreamFragment:
    """One piece of streamed model output."""

    text: str
    is_thought: bool = False


FragmentCallback = Callable[[StreamFragment], None]


def extract_fragments(payload: Any) -> list[StreamFragment]:
    """
    Classify a decoded response object and pull out its text fragments.

    Gemini native responses carry ``candidates[0].content.parts``. OpenAI
    compatible ones carry ``choices[0].delta`` when streaming and
    ``choices[0].message`` otherwise. Anything else yields no fragments.

    Args:
        payload: Decoded JSON object from one event or a whole response body

    Returns:
        Fragments in the order they should be displayed
    """
    if not isinstance(payload, dict):
        return []

    candidates = payload.get("candidates")
    if isinstance(candidates, list):
        return _gemini_fragments(candidates)

    choices = payload.get("choices")
    if isinstance(choices, list):
        return _openai_fragments(choices)

    return []


def _gemini_fragments(candidates: list[Any]) -> list[StreamFragment]:
    if not candidates or not isinstance(candidates[0], dict):
        return []
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return []

    fragments = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        text = _gemini_part_text(part)
        if text:
            fragments.append(StreamFragment(text=text, is_thought=_is_thought_part(part)))
    return fragments


def _gemini_part_text(part: dict[str, Any]) -> str:
    text = part.get("text")
    if isinstance(text, str) and text:
        return text
    thought = part.get("thought")
    if isinstance(thought, str):
        return thought
    if isinstance(thought, dict) and isinstance(thought.get("text"), str):
        return thought["text"]
    return ""


def _is_thought_part(part: dict[str, Any]) -> bool:
    thought = part.get("thought")
    if thought is True or isinstance(thought, str):
        return True
    return isinstance(thought, dict) and isinstance(thought.get("text"), str)


def _openai_fragments(choices: list[Any]) -> list[StreamFragment]:
    if not choices or not isinstance(choices[0], dict):
        return []
    choice = choices[0]
    message = choice.get("delta")
    if not isinstance(message, dict):
        message = choice.get("message")
    if not isinstance(message, dict):
        return []

    fragments = []
    for key in REASONING_KEYS:
        reasoning = message.get(key)
        if isinstance(reasoning, str) and reasoning:
            fragments.append(StreamFragment(text=reasoning, is_thought=True))
            break

    content = message.get("content")
    if not isinstance(content, str):
        content = message.get("text")
    if isinstance(content, str) and content:
        fragments.append(StreamFragment(text=content))
    return fragments


class SSEStreamParser:
    """Turns arbitrarily split response bytes into stream fragments.

    Bytes are decoded with a stateful UTF-8 decoder, so multi-byte characters
    split across chunks survive. Only complete lines are interpreted. The
    trailing partial line waits for more input or for :meth:`flush`.
    Aggregated answer and thought text is available from :meth:`result`.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._answer: list[str] = []
        self._thoughts: list[str] = []

    def feed(self, chunk: bytes) -> list[StreamFragment]:
        """Consume one chunk of bytes and return the fragments it completed."""
        return self.feed_text(self._decoder.decode(chunk))

    def feed_text(self, text: str) -> list[StreamFragment]:
        """Consume already decoded text."""
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return self._process_lines(lines)

    def flush(self) -> list[StreamFragment]:
        """
        Finish the stream and interpret whatever is left in the buffer.

        A dangling ``data:`` line is used when it holds valid JSON and dropped
        otherwise.
        """
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer.strip(), ""
        if not remainder.startswith(DATA_PREFIX):
            return []
        return self._process_lines([remainder], final=True)

    def result(self) -> SummaryResult:
        """Aggregate of every fragment seen so far."""
        thoughts = "".join(self._thoughts).strip()
        return SummaryResult(answer="".join(self._answer).strip(), thoughts=thoughts or None)

    def record(self, fragments: Iterable[StreamFragment]) -> None:
        """Add fragments obtained outside the line protocol to the aggregate."""
        for fragment in fragments:
            (self._thoughts if fragment.is_thought else self._answer).append(fragment.text)

    def _process_lines(self, lines: list[str], final: bool = False) -> list[StreamFragment]:
        fragments: list[StreamFragment] = []
        for raw_line in lines:
            line = raw_line.strip()
            if not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX) :].strip()
            if not data or data == DONE_SENTINEL:
                continue
            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                if final:
                    logger.debug("Dropping incomplete trailing stream event")
                else:
                    logger.warning(
                        "Skipping malformed stream event", extra={"event_data": data[:200]}
                    )
                continue
            fragments.extend(extract_fragments(payload))

        self.record(fragments)
        return fragments


async def iter_sse_fragments(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamFragment]:
    """
    Lazily yield fragments from an async byte stream.

    Args:
        chunks: Raw response body chunks

    Yields:
        Fragments in arrival order
    """
    parser = SSEStreamParser()
    async for chunk in chunks:
        for fragment in parser.feed(chunk):
            yield fragment
    for fragment in parser.flush():
        yield fragment


async def parse_sse_stream(
    chunks: AsyncIterable[bytes],
    on_fragment: FragmentCallback | None = None,
) -> SummaryResult:
    """
    Consume a whole event stream, forwarding fragments as they arrive.

    Raw bytes are kept until the first fragment appears. A body that never
    produces one is decoded as a single JSON response instead, which covers
    servers that label non-streaming replies as event streams.

    Args:
        chunks: Raw response body chunks
        on_fragment: Called once per fragment, in order

    Returns:
        Aggregated answer and thoughts
    """
    parser = SSEStreamParser()
    raw: bytearray | None = bytearray()
    async for chunk in chunks:
        fragments = parser.feed(chunk)
        if fragments:
            raw = None
        elif raw is not None:
            raw.extend(chunk)
        _emit(fragments, on_fragment)
    fragments = parser.flush()
    _emit(fragments, on_fragment)

    if fragments or raw is None:
        return parser.result()
    return _parse_json_body(parser, raw.decode("utf-8", errors="replace"), on_fragment)


def parse_sse_body(text: str, on_fragment: FragmentCallback | None = None) -> SummaryResult:
    """
    Parse a fully buffered response body.

    The body is first read as an event stream. If that yields no text it is
    decoded as a single non-streaming JSON response.

    Args:
        text: Entire response body
        on_fragment: Called once per fragment, in order

    Returns:
        Aggregated answer and thoughts
    """
    parser = SSEStreamParser()
    _emit(parser.feed_text(text), on_fragment)
    _emit(parser.flush(), on_fragment)
    return _parse_json_body(parser, text, on_fragment)


def _parse_json_body(
    parser: SSEStreamParser, text: str, on_fragment: FragmentCallback | None
) -> SummaryResult:
    result = parser.result()
    if result.answer or result.thoughts or not text.strip():
        return result

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Response body is neither an event stream nor JSON")
        return result

    fragments = extract_fragments(payload)
    parser.record(fragments)
    _emit(fragments, on_fragment)
    return parser.result()


def _emit(fragments: list[StreamFragment], on_fragment: FragmentCallback | None) -> None:
    if on_fragment is None:
        return
    for fragment in fragments:
        on_fragment(fragment)
