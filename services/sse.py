"""
Server-sent event framing for streamed lesson text.

Producers emit ``data: {"type": "text"|"error"|"done", ...}`` frames;
``StreamAccumulator`` is the matching consumer used by clients and tests.
"""
import codecs
import json
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional, Union

from services.lesson_format import sanitize_lesson_body

DATA_PREFIX = "data: "
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_event(payload: Dict[str, Any]) -> str:
    return f"{DATA_PREFIX}{json.dumps(payload, ensure_ascii=False)}\n\n"


async def text_event_stream(deltas: AsyncIterable[str]) -> AsyncIterator[str]:
    """Wrap text deltas as SSE frames, always ending with a done or error frame."""
    try:
        async for content in deltas:
            if content:
                yield encode_event({"type": "text", "content": content})
    except Exception as e:
        detail = getattr(e, "detail", None) or str(e) or "Streaming error"
        yield encode_event({"type": "error", "error": detail})
        return
    yield encode_event({"type": "done"})


class StreamAccumulator:
    """
    Incremental consumer for ``data:`` frames.

    Chunks may split lines anywhere, including inside a multi-byte UTF-8
    sequence; partial input is buffered until its newline arrives. Lines that
    are not valid JSON frames are ignored.
    """

    def __init__(self):
        self._pending = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._parts: List[str] = []
        self.error: Optional[str] = None
        self.done = False
        self.frames_seen = 0

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def has_visible_text(self) -> bool:
        """True once any non-whitespace text has arrived."""
        return any(part.strip() for part in self._parts)

    def _decode(self, chunk: Union[bytes, str]) -> str:
        if isinstance(chunk, str):
            return chunk
        return self._decoder.decode(chunk)

    def feed(self, chunk: Union[bytes, str]) -> None:
        if self.done:
            return
        self._pending += self._decode(chunk)
        lines = self._pending.split("\n")
        self._pending = lines.pop()
        for line in lines:
            self._handle_line(line)
            if self.done:
                break

    def close(self) -> None:
        """Flush a final line that arrived without a trailing newline."""
        if self._pending and not self.done:
            self._handle_line(self._pending)
        self._pending = ""

    def _handle_line(self, line: str) -> None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return
        try:
            frame = json.loads(line[len(DATA_PREFIX):])
        except ValueError:
            return
        if not isinstance(frame, dict):
            return

        self.frames_seen += 1
        frame_type = frame.get("type")
        if frame_type == "text":
            content = frame.get("content")
            if isinstance(content, str):
                self._parts.append(content)
        elif frame_type == "error":
            self.error = str(frame.get("error") or "Streaming error")
        elif frame_type == "done":
            self.done = True

    def final_text(self) -> str:
        return sanitize_lesson_body(self.text)


async def consume_stream(chunks: AsyncIterable[Union[bytes, str]]) -> StreamAccumulator:
    """Drive ``chunks`` into a fresh accumulator, stopping at the done frame."""
    accumulator = StreamAccumulator()
    async for chunk in chunks:
        accumulator.feed(chunk)
        if accumulator.done:
            break
    accumulator.close()
    return accumulator
