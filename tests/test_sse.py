"""
Server-sent event framing and the matching consumer.
"""
import asyncio
import json

from core.exceptions import AIServiceException
from services.sse import StreamAccumulator, consume_stream, encode_event, text_event_stream


async def _deltas(*parts, error=None):
    for part in parts:
        yield part
    if error is not None:
        raise error


async def _collect(frames):
    return [frame async for frame in frames]


def test_encode_event_keeps_unicode():
    assert encode_event({"type": "text", "content": "Größe"}) == 'data: {"type": "text", "content": "Größe"}\n\n'


def test_stream_ends_with_done():
    frames = asyncio.run(_collect(text_event_stream(_deltas("Hello", "", " world"))))

    assert [json.loads(frame[len("data: "):]) for frame in frames] == [
        {"type": "text", "content": "Hello"},
        {"type": "text", "content": " world"},
        {"type": "done"},
    ]


def test_stream_reports_errors_as_a_frame():
    failing = _deltas("partial", error=AIServiceException(detail="upstream closed"))
    frames = asyncio.run(_collect(text_event_stream(failing)))

    assert json.loads(frames[-1][len("data: "):]) == {"type": "error", "error": "upstream closed"}
    assert len(frames) == 2


def test_accumulator_handles_split_lines_and_multibyte_characters():
    payload = (encode_event({"type": "text", "content": "Über "}) + encode_event({"type": "text", "content": "alles"})
               + encode_event({"type": "done"})).encode("utf-8")
    accumulator = StreamAccumulator()

    # One byte at a time splits the two-byte "Ü" as well as every line
    for index in range(len(payload)):
        accumulator.feed(payload[index:index + 1])
    accumulator.close()

    assert accumulator.text == "Über alles"
    assert accumulator.done is True
    assert accumulator.frames_seen == 3


def test_accumulator_ignores_noise_and_stops_at_done():
    accumulator = StreamAccumulator()
    accumulator.feed(": keep-alive\n")
    accumulator.feed("data: not json\n")
    accumulator.feed('data: ["list"]\n')
    accumulator.feed('data: {"type": "text", "content": "  "}\n')
    assert accumulator.has_visible_text is False

    accumulator.feed('data: {"type": "done"}\ndata: {"type": "text", "content": "late"}\n')

    assert accumulator.text == "  "
    assert accumulator.done is True


def test_accumulator_records_errors_and_flushes_last_line():
    accumulator = StreamAccumulator()
    accumulator.feed('data: {"type": "error", "error": "boom"}')
    assert accumulator.error is None

    accumulator.close()

    assert accumulator.error == "boom"


def test_consume_stream_returns_clean_body():
    async def chunks():
        yield 'data: {"type": "text", "content": "```json\\n{\\"title\\": \\"T\\"}\\n```\\n# Title"}\n\n'
        yield 'data: {"type": "text", "content": "\\\\nBody"}\n\n'
        yield 'data: {"type": "done"}\n\n'
        yield 'data: {"type": "text", "content": "ignored"}\n\n'

    accumulator = asyncio.run(consume_stream(chunks()))

    assert accumulator.done is True
    assert accumulator.final_text() == "# Title\nBody"
