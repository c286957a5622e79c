"""Tests for streaming calls of InstrumentedOpenAIClient."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from opentelemetry import trace
from opentelemetry.trace import StatusCode

from openai_instrumentation.client import (
    InstrumentedOpenAIClient,
    to_chat_chunks,
    to_completion_chunks,
)
from openai_instrumentation.models import (
    ChatCompletionsOptions,
    ChatMessage,
    CompletionsOptions,
)
from openai_instrumentation.telemetry.scope import CANCELLED_ERROR_TYPE


@pytest.fixture
def client(settings, tracer, metric_recorder):
    settings.record_content = True
    return InstrumentedOpenAIClient(settings, tracer, metric_recorder, client=MagicMock())


def _make_raw_chunk(content=None, role=None, finish_reason=None, index=0,
                    model="gpt-test-2024", chunk_id="chatcmpl-1"):
    """Build a raw OpenAI SDK streaming chunk (SimpleNamespace-based)."""
    delta = SimpleNamespace(content=content, role=role)
    choice = SimpleNamespace(delta=delta, finish_reason=finish_reason, index=index)
    return SimpleNamespace(id=chunk_id, model=model, choices=[choice])


def _make_mock_stream(chunks, error=None):
    """Create an async iterator that yields raw chunks, wrapped in a coroutine."""
    async def _stream():
        for c in chunks:
            yield c
        if error is not None:
            raise error

    async def mock_create(*args, **kwargs):
        return _stream()

    return mock_create


async def _collect_chunks(gen):
    """Collect all chunks from an async generator into a list."""
    result = []
    async for chunk in gen:
        result.append(chunk)
    return result


def _choice_events(span):
    return [json.loads(e.attributes["event.data"]) for e in span.events if e.name == "gen_ai.choice"]


def test_to_chat_chunks_splits_choices():
    raw = SimpleNamespace(
        id="c1",
        model="m",
        choices=[
            SimpleNamespace(index=0, delta=SimpleNamespace(role="assistant", content="a"),
                            finish_reason=None),
            SimpleNamespace(index=1, delta=SimpleNamespace(role=None, content="b"),
                            finish_reason="stop"),
        ],
    )

    chunks = to_chat_chunks(raw)

    assert [(c.choice_index, c.content, c.finish_reason) for c in chunks] == [
        (0, "a", None),
        (1, "b", "stop"),
    ]
    assert all(c.response_id == "c1" and c.model == "m" for c in chunks)


def test_to_chat_chunks_usage_only_chunk():
    raw = SimpleNamespace(id="c1", model="", choices=[], usage=SimpleNamespace(total_tokens=3))

    (chunk,) = to_chat_chunks(raw)

    assert chunk.choice_index is None
    assert chunk.model is None
    assert chunk.response_id == "c1"


def test_to_completion_chunks():
    raw = SimpleNamespace(
        id="cmpl-1", model="davinci-test",
        choices=[SimpleNamespace(index=2, text="x", finish_reason="length")],
    )

    (chunk,) = to_completion_chunks(raw)

    assert chunk.kind == "completion"
    assert (chunk.choice_index, chunk.text, chunk.finish_reason) == (2, "x", "length")


@pytest.mark.asyncio
async def test_chat_stream_yields_chunks_and_reports_once(client, chat_options, span_exporter,
                                                          read_metrics):
    chunks = [
        _make_raw_chunk(content="Hi", role="assistant"),
        _make_raw_chunk(content=" there", finish_reason="stop"),
    ]
    client._client.chat.completions.create = AsyncMock(side_effect=_make_mock_stream(chunks))

    result = await _collect_chunks(client.get_chat_completions_streaming(chat_options))

    assert "".join(c.content for c in result if c.content) == "Hi there"
    assert client._client.chat.completions.create.call_args.kwargs["stream"] is True

    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["gen_ai.response.id"] == "chatcmpl-1"
    assert span.attributes["gen_ai.response.model"] == "gpt-test-2024"
    assert span.attributes["gen_ai.response.finish_reason"] == "stop"
    assert span.attributes["gen_ai.usage.completion_tokens"] == 2
    assert _choice_events(span) == [
        {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": "Hi there"}}
    ]

    points = read_metrics()
    assert points["gen_ai.stream.start"][0].value == 1
    assert points["gen_ai.stream.end"][0].value == 1
    assert len(points["gen_ai.operation.duration"]) == 1


@pytest.mark.asyncio
async def test_chat_stream_multiple_choices(client, span_exporter):
    options = ChatCompletionsOptions(
        model="gpt-test", messages=[ChatMessage(role="user", content="x")], n=2
    )
    chunks = [
        _make_raw_chunk(content="A", role="assistant", index=0),
        _make_raw_chunk(content="B", role="assistant", index=1),
        _make_raw_chunk(finish_reason="stop", index=1),
        _make_raw_chunk(content="A2", finish_reason="length", index=0),
    ]
    client._client.chat.completions.create = AsyncMock(side_effect=_make_mock_stream(chunks))

    await _collect_chunks(client.get_chat_completions_streaming(options))

    (span,) = span_exporter.get_finished_spans()
    events = _choice_events(span)
    assert [e["index"] for e in events] == [1, 0]
    assert events[1]["message"]["content"] == "AA2"
    assert span.attributes["gen_ai.response.finish_reason"] == "length"


@pytest.mark.asyncio
async def test_chat_stream_error_mid_stream(client, chat_options, span_exporter, read_metrics):
    """Exception during streaming propagates to caller after recording."""
    chunks = [_make_raw_chunk(content="Hel", role="assistant")]
    error = ConnectionError("Connection reset")
    client._client.chat.completions.create = AsyncMock(
        side_effect=_make_mock_stream(chunks, error=error)
    )

    with pytest.raises(ConnectionError, match="Connection reset"):
        await _collect_chunks(client.get_chat_completions_streaming(chat_options))

    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["error.type"] == "ConnectionError"
    assert _choice_events(span) == [{"index": 0, "message": {"role": "assistant", "content": "Hel"}}]
    (duration,) = read_metrics()["gen_ai.operation.duration"]
    assert duration.attributes["error.type"] == "ConnectionError"


@pytest.mark.asyncio
async def test_chat_stream_create_fails(client, chat_options, span_exporter, read_metrics):
    client._client.chat.completions.create = AsyncMock(side_effect=Exception("Connection refused"))

    with pytest.raises(Exception, match="Connection refused"):
        await _collect_chunks(client.get_chat_completions_streaming(chat_options))

    assert len(span_exporter.get_finished_spans()) == 1
    assert read_metrics()["gen_ai.stream.end"][0].value == 1


@pytest.mark.asyncio
async def test_chat_stream_closed_early(client, chat_options, span_exporter, read_metrics):
    """Closing the generator before the end still reports the operation once."""
    chunks = [
        _make_raw_chunk(content="one", role="assistant"),
        _make_raw_chunk(content="two"),
        _make_raw_chunk(content="three", finish_reason="stop"),
    ]
    client._client.chat.completions.create = AsyncMock(side_effect=_make_mock_stream(chunks))

    stream = client.get_chat_completions_streaming(chat_options)
    first = await stream.__anext__()
    await stream.aclose()

    assert first.content == "one"
    (span,) = span_exporter.get_finished_spans()
    assert "error.type" not in span.attributes
    assert _choice_events(span) == [{"index": 0, "message": {"role": "assistant", "content": "one"}}]
    points = read_metrics()
    assert points["gen_ai.stream.end"][0].value == 1
    (duration,) = points["gen_ai.operation.duration"]
    assert "error.type" not in duration.attributes


@pytest.mark.asyncio
async def test_completions_stream(client, span_exporter):
    options = CompletionsOptions(model="davinci-test", prompts=["a", "b"])
    chunks = [
        SimpleNamespace(id="cmpl-1", model="davinci-test", choices=[
            SimpleNamespace(index=0, text="x", finish_reason=None),
            SimpleNamespace(index=1, text="y", finish_reason="stop"),
        ]),
        SimpleNamespace(id="cmpl-1", model="davinci-test", choices=[
            SimpleNamespace(index=0, text="z", finish_reason="stop"),
        ]),
    ]
    client._client.completions.create = AsyncMock(side_effect=_make_mock_stream(chunks))

    result = await _collect_chunks(client.get_completions_streaming(options))

    assert [c.text for c in result] == ["x", "y", "z"]
    assert client._client.completions.create.call_args.kwargs["prompt"] == ["a", "b"]
    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["gen_ai.usage.completion_tokens"] == 3
    assert span.attributes["gen_ai.response.finish_reason"] == "stop"
    assert [e["message"]["content"] for e in _choice_events(span)] == ["y", "xz"]


@pytest.mark.asyncio
async def test_chat_stream_create_runs_inside_operation_span(client, chat_options, span_exporter):
    seen = {}
    stream = _make_mock_stream([_make_raw_chunk(content="Hi", finish_reason="stop")])

    async def _create(**kwargs):
        seen["current"] = trace.get_current_span().get_span_context()
        return await stream(**kwargs)

    client._client.chat.completions.create = AsyncMock(side_effect=_create)

    await _collect_chunks(client.get_chat_completions_streaming(chat_options))

    (span,) = span_exporter.get_finished_spans()
    assert seen["current"].span_id == span.context.span_id
    assert not trace.get_current_span().get_span_context().is_valid


@pytest.mark.asyncio
async def test_chat_stream_cancelled_mid_stream(client, chat_options, span_exporter, read_metrics):
    """Cancellation while reading records the cancellation marker and re-raises."""
    chunks = [_make_raw_chunk(content="Hel", role="assistant")]
    client._client.chat.completions.create = AsyncMock(
        side_effect=_make_mock_stream(chunks, error=asyncio.CancelledError())
    )

    with pytest.raises(asyncio.CancelledError):
        await _collect_chunks(client.get_chat_completions_streaming(chat_options))

    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["error.type"] == CANCELLED_ERROR_TYPE
    assert span.status.status_code == StatusCode.ERROR
    assert _choice_events(span) == [{"index": 0, "message": {"role": "assistant", "content": "Hel"}}]
    points = read_metrics()
    assert points["gen_ai.stream.end"][0].value == 1
    (duration,) = points["gen_ai.operation.duration"]
    assert duration.attributes["error.type"] == CANCELLED_ERROR_TYPE


def _completion_chunk(index, text, finish_reason=None):
    return SimpleNamespace(id="cmpl-1", model="davinci-test", choices=[
        SimpleNamespace(index=index, text=text, finish_reason=finish_reason),
    ])


@pytest.mark.asyncio
async def test_completions_stream_error(client, span_exporter, read_metrics):
    options = CompletionsOptions(model="davinci-test", prompts=["a", "b"])
    client._client.completions.create = AsyncMock(
        side_effect=_make_mock_stream([_completion_chunk(0, "x")], error=ValueError("bad chunk"))
    )

    with pytest.raises(ValueError, match="bad chunk"):
        await _collect_chunks(client.get_completions_streaming(options))

    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["error.type"] == "ValueError"
    assert span.attributes["gen_ai.usage.completion_tokens"] == 1
    assert len(_choice_events(span)) == 2
    assert read_metrics()["gen_ai.stream.end"][0].value == 1


@pytest.mark.asyncio
async def test_completions_stream_cancelled(client, span_exporter):
    options = CompletionsOptions(model="davinci-test", prompts=["a"])
    client._client.completions.create = AsyncMock(
        side_effect=_make_mock_stream([_completion_chunk(0, "x")], error=asyncio.CancelledError())
    )

    with pytest.raises(asyncio.CancelledError):
        await _collect_chunks(client.get_completions_streaming(options))

    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["error.type"] == CANCELLED_ERROR_TYPE
    assert _choice_events(span) == [{"index": 0, "message": {"content": "x"}}]


@pytest.mark.asyncio
async def test_completions_stream_closed_early(client, span_exporter, read_metrics):
    options = CompletionsOptions(model="davinci-test", prompts=["a"])
    chunks = [_completion_chunk(0, "one"), _completion_chunk(0, "two", "stop")]
    client._client.completions.create = AsyncMock(side_effect=_make_mock_stream(chunks))

    stream = client.get_completions_streaming(options)
    first = await stream.__anext__()
    await stream.aclose()

    assert first.text == "one"
    (span,) = span_exporter.get_finished_spans()
    assert "error.type" not in span.attributes
    assert _choice_events(span) == [{"index": 0, "message": {"content": "one"}}]
    points = read_metrics()
    assert points["gen_ai.stream.end"][0].value == 1
    (duration,) = points["gen_ai.operation.duration"]
    assert "error.type" not in duration.attributes
