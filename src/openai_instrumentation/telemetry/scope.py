"""Telemetry lifecycle of one GenAI operation."""

from __future__ import annotations

import asyncio
import threading
import time
from contextlib import AbstractContextManager
from typing import Union

import openai
import structlog
from opentelemetry import trace
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer

from openai_instrumentation.models import (
    ChatCompletions,
    ChatCompletionsOptions,
    Completions,
    CompletionsOptions,
    Embeddings,
    EmbeddingsOptions,
    ImageGenerationOptions,
    ImageGenerations,
)
from openai_instrumentation.telemetry import events
from openai_instrumentation.telemetry.attributes import (
    ERROR_TYPE,
    GEN_AI_OPERATION_NAME,
    GEN_AI_REQUEST_MAX_TOKENS,
    GEN_AI_REQUEST_MODEL,
    GEN_AI_REQUEST_TEMPERATURE,
    GEN_AI_REQUEST_TOP_P,
    GEN_AI_RESPONSE_FINISH_REASON,
    GEN_AI_RESPONSE_ID,
    GEN_AI_RESPONSE_MODEL,
    GEN_AI_SYSTEM,
    GEN_AI_SYSTEM_OPENAI,
    GEN_AI_USAGE_COMPLETION_TOKENS,
    GEN_AI_USAGE_PROMPT_TOKENS,
    OPENAI_EMBEDDINGS_INPUT_SIZE,
    OPENAI_EMBEDDINGS_PROMPT_TOKENS,
    OPENAI_EMBEDDINGS_VECTOR_SIZE,
    OPENAI_IMAGE_COUNT,
    OPENAI_IMAGE_FORMAT,
    OPENAI_IMAGE_SIZE,
    OPENAI_PREFIXES,
    SERVER_ADDRESS,
    SERVER_PORT,
    TOKEN_TYPE_INPUT,
    TOKEN_TYPE_OUTPUT,
)
from openai_instrumentation.telemetry.metrics import MetricRecorder, TagSet

logger = structlog.get_logger()

RequestOptions = Union[
    ChatCompletionsOptions, CompletionsOptions, EmbeddingsOptions, ImageGenerationOptions
]


def _qualified_name(cls: type) -> str:
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


CANCELLED_ERROR_TYPE = _qualified_name(asyncio.CancelledError)


def get_error_type(exception: BaseException | None, canceled: bool) -> str | None:
    """Derive the ``error.type`` value for a failed operation.

    Cancellation wins, then a service-supplied error code carried by an
    ``openai.APIError``, then the exception's qualified type name.
    """
    if canceled:
        return CANCELLED_ERROR_TYPE

    if isinstance(exception, openai.APIError):
        code = exception.code
        if isinstance(code, str) and code:
            return code

    if exception is None:
        return None
    return _qualified_name(type(exception))


class OperationScope:
    """Span and metrics for one request, streaming or not.

    The span is only populated while it is recording; metrics are
    recorded regardless. Nothing here raises on behalf of telemetry and
    caller exceptions are never swallowed.
    """

    def __init__(
        self,
        tracer: Tracer,
        metrics: MetricRecorder,
        options: RequestOptions,
        operation_name: str,
        server_address: str,
        server_port: int,
        record_events: bool = False,
        record_content: bool = False,
    ) -> None:
        self._tracer = tracer
        self._metrics = metrics
        self._options = options
        self._operation_name = operation_name
        self._server_address = server_address
        self._server_port = server_port
        self._record_events = record_events
        self._record_content = record_content
        self._span: Span | None = None
        self._start_time: float | None = None
        self._disposed = False
        self._lock = threading.Lock()

    @property
    def span(self) -> Span | None:
        return self._span

    @property
    def operation_name(self) -> str:
        return self._operation_name

    @property
    def request_model(self) -> str | None:
        return self._options.model

    @property
    def record_content(self) -> bool:
        return self._record_content

    @property
    def record_events(self) -> bool:
        return self._record_events

    @property
    def is_recording(self) -> bool:
        """Whether the span is observed; gates all attribute construction."""
        return self._span is not None and self._span.is_recording()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def start(self) -> None:
        """Open the span, start timing and record request attributes."""
        name = self._operation_name
        if self.request_model:
            name = f"{name} {self.request_model}"
        self._span = self._tracer.start_span(name, kind=SpanKind.CLIENT)
        self._record_request_attributes()
        self._start_time = time.perf_counter()

        if self.is_recording and self._record_events:
            if isinstance(self._options, CompletionsOptions):
                for prompt in self._options.prompts:
                    events.record_prompt(self._span, prompt, self._record_content)
            elif isinstance(self._options, ChatCompletionsOptions):
                for message in self._options.messages:
                    events.record_request_message(self._span, message, self._record_content)

    def activate(self) -> AbstractContextManager[Span]:
        """Make the span current inside a with-block, leaving it open on exit.

        Failures are recorded by fail(), so the context manager does not
        record exceptions or set the status itself.
        """
        return trace.use_span(
            self._span or trace.INVALID_SPAN,
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        )

    def _openai_attribute(self, name: str) -> str:
        return f"{OPENAI_PREFIXES[self._operation_name]}.{name}"

    def _record_request_attributes(self) -> None:
        if not self.is_recording:
            return
        span = self._span
        options = self._options
        span.set_attribute(GEN_AI_SYSTEM, GEN_AI_SYSTEM_OPENAI)
        if options.model is not None:
            span.set_attribute(GEN_AI_REQUEST_MODEL, options.model)
        span.set_attribute(SERVER_ADDRESS, self._server_address)
        span.set_attribute(SERVER_PORT, self._server_port)
        span.set_attribute(GEN_AI_OPERATION_NAME, self._operation_name)

        if isinstance(options, (ChatCompletionsOptions, CompletionsOptions)):
            if options.max_tokens is not None:
                span.set_attribute(GEN_AI_REQUEST_MAX_TOKENS, options.max_tokens)
            if options.temperature is not None:
                span.set_attribute(GEN_AI_REQUEST_TEMPERATURE, float(options.temperature))
            if options.top_p is not None:
                span.set_attribute(GEN_AI_REQUEST_TOP_P, float(options.top_p))

            sampling = (
                ("temperature", options.temperature),
                ("max_tokens", options.max_tokens),
                ("top_p", options.top_p),
                ("presence_penalty", options.presence_penalty),
                ("frequency_penalty", options.frequency_penalty),
            )
            for name, value in sampling:
                if value is not None:
                    span.set_attribute(self._openai_attribute(f"request.{name}"), value)
        elif isinstance(options, EmbeddingsOptions):
            span.set_attribute(OPENAI_EMBEDDINGS_INPUT_SIZE, len(options.input))
        elif isinstance(options, ImageGenerationOptions):
            span.set_attribute(OPENAI_IMAGE_COUNT, options.n or 1)
            if options.size is not None:
                span.set_attribute(OPENAI_IMAGE_SIZE, options.size)
            if options.response_format is not None:
                span.set_attribute(OPENAI_IMAGE_FORMAT, options.response_format)

    def record_chat_completions(self, result: ChatCompletions) -> None:
        """Record a buffered chat completions response."""
        if self.is_recording and self._record_events:
            for choice in result.choices:
                events.record_choice(
                    self._span,
                    choice.index,
                    choice.finish_reason,
                    choice.message.role,
                    choice.message.content,
                    choice.message.tool_calls,
                    self._record_content,
                )
        self._record_buffered_response(result)

    def record_completions(self, result: Completions) -> None:
        """Record a buffered completions response."""
        if self.is_recording and self._record_events:
            for choice in result.choices:
                events.record_choice(
                    self._span,
                    choice.index,
                    choice.finish_reason,
                    None,
                    choice.text,
                    None,
                    self._record_content,
                )
        self._record_buffered_response(result)

    def _record_buffered_response(self, result: ChatCompletions | Completions) -> None:
        usage = result.usage
        prompt_tokens = usage.prompt_tokens if usage else None
        completion_tokens = usage.completion_tokens if usage else None
        finish_reasons = [choice.finish_reason for choice in result.choices]

        if self.is_recording:
            self.record_response(
                result.id,
                result.model,
                finish_reasons[0] if finish_reasons else None,
                prompt_tokens,
                completion_tokens,
            )
            self._record_created_at(result.created)
            if finish_reasons:
                self._span.set_attribute(
                    self._openai_attribute("response.finish_reasons"),
                    [reason or "" for reason in finish_reasons],
                )

        self.record_metrics(result.model, None, prompt_tokens, completion_tokens)
        self._metrics.record_choices(finish_reasons, self.metric_tags(result.model, None))

    def record_embeddings(self, result: Embeddings) -> None:
        """Record a buffered embeddings response."""
        prompt_tokens = result.usage.prompt_tokens if result.usage else None

        if self.is_recording:
            self.record_response(None, result.model, None, prompt_tokens, None)
            self._span.set_attribute(OPENAI_EMBEDDINGS_VECTOR_SIZE, len(result.data))
            if prompt_tokens is not None:
                self._span.set_attribute(OPENAI_EMBEDDINGS_PROMPT_TOKENS, prompt_tokens)

        self.record_metrics(result.model, None, prompt_tokens, None)
        self._metrics.record_embedding_vectors(len(result.data), self.metric_tags(result.model, None))

    def record_image_generations(self, result: ImageGenerations) -> None:
        """Record a buffered image generations response."""
        if self.is_recording:
            self._record_created_at(result.created)
        self.record_metrics(None, None, None, None)

    def _record_created_at(self, created: int | None) -> None:
        # unix seconds on the wire, milliseconds on the span
        if created is not None:
            self._span.set_attribute(self._openai_attribute("response.created_at"), created * 1000)

    def record_streaming_response(
        self,
        response_id: str | None,
        model: str | None,
        finish_reason: str | None,
        completion_tokens: int | None,
        exception: BaseException | None = None,
        canceled: bool = False,
    ) -> None:
        """Record the aggregated outcome of a streaming operation."""
        error_type = get_error_type(exception, canceled)
        if self.is_recording:
            self.record_response(response_id, model, finish_reason, None, completion_tokens)
            if error_type is not None:
                self._mark_failed(exception, error_type)

        self.record_metrics(model, error_type, None, completion_tokens)

    def record_response(
        self,
        response_id: str | None,
        model: str | None,
        finish_reason: str | None,
        prompt_tokens: int | None,
        completion_tokens: int | None,
    ) -> None:
        """Write response attributes to the span (only while recording)."""
        if not self.is_recording:
            return
        span = self._span
        if response_id is not None:
            span.set_attribute(GEN_AI_RESPONSE_ID, response_id)
        if model is not None:
            span.set_attribute(GEN_AI_RESPONSE_MODEL, model)
        if finish_reason is not None:
            span.set_attribute(GEN_AI_RESPONSE_FINISH_REASON, finish_reason)
        if prompt_tokens is not None:
            span.set_attribute(GEN_AI_USAGE_PROMPT_TOKENS, prompt_tokens)
        if completion_tokens is not None:
            span.set_attribute(GEN_AI_USAGE_COMPLETION_TOKENS, completion_tokens)

    def record_metrics(
        self,
        response_model: str | None,
        error_type: str | None,
        prompt_tokens: int | None,
        completion_tokens: int | None,
    ) -> None:
        """Record duration and token usage histograms.

        Independent of whether the span is recording.
        """
        tags = self.metric_tags(response_model, error_type)

        if prompt_tokens is not None:
            self._metrics.record_token_usage(prompt_tokens, TOKEN_TYPE_INPUT, tags)
        if completion_tokens is not None:
            self._metrics.record_token_usage(completion_tokens, TOKEN_TYPE_OUTPUT, tags)

        self._metrics.record_duration(self.elapsed(), tags)

    def fail(self, exception: BaseException | None, canceled: bool = False) -> None:
        """Record a failed operation in metrics and on the span."""
        error_type = get_error_type(exception, canceled)
        self.record_metrics(None, error_type, None, None)
        self._mark_failed(exception, error_type)
        logger.debug(
            "operation_failed",
            operation=self._operation_name,
            model=self.request_model,
            error_type=error_type,
        )

    def _mark_failed(self, exception: BaseException | None, error_type: str | None) -> None:
        if not self.is_recording:
            return
        if error_type is not None:
            self._span.set_attribute(ERROR_TYPE, error_type)
        if exception is not None and not isinstance(exception, asyncio.CancelledError):
            self._span.record_exception(exception)
            self._span.set_status(Status(StatusCode.ERROR, str(exception)))
        else:
            self._span.set_status(Status(StatusCode.ERROR, error_type))

    def record_stream_start(self) -> None:
        self._metrics.record_stream_start(self.stream_tags())

    def record_stream_end(self) -> None:
        self._metrics.record_stream_end(self.stream_tags())

    def stream_tags(self) -> TagSet:
        return TagSet([
            (GEN_AI_SYSTEM, GEN_AI_SYSTEM_OPENAI),
            (GEN_AI_REQUEST_MODEL, self.request_model),
            (SERVER_ADDRESS, self._server_address),
            (SERVER_PORT, self._server_port),
            (GEN_AI_OPERATION_NAME, self._operation_name),
        ])

    def metric_tags(self, response_model: str | None, error_type: str | None) -> TagSet:
        return TagSet([
            (GEN_AI_SYSTEM, GEN_AI_SYSTEM_OPENAI),
            (GEN_AI_REQUEST_MODEL, self.request_model),
            (GEN_AI_RESPONSE_MODEL, response_model),
            (SERVER_ADDRESS, self._server_address),
            (SERVER_PORT, self._server_port),
            (GEN_AI_OPERATION_NAME, self._operation_name),
            (ERROR_TYPE, error_type),
        ])

    def elapsed(self) -> float:
        """Seconds since start(), or 0.0 if never started."""
        if self._start_time is None:
            return 0.0
        return time.perf_counter() - self._start_time

    def dispose(self) -> None:
        """End the span. Safe to call more than once."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        if self._span is not None:
            self._span.end()

    def __enter__(self) -> OperationScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()
