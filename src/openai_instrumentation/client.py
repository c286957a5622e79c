"""Instrumented client for OpenAI-compatible APIs."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from typing import Any

import structlog
from openai import AsyncOpenAI
from opentelemetry.trace import Tracer

from openai_instrumentation.config import Settings
from openai_instrumentation.models import (
    ChatChunk,
    ChatCompletions,
    ChatCompletionsOptions,
    CompletionChunk,
    Completions,
    CompletionsOptions,
    Embeddings,
    EmbeddingsOptions,
    ImageGenerationOptions,
    ImageGenerations,
)
from openai_instrumentation.telemetry.diagnostics import OpenAIDiagnostics
from openai_instrumentation.telemetry.metrics import MetricRecorder
from openai_instrumentation.telemetry.scope import OperationScope
from openai_instrumentation.telemetry.streaming import StreamAggregator

logger = structlog.get_logger()


def to_chat_chunks(raw: Any) -> list[ChatChunk]:
    """Split a raw SDK chat chunk into one ChatChunk per choice.

    A raw chunk without choices (e.g. the trailing usage chunk) becomes a
    single ChatChunk with no choice index.
    """
    response_id = getattr(raw, "id", None)
    model = getattr(raw, "model", None) or None
    choices = getattr(raw, "choices", None) or []

    if not choices:
        return [ChatChunk(response_id=response_id, model=model)]

    chunks = []
    for choice in choices:
        delta = getattr(choice, "delta", None)
        chunks.append(
            ChatChunk(
                choice_index=choice.index,
                role=getattr(delta, "role", None) if delta else None,
                content=getattr(delta, "content", None) if delta else None,
                finish_reason=choice.finish_reason,
                response_id=response_id,
                model=model,
            )
        )
    return chunks


def to_completion_chunks(raw: Any) -> list[CompletionChunk]:
    """Split a raw SDK completions chunk into one CompletionChunk per choice."""
    response_id = getattr(raw, "id", None)
    model = getattr(raw, "model", None) or None
    return [
        CompletionChunk(
            choice_index=choice.index,
            text=getattr(choice, "text", None),
            finish_reason=choice.finish_reason,
            response_id=response_id,
            model=model,
        )
        for choice in getattr(raw, "choices", None) or []
    ]


class InstrumentedOpenAIClient:
    """Async client for OpenAI-compatible chat and completions endpoints.

    Every call is wrapped in an OperationScope (buffered calls) or a
    StreamAggregator (streaming calls). Exceptions from the API reach the
    caller unchanged after being recorded.
    """

    def __init__(
        self,
        settings: Settings,
        tracer: Tracer,
        metrics: MetricRecorder,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            timeout=settings.openai_timeout,
        )
        self._diagnostics = OpenAIDiagnostics(
            settings.openai_base_url,
            tracer,
            metrics,
            record_events=settings.record_events,
            record_content=settings.record_content,
        )

    @property
    def diagnostics(self) -> OpenAIDiagnostics:
        return self._diagnostics

    async def get_chat_completions(self, options: ChatCompletionsOptions) -> ChatCompletions:
        """Run a buffered chat completion.

        Args:
            options: Model, messages and sampling parameters.

        Returns:
            ChatCompletions parsed from the SDK response.
        """
        logger.info(
            "chat_completions_start",
            model=options.model,
            message_count=len(options.messages),
            stream=False,
        )
        scope = self._diagnostics.start_chat_completions_scope(options)
        with scope:
            try:
                with scope.activate():
                    raw = await self._client.chat.completions.create(**options.to_request())
                result = ChatCompletions.model_validate(raw, from_attributes=True)
                scope.record_chat_completions(result)
            except BaseException as exc:
                self._fail(scope, exc)
                logger.error("chat_completions_failed", model=options.model)
                raise

        logger.info(
            "chat_completions_complete",
            model=result.model,
            choice_count=len(result.choices),
            finish_reason=result.choices[0].finish_reason if result.choices else None,
        )
        return result

    async def get_completions(self, options: CompletionsOptions) -> Completions:
        """Run a buffered completion over one or more prompts."""
        logger.info(
            "completions_start",
            model=options.model,
            prompt_count=len(options.prompts),
            stream=False,
        )
        scope = self._diagnostics.start_completions_scope(options)
        with scope:
            try:
                with scope.activate():
                    raw = await self._client.completions.create(**options.to_request())
                result = Completions.model_validate(raw, from_attributes=True)
                scope.record_completions(result)
            except BaseException as exc:
                self._fail(scope, exc)
                logger.error("completions_failed", model=options.model)
                raise

        logger.info(
            "completions_complete",
            model=result.model,
            choice_count=len(result.choices),
        )
        return result

    async def get_chat_completions_streaming(
        self, options: ChatCompletionsOptions
    ) -> AsyncGenerator[ChatChunk, None]:
        """Stream a chat completion as ChatChunk objects.

        Yields one ChatChunk per choice delta as SSE events arrive. The
        caller is responsible for accumulating text.
        """
        logger.info(
            "chat_completions_stream_start",
            model=options.model,
            message_count=len(options.messages),
            choice_count=options.n or 1,
        )
        aggregator = self._diagnostics.start_chat_completions_streaming_scope(options)
        chunk_count = 0
        with aggregator:
            try:
                with aggregator.scope.activate():
                    stream = await self._client.chat.completions.create(
                        **options.to_request(), stream=True
                    )
                async for raw in stream:
                    chunk_count += 1
                    for chunk in to_chat_chunks(raw):
                        aggregator.record_chunk(chunk)
                        yield chunk
            except BaseException as exc:
                self._fail_stream(aggregator, exc)
                if not isinstance(exc, GeneratorExit):
                    logger.error(
                        "chat_completions_stream_failed",
                        model=options.model,
                        total_chunks_received=chunk_count,
                    )
                raise

        logger.info(
            "chat_completions_stream_complete",
            model=aggregator.response_model or options.model,
            total_chunks_received=chunk_count,
        )

    async def get_completions_streaming(
        self, options: CompletionsOptions
    ) -> AsyncGenerator[CompletionChunk, None]:
        """Stream a completion as CompletionChunk objects."""
        logger.info(
            "completions_stream_start",
            model=options.model,
            prompt_count=len(options.prompts),
        )
        aggregator = self._diagnostics.start_completions_streaming_scope(options)
        chunk_count = 0
        with aggregator:
            try:
                with aggregator.scope.activate():
                    stream = await self._client.completions.create(
                        **options.to_request(), stream=True
                    )
                async for raw in stream:
                    chunk_count += 1
                    for chunk in to_completion_chunks(raw):
                        aggregator.record_chunk(chunk)
                        yield chunk
            except BaseException as exc:
                self._fail_stream(aggregator, exc)
                if not isinstance(exc, GeneratorExit):
                    logger.error(
                        "completions_stream_failed",
                        model=options.model,
                        total_chunks_received=chunk_count,
                    )
                raise

        logger.info(
            "completions_stream_complete",
            model=aggregator.response_model or options.model,
            total_chunks_received=chunk_count,
        )

    async def get_embeddings(self, options: EmbeddingsOptions) -> Embeddings:
        """Embed one or more input strings."""
        logger.info(
            "embeddings_start",
            model=options.model,
            input_count=len(options.input),
        )
        scope = self._diagnostics.start_embeddings_scope(options)
        with scope:
            try:
                with scope.activate():
                    raw = await self._client.embeddings.create(**options.to_request())
                result = Embeddings.model_validate(raw, from_attributes=True)
                scope.record_embeddings(result)
            except BaseException as exc:
                self._fail(scope, exc)
                logger.error("embeddings_failed", model=options.model)
                raise

        logger.info(
            "embeddings_complete",
            model=result.model,
            vector_count=len(result.data),
        )
        return result

    async def get_image_generations(self, options: ImageGenerationOptions) -> ImageGenerations:
        """Generate images from a text prompt."""
        logger.info(
            "image_generations_start",
            model=options.model,
            image_count=options.n or 1,
            size=options.size,
        )
        scope = self._diagnostics.start_image_generations_scope(options)
        with scope:
            try:
                with scope.activate():
                    raw = await self._client.images.generate(**options.to_request())
                result = ImageGenerations.model_validate(raw, from_attributes=True)
                scope.record_image_generations(result)
            except BaseException as exc:
                self._fail(scope, exc)
                logger.error("image_generations_failed", model=options.model)
                raise

        logger.info("image_generations_complete", image_count=len(result.data))
        return result

    async def close(self) -> None:
        await self._client.close()

    @staticmethod
    def _fail(scope: OperationScope, exc: BaseException) -> None:
        if isinstance(exc, asyncio.CancelledError):
            scope.fail(None, canceled=True)
        else:
            scope.fail(exc)

    @staticmethod
    def _fail_stream(aggregator: StreamAggregator, exc: BaseException) -> None:
        # an early close by the consumer is a normal end of the stream
        if isinstance(exc, GeneratorExit):
            aggregator.dispose()
        elif isinstance(exc, asyncio.CancelledError):
            aggregator.record_cancellation()
        else:
            aggregator.record_exception(exc)
