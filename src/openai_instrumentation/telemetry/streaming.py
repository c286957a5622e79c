"""Aggregation of streamed choices into a single reported operation."""

from __future__ import annotations

import threading

import structlog

from openai_instrumentation.models import ChatChunk, CompletionChunk
from openai_instrumentation.telemetry.choice import ChoiceAccumulator
from openai_instrumentation.telemetry.scope import OperationScope

logger = structlog.get_logger()


class StreamAggregator:
    """Tracks every choice of one streaming operation and reports it once.

    The operation is finalized on whichever comes first: all choices
    reaching a finish reason, an exception, a cancellation or dispose().
    Later triggers are no-ops.
    """

    def __init__(
        self,
        scope: OperationScope,
        choice_count: int,
        record_content: bool | None = None,
    ) -> None:
        """Allocate one accumulator per expected choice.

        Args:
            scope: Started scope of the streaming operation.
            choice_count: Number of choices the request asked for (>= 1).
            record_content: Buffer choice content. Defaults to the scope's setting.

        Raises:
            ValueError: If choice_count is less than 1.
        """
        if choice_count < 1:
            raise ValueError(f"choice_count must be >= 1, got: {choice_count}")

        if record_content is None:
            record_content = scope.record_content

        self._scope = scope
        self._choices = [ChoiceAccumulator(i, record_content) for i in range(choice_count)]
        self._response_id: str | None = None
        self._response_model: str | None = None
        self._finalized = False
        self._gate = threading.Lock()

        self._scope.record_stream_start()

    @property
    def scope(self) -> OperationScope:
        return self._scope

    @property
    def choices(self) -> list[ChoiceAccumulator]:
        return list(self._choices)

    @property
    def response_id(self) -> str | None:
        return self._response_id

    @property
    def response_model(self) -> str | None:
        return self._response_model

    @property
    def finalized(self) -> bool:
        return self._finalized

    def record_chunk(self, chunk: ChatChunk | CompletionChunk) -> None:
        """Route a chunk to its choice and finalize when every choice is done."""
        self._capture_response_info(chunk)

        index = chunk.choice_index
        if index is None:
            return
        if not 0 <= index < len(self._choices):
            logger.warning(
                "stream_chunk_index_out_of_range",
                choice_index=index,
                choice_count=len(self._choices),
                operation=self._scope.operation_name,
            )
            return

        choice = self._choices[index]
        choice.add_chunk(chunk)
        if chunk.finish_reason is not None:
            choice.finalize(self._scope.span)

        if all(c.finalized for c in self._choices):
            self._end(None, False)

    def _capture_response_info(self, chunk: ChatChunk | CompletionChunk) -> None:
        # id and model are often only present on the first deltas
        if self._response_id is None and chunk.response_id is not None:
            self._response_id = chunk.response_id
        if self._response_model is None and chunk.model is not None:
            self._response_model = chunk.model

    def record_exception(self, exception: BaseException) -> None:
        self._end(exception, False)

    def record_cancellation(self) -> None:
        self._end(None, True)

    def dispose(self) -> None:
        self._end(None, False)

    def _end(self, exception: BaseException | None, canceled: bool) -> None:
        with self._gate:
            if self._finalized:
                return
            self._finalized = True

        self._scope.record_stream_end()

        for choice in self._choices:
            if not choice.finalized:
                choice.finalize(self._scope.span)

        completion_tokens = sum(c.token_count for c in self._choices)
        finish_reason = self._choices[0].finish_reason

        try:
            self._scope.record_streaming_response(
                self._response_id,
                self._response_model,
                finish_reason,
                completion_tokens,
                exception,
                canceled,
            )
        finally:
            self._scope.dispose()

        logger.debug(
            "stream_finalized",
            operation=self._scope.operation_name,
            model=self._scope.request_model,
            response_model=self._response_model,
            choice_count=len(self._choices),
            completion_tokens=completion_tokens,
            finish_reason=finish_reason,
            canceled=canceled,
            failed=exception is not None,
        )

    def __enter__(self) -> StreamAggregator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()
