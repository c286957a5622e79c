"""Factory for operation scopes bound to one client endpoint."""

from urllib.parse import urlsplit

import structlog
from opentelemetry.trace import Tracer

from openai_instrumentation.models import (
    ChatCompletionsOptions,
    CompletionsOptions,
    EmbeddingsOptions,
    ImageGenerationOptions,
)
from openai_instrumentation.telemetry.attributes import (
    OPERATION_CHAT_COMPLETIONS,
    OPERATION_COMPLETIONS,
    OPERATION_EMBEDDINGS,
    OPERATION_IMAGE_GENERATIONS,
)
from openai_instrumentation.telemetry.metrics import MetricRecorder
from openai_instrumentation.telemetry.scope import OperationScope, RequestOptions
from openai_instrumentation.telemetry.streaming import StreamAggregator

logger = structlog.get_logger()

_DEFAULT_PORTS = {"http": 80, "https": 443}


def parse_endpoint(url: str) -> tuple[str, int]:
    """Split an endpoint URL into (server address, server port)."""
    parts = urlsplit(url)
    address = parts.hostname or ""
    port = parts.port or _DEFAULT_PORTS.get(parts.scheme, 443)
    return address, port


class OpenAIDiagnostics:
    """Creates started scopes for every client operation.

    Holds the tracer, the shared metric recorder and the recording
    switches for one endpoint.
    """

    def __init__(
        self,
        endpoint: str,
        tracer: Tracer,
        metrics: MetricRecorder,
        record_events: bool = False,
        record_content: bool = False,
    ) -> None:
        self._server_address, self._server_port = parse_endpoint(endpoint)
        self._tracer = tracer
        self._metrics = metrics
        self._record_events = record_events
        self._record_content = record_content
        logger.debug(
            "diagnostics_initialized",
            server_address=self._server_address,
            server_port=self._server_port,
            record_events=record_events,
            record_content=record_content,
        )

    @property
    def server_address(self) -> str:
        return self._server_address

    @property
    def server_port(self) -> int:
        return self._server_port

    def _start_scope(
        self,
        options: RequestOptions,
        operation_name: str,
    ) -> OperationScope:
        scope = OperationScope(
            self._tracer,
            self._metrics,
            options,
            operation_name,
            self._server_address,
            self._server_port,
            record_events=self._record_events,
            record_content=self._record_content,
        )
        scope.start()
        return scope

    def start_chat_completions_scope(self, options: ChatCompletionsOptions) -> OperationScope:
        return self._start_scope(options, OPERATION_CHAT_COMPLETIONS)

    def start_chat_completions_streaming_scope(
        self, options: ChatCompletionsOptions
    ) -> StreamAggregator:
        scope = self._start_scope(options, OPERATION_CHAT_COMPLETIONS)
        return StreamAggregator(scope, options.n or 1, self._record_content)

    def start_completions_scope(self, options: CompletionsOptions) -> OperationScope:
        return self._start_scope(options, OPERATION_COMPLETIONS)

    def start_completions_streaming_scope(
        self, options: CompletionsOptions
    ) -> StreamAggregator:
        scope = self._start_scope(options, OPERATION_COMPLETIONS)
        return StreamAggregator(scope, len(options.prompts) * (options.n or 1), self._record_content)

    def start_embeddings_scope(self, options: EmbeddingsOptions) -> OperationScope:
        return self._start_scope(options, OPERATION_EMBEDDINGS)

    def start_image_generations_scope(self, options: ImageGenerationOptions) -> OperationScope:
        return self._start_scope(options, OPERATION_IMAGE_GENERATIONS)
