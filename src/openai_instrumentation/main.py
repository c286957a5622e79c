"""Command-line entrypoint - one instrumented chat completion."""

import argparse
import asyncio
import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

from openai_instrumentation.client import InstrumentedOpenAIClient
from openai_instrumentation.config import Settings, get_settings
from openai_instrumentation.models import ChatCompletionsOptions, ChatMessage
from openai_instrumentation.telemetry.metrics import MetricRecorder


def add_trace_context(logger, method_name, event_dict):
    """structlog processor: tag events with the current span's trace and span ids."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = trace.format_trace_id(span_context.trace_id)
        event_dict["span_id"] = trace.format_span_id(span_context.span_id)
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_file: str = "",
    log_file_max_bytes: int = 10_485_760,
    log_file_backup_count: int = 5,
) -> None:
    """Configure structlog and standard library logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file. Empty string = console only.
        log_file_max_bytes: Max size per log file before rotation (default: 10 MB)
        log_file_backup_count: Number of rotated backup files to keep (default: 5)
    """
    from logging.handlers import RotatingFileHandler
    from pathlib import Path

    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.root
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # Always add console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            filename=log_file,
            maxBytes=log_file_max_bytes,
            backupCount=log_file_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_trace_context,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            # Use JSONRenderer for file, ConsoleRenderer for console
            structlog.processors.JSONRenderer() if log_file else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_telemetry(console_export: bool = False) -> tuple[TracerProvider, MeterProvider]:
    """Create OpenTelemetry SDK tracer and meter providers.

    Args:
        console_export: Export spans and metrics to stdout.

    Returns:
        (tracer_provider, meter_provider), also installed as the global providers.
    """
    tracer_provider = TracerProvider()
    metric_readers = []
    if console_export:
        tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        metric_readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))
    meter_provider = MeterProvider(metric_readers=metric_readers)

    trace.set_tracer_provider(tracer_provider)
    metrics.set_meter_provider(meter_provider)
    return tracer_provider, meter_provider


logger = structlog.get_logger()


async def run(settings: Settings, prompt: str, stream: bool = True) -> str:
    """Send one user prompt and return the assistant's answer."""
    tracer_provider, meter_provider = configure_telemetry(settings.telemetry_console_export)
    tracer = tracer_provider.get_tracer("openai_instrumentation")
    client = InstrumentedOpenAIClient(
        settings,
        tracer=tracer,
        metrics=MetricRecorder(meter_provider),
    )
    options = ChatCompletionsOptions(
        model=settings.openai_model,
        messages=[ChatMessage(role="user", content=prompt)],
    )

    try:
        with tracer.start_as_current_span("cli.run"):
            logger.info("cli_request", model=options.model, stream=stream)
            if stream:
                parts: list[str] = []
                async for chunk in client.get_chat_completions_streaming(options):
                    if chunk.content:
                        parts.append(chunk.content)
                answer = "".join(parts)
            else:
                result = await client.get_chat_completions(options)
                answer = ""
                if result.choices:
                    answer = result.choices[0].message.content or ""
    finally:
        await client.close()
        tracer_provider.shutdown()
        meter_provider.shutdown()

    return answer


def main() -> None:
    """Run one chat completion against the configured endpoint."""
    parser = argparse.ArgumentParser(
        description="Send a prompt to an OpenAI-compatible API with GenAI telemetry."
    )
    parser.add_argument("prompt", help="User message to send")
    parser.add_argument("--no-stream", action="store_true", help="Use a buffered request")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        log_file_max_bytes=settings.log_file_max_bytes,
        log_file_backup_count=settings.log_file_backup_count,
    )

    logger.info(
        "starting_completion",
        base_url=settings.openai_base_url,
        model=settings.openai_model,
        stream=not args.no_stream,
    )

    answer = asyncio.run(run(settings, args.prompt, stream=not args.no_stream))
    print(answer)


if __name__ == "__main__":
    main()
