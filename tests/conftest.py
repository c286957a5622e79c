"""Pytest fixtures for openai-instrumentation tests."""

import os
from unittest.mock import patch

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from openai_instrumentation.config import Settings
from openai_instrumentation.models import (
    ChatCompletionsOptions,
    ChatMessage,
    CompletionsOptions,
)
from openai_instrumentation.telemetry.metrics import MetricRecorder
from openai_instrumentation.telemetry.scope import OperationScope


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {
        "OPENAI_BASE_URL": "https://example.openai.azure.com:8443/openai/v1",
        "OPENAI_API_KEY": "test-key",
        "OPENAI_MODEL": "gpt-test",
        "LOG_LEVEL": "DEBUG",
    }
    with patch.dict(os.environ, env_vars, clear=False):
        yield env_vars


@pytest.fixture
def settings(mock_env_vars) -> Settings:
    """Create Settings instance with mocked environment."""
    return Settings()


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter):
    """Tracer that records every span into span_exporter."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("tests")


@pytest.fixture
def metric_reader():
    return InMemoryMetricReader()


@pytest.fixture
def metric_recorder(metric_reader):
    return MetricRecorder(MeterProvider(metric_readers=[metric_reader]))


@pytest.fixture
def read_metrics(metric_reader):
    """Return a function collecting data points by metric name."""

    def _read() -> dict[str, list]:
        points: dict[str, list] = {}
        data = metric_reader.get_metrics_data()
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    points.setdefault(metric.name, []).extend(metric.data.data_points)
        return points

    return _read


@pytest.fixture
def chat_options():
    return ChatCompletionsOptions(
        model="gpt-test",
        messages=[
            ChatMessage(role="system", content="You are terse."),
            ChatMessage(role="user", content="Say hi"),
        ],
        max_tokens=50,
        temperature=0.2,
    )


@pytest.fixture
def completions_options():
    return CompletionsOptions(model="davinci-test", prompts=["def fib(n):"])


@pytest.fixture
def make_scope(tracer, metric_recorder, chat_options):
    """Build a started OperationScope with configurable recording switches."""

    def _make(options=None, operation_name="chat.completions", record_events=False,
              record_content=False, scope_tracer=None):
        scope = OperationScope(
            scope_tracer or tracer,
            metric_recorder,
            options or chat_options,
            operation_name,
            "example.com",
            443,
            record_events=record_events,
            record_content=record_content,
        )
        scope.start()
        return scope

    return _make
