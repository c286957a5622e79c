"""GenAI tracing and metrics instrumentation."""

from openai_instrumentation.telemetry.choice import ChoiceAccumulator
from openai_instrumentation.telemetry.diagnostics import OpenAIDiagnostics
from openai_instrumentation.telemetry.metrics import MetricRecorder, TagSet
from openai_instrumentation.telemetry.scope import OperationScope, get_error_type
from openai_instrumentation.telemetry.streaming import StreamAggregator

__all__ = [
    "ChoiceAccumulator",
    "MetricRecorder",
    "OpenAIDiagnostics",
    "OperationScope",
    "StreamAggregator",
    "TagSet",
    "get_error_type",
]
