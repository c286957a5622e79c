"""Metric instruments for GenAI operations."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Union

from opentelemetry.metrics import MeterProvider

from openai_instrumentation.telemetry.attributes import (
    GEN_AI_USAGE_TOKEN_TYPE,
    METER_CLIENT,
    METER_STREAMS,
    METRIC_CHOICES,
    METRIC_EMBEDDINGS_VECTORS,
    METRIC_OPERATION_DURATION,
    METRIC_STREAM_END,
    METRIC_STREAM_START,
    METRIC_TOKEN_USAGE,
    OPENAI_CHOICE_FINISH_REASON,
)

TagValue = Union[str, int, float, None]


class TagSet:
    """Ordered mapping of metric dimension name to value.

    Values may be None; those are dropped when converting to
    OpenTelemetry attributes. Copies never share state with the original.
    """

    __slots__ = ("_tags",)

    def __init__(self, tags: Iterable[tuple[str, TagValue]] = ()) -> None:
        self._tags: dict[str, TagValue] = dict(tags)

    def __getitem__(self, name: str) -> TagValue:
        return self._tags[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TagSet):
            return NotImplemented
        return list(self._tags.items()) == list(other._tags.items())

    def __repr__(self) -> str:
        return f"TagSet({list(self._tags.items())!r})"

    def get(self, name: str, default: TagValue = None) -> TagValue:
        return self._tags.get(name, default)

    def set(self, name: str, value: TagValue) -> None:
        self._tags[name] = value

    def copy(self) -> TagSet:
        return TagSet(self._tags.items())

    def with_tag(self, name: str, value: TagValue) -> TagSet:
        """Return a copy with one extra (or replaced) dimension."""
        tags = self.copy()
        tags.set(name, value)
        return tags

    def to_attributes(self) -> dict[str, str | int | float]:
        """Convert to OpenTelemetry attributes, skipping None values."""
        return {name: value for name, value in self._tags.items() if value is not None}


class MetricRecorder:
    """Owns the GenAI metric instruments.

    Built once per process (or per test) from an explicit MeterProvider
    and shared by reference between operations. The underlying
    instruments are safe for concurrent use.
    """

    def __init__(self, meter_provider: MeterProvider) -> None:
        client_meter = meter_provider.get_meter(METER_CLIENT)
        streams_meter = meter_provider.get_meter(METER_STREAMS)

        self._duration = client_meter.create_histogram(
            METRIC_OPERATION_DURATION,
            unit="s",
            description="GenAI request duration",
        )
        self._tokens = client_meter.create_histogram(
            METRIC_TOKEN_USAGE,
            unit="{token}",
            description="GenAI token usage.",
        )
        self._choices = client_meter.create_counter(
            METRIC_CHOICES,
            unit="{choice}",
            description="Number of choices returned.",
        )
        self._embedding_vectors = client_meter.create_counter(
            METRIC_EMBEDDINGS_VECTORS,
            unit="{vector}",
            description="Number of embedding vectors returned.",
        )
        self._stream_start = streams_meter.create_counter(
            METRIC_STREAM_START,
            unit="{stream}",
            description="GenAI streams started.",
        )
        self._stream_end = streams_meter.create_counter(
            METRIC_STREAM_END,
            unit="{stream}",
            description="GenAI streams completed.",
        )

    def record_duration(self, seconds: float, tags: TagSet) -> None:
        self._duration.record(seconds, attributes=tags.to_attributes())

    def record_token_usage(self, count: int, token_type: str, tags: TagSet) -> None:
        """Record a token count tagged with its usage type (input/output)."""
        usage_tags = tags.with_tag(GEN_AI_USAGE_TOKEN_TYPE, token_type)
        self._tokens.record(count, attributes=usage_tags.to_attributes())

    def record_choices(self, finish_reasons: Iterable[str | None], tags: TagSet) -> None:
        """Count returned choices, one increment per choice tagged with its finish reason."""
        for finish_reason in finish_reasons:
            choice_tags = tags
            if finish_reason is not None:
                choice_tags = tags.with_tag(OPENAI_CHOICE_FINISH_REASON, finish_reason)
            self._choices.add(1, attributes=choice_tags.to_attributes())

    def record_embedding_vectors(self, count: int, tags: TagSet) -> None:
        self._embedding_vectors.add(count, attributes=tags.to_attributes())

    def record_stream_start(self, tags: TagSet) -> None:
        self._stream_start.add(1, attributes=tags.to_attributes())

    def record_stream_end(self, tags: TagSet) -> None:
        self._stream_end.add(1, attributes=tags.to_attributes())
