"""Per-choice buffer for streamed completions."""

from __future__ import annotations

import threading

import structlog
from opentelemetry.trace import Span

from openai_instrumentation.models import ChatChunk, CompletionChunk
from openai_instrumentation.telemetry import events
from openai_instrumentation.telemetry.attributes import REDACTED

logger = structlog.get_logger()


class ChoiceAccumulator:
    """Rebuilds one choice's role, content and finish reason from stream chunks.

    Content is only buffered when content recording is enabled. Once the
    choice has a finish reason or has been finalized, further chunks are
    dropped. Finalization emits exactly one ``gen_ai.choice`` event.
    """

    def __init__(self, index: int, record_content: bool = False) -> None:
        self._index = index
        self._record_content = record_content
        self._content: list[str] | None = [] if record_content else None
        self._role: str | None = None
        self._finish_reason: str | None = None
        self._token_count = 0
        self._finalized = False
        self._lock = threading.Lock()

    @property
    def index(self) -> int:
        return self._index

    @property
    def role(self) -> str | None:
        return self._role

    @property
    def finish_reason(self) -> str | None:
        return self._finish_reason

    @property
    def token_count(self) -> int:
        return self._token_count

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def content(self) -> str | None:
        """Accumulated content, or None when content is not recorded."""
        if self._content is None:
            return None
        return "".join(self._content)

    def add_chunk(self, chunk: ChatChunk | CompletionChunk) -> None:
        """Apply one chunk to this choice."""
        with self._lock:
            if self._finish_reason is not None or self._finalized:
                logger.debug(
                    "stream_choice_dropped_chunk",
                    choice_index=self._index,
                    finish_reason=self._finish_reason,
                    finalized=self._finalized,
                )
                return

            if chunk.kind == "chat":
                if chunk.role is not None:
                    self._role = chunk.role
                text = chunk.content
            else:
                text = chunk.text

            if text:
                self._token_count += 1
                if self._content is not None:
                    self._content.append(text)

            if chunk.finish_reason is not None:
                self._finish_reason = chunk.finish_reason

    def finalize(self, span: Span | None) -> bool:
        """Emit the choice event once.

        Returns True only for the call that actually finalized the choice.
        """
        with self._lock:
            if self._finalized:
                return False
            self._finalized = True
            content = self.content if self._record_content else REDACTED

        if span is not None and span.is_recording():
            events.record_choice(
                span,
                self._index,
                self._finish_reason,
                self._role,
                content,
                None,
                self._record_content,
            )
        return True
