"""Structured diagnostic events attached to GenAI spans.

Each event carries its payload serialized as JSON under ``event.data``.
Message content is replaced with ``REDACTED`` unless content recording
is enabled. None values are left out of the payload.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry.trace import Span

from openai_instrumentation.telemetry.attributes import (
    EVENT_ASSISTANT_MESSAGE,
    EVENT_CHOICE,
    EVENT_DATA,
    EVENT_FUNCTION_MESSAGE,
    EVENT_SYSTEM_MESSAGE,
    EVENT_TOOL_MESSAGE,
    EVENT_USER_MESSAGE,
    GEN_AI_SYSTEM,
    GEN_AI_SYSTEM_OPENAI,
    REDACTED,
)

if TYPE_CHECKING:
    from openai_instrumentation.models import ChatMessage, ContentItem, ToolCall

logger = structlog.get_logger()

_MESSAGE_EVENTS = {
    "system": EVENT_SYSTEM_MESSAGE,
    "user": EVENT_USER_MESSAGE,
    "tool": EVENT_TOOL_MESSAGE,
    "function": EVENT_FUNCTION_MESSAGE,
    "assistant": EVENT_ASSISTANT_MESSAGE,
}


def sanitize(content: str | None, record_content: bool) -> str | None:
    """Return content unchanged when recording content, otherwise the placeholder."""
    if content is None:
        return None
    return content if record_content else REDACTED


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value if v is not None]
    return value


def _add_event(span: Span, name: str, payload: dict[str, Any]) -> None:
    span.add_event(
        name,
        attributes={
            EVENT_DATA: json.dumps(_drop_none(payload)),
            GEN_AI_SYSTEM: GEN_AI_SYSTEM_OPENAI,
        },
    )


def record_prompt(span: Span, prompt: str, record_content: bool) -> None:
    """Record a completions prompt as a user message event."""
    content = sanitize(prompt, record_content)
    _add_event(span, EVENT_USER_MESSAGE, {"content": content})
    logger.debug(
        "gen_ai_prompt_recorded",
        event_name=EVENT_USER_MESSAGE,
        gen_ai_system=GEN_AI_SYSTEM_OPENAI,
        content=content,
    )


def record_request_message(
    span: Span, message: ChatMessage, record_content: bool
) -> None:
    """Record one chat request message as a role-specific event."""
    event_name = _MESSAGE_EVENTS[message.role]
    text = message.content if isinstance(message.content, str) else None

    if message.role == "user":
        payload = {"content": _sanitize_user_content(message, record_content)}
    elif message.role == "tool":
        payload = {
            "content": sanitize(text, record_content),
            "tool_call_id": message.tool_call_id,
        }
    elif message.role == "assistant":
        payload = {
            "content": sanitize(text, record_content),
            "tool_calls": sanitize_tool_calls(message.tool_calls, record_content),
        }
    else:
        payload = {"content": sanitize(text, record_content)}

    _add_event(span, event_name, payload)


def record_choice(
    span: Span,
    index: int | None,
    finish_reason: str | None,
    role: str | None,
    content: str | None,
    tool_calls: list[ToolCall] | None,
    record_content: bool,
) -> None:
    """Record one response choice as a ``gen_ai.choice`` event."""
    payload = {
        "index": index,
        "finish_reason": finish_reason,
        "message": {
            "role": role,
            "content": sanitize(content, record_content),
            "tool_calls": sanitize_tool_calls(tool_calls, record_content),
        },
    }
    _add_event(span, EVENT_CHOICE, payload)


def sanitize_tool_calls(
    tool_calls: list[ToolCall] | None, record_content: bool
) -> list[dict[str, Any]] | None:
    """Serialize tool calls, redacting function arguments."""
    if not tool_calls:
        return None
    result = []
    for call in tool_calls:
        function = None
        if call.function is not None:
            function = {
                "name": call.function.name,
                "arguments": sanitize(call.function.arguments, record_content),
            }
        result.append({"id": call.id, "type": call.type, "function": function})
    return result


def _sanitize_user_content(message: ChatMessage, record_content: bool) -> Any:
    if isinstance(message.content, str):
        return sanitize(message.content, record_content)
    if message.content:
        return [_sanitize_content_item(item, record_content) for item in message.content]
    return None


def _sanitize_content_item(item: ContentItem, record_content: bool) -> dict[str, Any]:
    if item.type == "image_url":
        image = item.image_url
        return {
            "type": "image",
            "detail_level": image.detail if image else None,
            "content": sanitize(image.url if image else None, record_content),
        }
    return {"type": "text", "content": sanitize(item.text, record_content)}
