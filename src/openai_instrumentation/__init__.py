"""OpenAI-compatible client with GenAI tracing and metrics."""

from openai_instrumentation.client import InstrumentedOpenAIClient
from openai_instrumentation.models import (
    ChatChunk,
    ChatCompletions,
    ChatCompletionsOptions,
    ChatMessage,
    CompletionChunk,
    Completions,
    CompletionsOptions,
    Embeddings,
    EmbeddingsOptions,
    ImageGenerationOptions,
    ImageGenerations,
)

__all__ = [
    "InstrumentedOpenAIClient",
    "ChatChunk",
    "ChatCompletions",
    "ChatCompletionsOptions",
    "ChatMessage",
    "CompletionChunk",
    "Completions",
    "CompletionsOptions",
    "Embeddings",
    "EmbeddingsOptions",
    "ImageGenerationOptions",
    "ImageGenerations",
]
