"""Data models for OpenAI-compatible requests, responses and stream chunks."""

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ImageUrl(BaseModel):
    """Image reference inside a multimodal user message."""

    url: str
    detail: str | None = None


class ContentItem(BaseModel):
    """One part of a multimodal user message."""

    type: Literal["text", "image_url"]
    text: str | None = None
    image_url: ImageUrl | None = None


class FunctionCall(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str | None = None
    arguments: str | None = None


class ToolCall(BaseModel):
    """Tool call requested by the assistant."""

    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    type: str | None = "function"
    function: FunctionCall | None = None


class ChatMessage(BaseModel):
    """A chat request message.

    ``content`` is a plain string, or for user messages a list of
    multimodal content items.
    """

    role: Literal["system", "user", "assistant", "tool", "function"]
    content: str | list[ContentItem] | None = None
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[ToolCall] | None = None

    def to_request(self) -> dict:
        """Serialize for the OpenAI SDK, omitting unset fields."""
        return self.model_dump(exclude_none=True)


class ChatCompletionsOptions(BaseModel):
    """Options for a chat completions request."""

    model: str
    messages: list[ChatMessage]
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    n: int | None = Field(None, ge=1)
    stop: list[str] | None = None

    def to_request(self) -> dict:
        """Build keyword arguments for ``chat.completions.create``."""
        request = self.model_dump(exclude_none=True, exclude={"messages"})
        request["messages"] = [message.to_request() for message in self.messages]
        return request


class CompletionsOptions(BaseModel):
    """Options for a legacy completions request."""

    model: str
    prompts: list[str] = Field(..., min_length=1)
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    n: int | None = Field(None, ge=1)

    def to_request(self) -> dict:
        """Build keyword arguments for ``completions.create``."""
        request = self.model_dump(exclude_none=True, exclude={"prompts"})
        request["prompt"] = self.prompts
        return request


class EmbeddingsOptions(BaseModel):
    """Options for an embeddings request."""

    model: str
    input: list[str] = Field(..., min_length=1)
    dimensions: int | None = Field(None, ge=1)
    encoding_format: Literal["float", "base64"] | None = None
    user: str | None = None

    def to_request(self) -> dict:
        """Build keyword arguments for ``embeddings.create``."""
        return self.model_dump(exclude_none=True)


class ImageGenerationOptions(BaseModel):
    """Options for an image generations request.

    ``model`` is optional; the service picks its default image model when
    it is omitted.
    """

    prompt: str
    model: str | None = None
    n: int | None = Field(None, ge=1)
    size: str | None = None
    response_format: Literal["url", "b64_json"] | None = None
    quality: str | None = None
    style: str | None = None

    def to_request(self) -> dict:
        """Build keyword arguments for ``images.generate``."""
        return self.model_dump(exclude_none=True)


class Usage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class ResponseMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: str | None = None
    content: str | None = None
    tool_calls: list[ToolCall] | None = None


class ChatChoice(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    index: int
    finish_reason: str | None = None
    message: ResponseMessage


class ChatCompletions(BaseModel):
    """Parsed chat completions response."""

    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: Usage | None = None


class CompletionChoice(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    index: int
    text: str | None = None
    finish_reason: str | None = None


class Completions(BaseModel):
    """Parsed completions response."""

    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: Usage | None = None


class Embedding(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    index: int
    embedding: list[float] | str = Field(default_factory=list)


class Embeddings(BaseModel):
    """Parsed embeddings response."""

    model_config = ConfigDict(from_attributes=True)

    model: str | None = None
    data: list[Embedding] = Field(default_factory=list)
    usage: Usage | None = None


class GeneratedImage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    url: str | None = None
    b64_json: str | None = None
    revised_prompt: str | None = None


class ImageGenerations(BaseModel):
    """Parsed image generations response. ``created`` is a unix timestamp in seconds."""

    model_config = ConfigDict(from_attributes=True)

    created: int | None = None
    data: list[GeneratedImage] = Field(default_factory=list)


@dataclass(slots=True)
class ChatChunk:
    """One choice delta from a streamed chat completion.

    ``choice_index`` is None for chunks that carry no choice (for
    example a trailing usage-only chunk).
    """

    choice_index: int | None = None
    role: str | None = None
    content: str | None = None
    finish_reason: str | None = None
    response_id: str | None = None
    model: str | None = None
    kind: Literal["chat"] = "chat"


@dataclass(slots=True)
class CompletionChunk:
    """One choice delta from a streamed completion."""

    choice_index: int
    text: str | None = None
    finish_reason: str | None = None
    response_id: str | None = None
    model: str | None = None
    kind: Literal["completion"] = "completion"


StreamChunk = ChatChunk | CompletionChunk
