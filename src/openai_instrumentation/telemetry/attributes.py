"""GenAI telemetry names: span attributes, event names and metric instruments.

See: https://opentelemetry.io/docs/specs/semconv/gen-ai/
"""

GEN_AI_SYSTEM = "gen_ai.system"
GEN_AI_SYSTEM_OPENAI = "openai"
GEN_AI_OPERATION_NAME = "gen_ai.operation.name"

OPERATION_CHAT_COMPLETIONS = "chat.completions"
OPERATION_COMPLETIONS = "completions"
OPERATION_EMBEDDINGS = "embeddings"
OPERATION_IMAGE_GENERATIONS = "image_generations"

# Request
GEN_AI_REQUEST_MODEL = "gen_ai.request.model"
GEN_AI_REQUEST_MAX_TOKENS = "gen_ai.request.max_tokens"
GEN_AI_REQUEST_TEMPERATURE = "gen_ai.request.temperature"
GEN_AI_REQUEST_TOP_P = "gen_ai.request.top_p"

# Response
GEN_AI_RESPONSE_ID = "gen_ai.response.id"
GEN_AI_RESPONSE_MODEL = "gen_ai.response.model"
GEN_AI_RESPONSE_FINISH_REASON = "gen_ai.response.finish_reason"

# Usage
GEN_AI_USAGE_PROMPT_TOKENS = "gen_ai.usage.prompt_tokens"
GEN_AI_USAGE_COMPLETION_TOKENS = "gen_ai.usage.completion_tokens"
GEN_AI_USAGE_TOKEN_TYPE = "gen_ai.usage.token_type"
TOKEN_TYPE_INPUT = "input"
TOKEN_TYPE_OUTPUT = "output"

# Server / error
SERVER_ADDRESS = "server.address"
SERVER_PORT = "server.port"
ERROR_TYPE = "error.type"

# Events
EVENT_DATA = "event.data"
EVENT_SYSTEM_MESSAGE = "gen_ai.system.message"
EVENT_USER_MESSAGE = "gen_ai.user.message"
EVENT_TOOL_MESSAGE = "gen_ai.tool.message"
EVENT_FUNCTION_MESSAGE = "gen_ai.function.message"
EVENT_ASSISTANT_MESSAGE = "gen_ai.assistant.message"
EVENT_CHOICE = "gen_ai.choice"

REDACTED = "REDACTED"

# openai.* namespace
OPENAI_PREFIXES = {
    OPERATION_CHAT_COMPLETIONS: "openai.chat_completions",
    OPERATION_COMPLETIONS: "openai.completions",
    OPERATION_EMBEDDINGS: "openai.embeddings",
    OPERATION_IMAGE_GENERATIONS: "openai.image_generations",
}
OPENAI_CHOICE_FINISH_REASON = "openai.choice.finish_reason"
OPENAI_EMBEDDINGS_INPUT_SIZE = "openai.embeddings.request.input_size"
OPENAI_EMBEDDINGS_VECTOR_SIZE = "openai.embeddings.response.vector_size"
OPENAI_EMBEDDINGS_PROMPT_TOKENS = "openai.embeddings.response.prompt_tokens"
OPENAI_IMAGE_COUNT = "openai.image_generations.request.image_count"
OPENAI_IMAGE_SIZE = "openai.image_generations.request.image_size"
OPENAI_IMAGE_FORMAT = "openai.image_generations.request.image_format"

# Metric instruments
METER_CLIENT = "openai_instrumentation.client"
METER_STREAMS = "openai_instrumentation.streams"
METRIC_OPERATION_DURATION = "gen_ai.operation.duration"
METRIC_TOKEN_USAGE = "gen_ai.token.usage"
METRIC_STREAM_START = "gen_ai.stream.start"
METRIC_STREAM_END = "gen_ai.stream.end"
METRIC_CHOICES = "openai.choices"
METRIC_EMBEDDINGS_VECTORS = "openai.embeddings.vector_size"
