"""Application configuration using Pydantic settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenAI-compatible endpoint
    openai_base_url: str = Field(
        "https://api.openai.com/v1", alias="OPENAI_BASE_URL",
        description="Base URL of the OpenAI-compatible API. Also the source of server.address/server.port telemetry.",
    )
    openai_api_key: str = Field(
        "", alias="OPENAI_API_KEY",
        description="API key sent to the OpenAI-compatible API.",
    )
    openai_model: str = Field(
        "gpt-4o-mini", alias="OPENAI_MODEL",
        description="Default model or deployment name used by the CLI.",
    )
    openai_timeout: float = Field(
        60.0, alias="OPENAI_TIMEOUT",
        description="HTTP request timeout in seconds.",
    )

    # Telemetry switches
    record_events: bool = Field(
        False, alias="OPENAI_EXPERIMENTAL_RECORD_EVENTS",
        description="Replay request prompts/messages and response choices as span events.",
    )
    record_content: bool = Field(
        False, alias="OPENAI_EXPERIMENTAL_RECORD_CONTENT",
        description="Include message content in span events. When off, content is replaced with REDACTED.",
    )
    telemetry_console_export: bool = Field(
        False, alias="TELEMETRY_CONSOLE_EXPORT",
        description="Export spans and metrics to the console via the OpenTelemetry SDK.",
    )

    # Logging
    log_level: str = Field(
        "INFO", alias="LOG_LEVEL",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL.",
    )
    log_file: str = Field(
        "", alias="LOG_FILE",
        description="Path to log file for file-based logging with rotation. Empty = console only.",
    )
    log_file_max_bytes: int = Field(
        10_485_760, alias="LOG_FILE_MAX_BYTES",
        description="Max size in bytes per log file before rotation. Default: 10 MB.",
    )
    log_file_backup_count: int = Field(
        5, alias="LOG_FILE_BACKUP_COUNT",
        description="Number of rotated backup log files to keep.",
    )


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
