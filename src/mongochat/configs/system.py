from datetime import timedelta

from pydantic import BaseModel, Field


class APIConfig(BaseModel):
    """API configuration settings."""

    request_timeout: timedelta = Field(
        default=timedelta(minutes=2),
        description="Wall-clock timeout for one streamed chat response",
    )
    send_traceback: bool = Field(
        default=False,
        description="Include Python tracebacks in SSE error events (dev only)",
    )
    prompt_max_length: int = Field(
        default=4096, description="Maximum length of a single chat prompt"
    )


class LLMConfig(BaseModel):
    """OpenAI-compatible chat model endpoint."""

    endpoint: str = Field(
        default="http://localhost:8080/v1",
        description="Base URL of the OpenAI-compatible API",
    )
    api_key: str = Field(default="not-needed", description="API key")
    model_name: str = Field(default="gpt-4o", description="Chat model name")
    temperature: float = Field(default=0.1, description="Sampling temperature")
    max_tokens: int = Field(
        default=2048, description="Maximum tokens in a single completion"
    )
    context_window: int = Field(
        default=16384,
        description="Total context window of the model (input + output)",
    )
    model_timeout: timedelta = Field(
        default=timedelta(seconds=60), description="Per-call HTTP timeout"
    )
    max_retries: int = Field(
        default=0,
        description="Client-level retries; retries are user-initiated by default",
    )

    @property
    def max_input_tokens(self) -> int:
        return self.context_window - self.max_tokens


class ChatConfig(BaseModel):
    """Conversation behaviour of the participant."""

    max_namespace_list_length: int = Field(
        default=10,
        description="Number of databases/collections listed before 'Show more'",
    )
    query_sample_size: int = Field(
        default=3, description="Sample documents added to query prompts"
    )
    schema_sample_size: int = Field(
        default=100, description="Documents sampled to infer a collection schema"
    )
    max_sample_array_length: int = Field(
        default=3,
        description="Arrays in a single representative sample are cut to this length",
    )
    docs_history_length: int = Field(
        default=4, description="Turns replayed to the docs service since the last /docs"
    )
    docs_reference_url: str = Field(
        default="https://www.mongodb.com/docs/manual/",
        description="Citation attached when docs questions fall back to the model",
    )
    docs_reference_title: str = Field(
        default="View MongoDB documentation",
        description="Title of the fallback citation",
    )


class DocsChatbotConfig(BaseModel):
    """MongoDB documentation chatbot service."""

    enabled: bool = Field(default=True, description="Use the docs service for /docs")
    base_uri: str = Field(
        default="https://knowledge.mongodb.com/",
        description="Base URI of the docs chatbot service (trailing slash)",
    )
    timeout: timedelta = Field(
        default=timedelta(seconds=30), description="Per-call HTTP timeout"
    )
    user_agent: str = Field(
        default="mongochat/0.1.0", description="User-Agent sent to the service"
    )


class ConnectionConfig(BaseModel):
    """Named MongoDB connections offered to the user."""

    connections: dict[str, str] = Field(
        default_factory=dict,
        description="Display name -> connection string",
    )
    default_connection: str | None = Field(
        default=None,
        description="Connection activated at startup (None: ask the user)",
    )
    server_selection_timeout: timedelta = Field(
        default=timedelta(seconds=5),
        description="pymongo serverSelectionTimeoutMS",
    )


class LoggingConfig(BaseModel):
    """Logging output settings."""

    level: str = Field(default="INFO", description="Root log level")
    json_output: bool = Field(
        default=True, description="Emit JSON lines instead of coloured text"
    )


class TracingConfig(BaseModel):
    """OpenTelemetry tracing export settings."""

    enabled: bool = Field(default=False, description="Enable OTLP span export")
    endpoint: str = Field(default="", description="OTLP HTTP traces endpoint")
    username: str = Field(default="", description="Basic-auth username")
    password: str = Field(default="", description="Basic-auth password")
    service_name: str = Field(default="mongochat", description="service.name")
    sample_rate: float = Field(default=1.0, description="Root span sample ratio")
    excluded_urls: list[str] = Field(
        default_factory=lambda: ["/health", "/metrics"],
        description="Paths excluded from tracing and HTTP metrics",
    )
