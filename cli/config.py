"""Settings of the terminal chat host."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

ChatCommand = Literal["query", "schema", "docs"]


class CLIConfig(BaseModel):
    """Where the service runs and how the terminal host behaves."""

    host: str = Field(default="localhost", description="Server host")
    port: int = Field(default=8080, description="Server port")
    api_prefix: str = Field(
        default="/api/v1",
        description="Prefix of the participant routes",
    )
    timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Read timeout of one streamed answer",
    )
    connection: str | None = Field(
        default=None,
        description="Named connection to activate before the first turn",
    )
    default_command: ChatCommand | None = Field(
        default=None,
        description="Command for messages typed without a slash command",
    )
    history_file: Path | None = Field(
        default=None,
        description="JSON-lines file the turn history is loaded from and appended to",
    )

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}{self.api_prefix}/chat"

    def api_url(self, path: str) -> str:
        """URL of another participant route, e.g. ``/chat/connect``."""
        return f"{self.base_url}{self.api_prefix}{path}"
