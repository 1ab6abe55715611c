"""Configuration management using pydantic-settings.

``get_app_config()`` re-reads configuration on every call; long-lived
objects (model provider, docs client, connection provider) snapshot the
values they need when they are built.

Priority order (highest first):

1. Environment variables (``MONGOCHAT_`` prefix, ``__`` for nesting)
2. ``.env`` dotenv file
3. Static YAML (``configs/config.yaml``)
4. Init defaults / field defaults
5. File secrets
"""

from pathlib import Path
from typing import Annotated

from fastapi import Depends
from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from .system import (
    APIConfig,
    ChatConfig,
    ConnectionConfig,
    DocsChatbotConfig,
    LLMConfig,
    LoggingConfig,
    TracingConfig,
)

# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

CONFIG_PY_PATH = Path(__file__).resolve()
PROJECT_ROOT = CONFIG_PY_PATH.parent.parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "configs"

STATIC_CONFIG_FILE = CONFIG_DIR / "config.yaml"

DOTENV_FILE_PATH = PROJECT_ROOT / ".env"
ENV_DELIMITER = "__"
ENV_PREFIX = "MONGOCHAT_"

DEFAULT_ENCODING = "utf-8"


class AppConfig(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=DOTENV_FILE_PATH,
        env_file_encoding=DEFAULT_ENCODING,
        env_nested_delimiter=ENV_DELIMITER,
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
        yaml_file=STATIC_CONFIG_FILE,
        yaml_file_encoding=DEFAULT_ENCODING,
    )

    api: APIConfig = Field(
        default_factory=APIConfig,
        description="API configuration settings",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="Chat model client configuration",
    )

    chat: ChatConfig = Field(
        default_factory=ChatConfig,
        description="Participant conversation settings",
    )

    docs_chatbot: DocsChatbotConfig = Field(
        default_factory=DocsChatbotConfig,
        description="Documentation chatbot service",
    )

    connection: ConnectionConfig = Field(
        default_factory=ConnectionConfig,
        description="Named MongoDB connections",
    )

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging output",
    )

    tracing: TracingConfig = Field(
        default_factory=TracingConfig,
        description="OpenTelemetry tracing",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            init_settings,
            file_secret_settings,
        )


def get_app_config() -> AppConfig:
    """Get the application configuration (re-read on every call)."""
    return AppConfig()


def get_api_config(
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> APIConfig:
    return config.api


def get_llm_config(
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> LLMConfig:
    return config.llm


def get_chat_config(
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> ChatConfig:
    return config.chat


def get_docs_chatbot_config(
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> DocsChatbotConfig:
    return config.docs_chatbot


def get_connection_config(
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> ConnectionConfig:
    return config.connection
