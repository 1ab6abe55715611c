"""Chat model factory functions."""

import logging
from typing import Annotated

from fastapi import Depends
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from mongochat.configs.config import get_llm_config
from mongochat.configs.system import LLMConfig

from .provider import ModelProvider

logger = logging.getLogger(__name__)


def get_llm(
    config: Annotated[LLMConfig, Depends(get_llm_config)],
) -> ChatOpenAI:
    """Create a streaming ``ChatOpenAI`` for the configured endpoint."""
    return ChatOpenAI(
        base_url=config.endpoint,
        api_key=config.api_key,
        model=config.model_name,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.model_timeout.total_seconds(),
        max_retries=config.max_retries,
        streaming=True,
    )


def get_model_provider(
    config: Annotated[LLMConfig, Depends(get_llm_config)],
    llm: Annotated[BaseChatModel, Depends(get_llm)],
) -> ModelProvider:
    """Wrap the chat model with the configured input-token budget."""
    return ModelProvider(
        llm,
        max_input_tokens=config.max_input_tokens,
        model_name=config.model_name,
    )
