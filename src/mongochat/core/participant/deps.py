"""FastAPI dependency factories for the participant.

Process-wide state (the chat metadata store and the telemetry sink) is
created once; the controller itself is a per-request ``Depends``
factory over the shared collaborators in ``app.state``.
"""

from typing import Annotated

from fastapi import Depends

from mongochat.configs.config import get_chat_config
from mongochat.configs.system import ChatConfig
from mongochat.core.llm import ModelProvider, get_model_provider
from mongochat.core.mongo.connection import ConnectionProvider, get_connection_provider
from mongochat.infra.singleton import singleton

from .docs_chatbot import DocsChatbotClient, get_docs_chatbot
from .metadata import ChatMetadataStore
from .participant import ParticipantController
from .telemetry import ParticipantTelemetry


@singleton
def get_metadata_store() -> ChatMetadataStore:
    return ChatMetadataStore()


@singleton
def get_participant_telemetry() -> ParticipantTelemetry:
    return ParticipantTelemetry()


def get_participant_controller(
    model: Annotated[ModelProvider, Depends(get_model_provider)],
    connections: Annotated[ConnectionProvider, Depends(get_connection_provider)],
    docs_chatbot: Annotated[DocsChatbotClient | None, Depends(get_docs_chatbot)],
    metadata: Annotated[ChatMetadataStore, Depends(get_metadata_store)],
    telemetry: Annotated[ParticipantTelemetry, Depends(get_participant_telemetry)],
    config: Annotated[ChatConfig, Depends(get_chat_config)],
) -> ParticipantController:
    """Build a controller per request over the shared collaborators."""
    return ParticipantController(
        model=model,
        connections=connections,
        metadata=metadata,
        telemetry=telemetry,
        docs_backend=docs_chatbot,
        config=config,
    )
