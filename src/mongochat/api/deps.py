"""Centralized FastAPI dependency type aliases.

Import these ``*Dep`` aliases in route modules instead of manually
writing ``Annotated[T, Depends(get_xxx)]`` everywhere. Each alias
corresponds to a single ``get_*`` factory and can be overridden in
tests via ``app.dependency_overrides[get_xxx] = ...``.
"""

from typing import Annotated

from fastapi import Depends

from mongochat.configs.config import get_api_config
from mongochat.configs.system import APIConfig
from mongochat.core.participant.deps import get_participant_controller
from mongochat.core.participant.participant import ParticipantController

APIConfigDep = Annotated[APIConfig, Depends(get_api_config)]
ParticipantControllerDep = Annotated[
    ParticipantController, Depends(get_participant_controller)
]
