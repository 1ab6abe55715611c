"""FastAPI application entry point."""

import logging
from typing import Annotated, AsyncGenerator

from fastapi import Depends, FastAPI

from mongochat.api.chat import router as chat_router
from mongochat.api.exceptions import build_exception_handlers
from mongochat.configs.config import get_app_config
from mongochat.core.mongo.connection import build_connection_provider
from mongochat.core.participant.docs_chatbot import build_docs_chatbot
from mongochat.core.participant.metrics import build_metrics, instrument_app
from mongochat.infra.lifespan import inject
from mongochat.infra.logging import setup_logging
from mongochat.infra.telemetry import build_telemetry

logger = logging.getLogger(__name__)


@inject
async def lifespan(
    app: FastAPI,
    _telemetry: Annotated[None, Depends(build_telemetry)],
    _metrics: Annotated[None, Depends(build_metrics)],
    _exception_handlers: Annotated[None, Depends(build_exception_handlers)],
    _connection_provider: Annotated[None, Depends(build_connection_provider)],
    _docs_chatbot: Annotated[None, Depends(build_docs_chatbot)],
) -> AsyncGenerator[None, None]:
    """Application lifespan: every ``build_*`` dependency owns its teardown."""
    logger.info("Starting mongochat application...")
    yield
    logger.info("Shutting down mongochat application...")


def get_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    config = get_app_config()
    setup_logging(config.logging)

    app = FastAPI(
        title="mongochat",
        description="MongoDB chat participant: queries, schemas and docs answers",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(chat_router)
    instrument_app(app, config.tracing)

    return app


app = get_app()
