"""Global exception handlers (lifespan dependency)."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from mongochat.core.participant.errors import (
    ConnectionUnavailableError,
    ModelResponseError,
)
from mongochat.infra.lifespan import get_app


async def build_exception_handlers(
    app: Annotated[FastAPI, Depends(get_app)],
) -> AsyncGenerator[None, None]:
    """Register custom exception handlers on ``app``.

    Covers the JSON endpoints; chat streams report errors as SSE events.
    """

    @app.exception_handler(ConnectionUnavailableError)
    async def handle_connection_unavailable(
        request: Request, exc: ConnectionUnavailableError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "code": "CONNECTION_ERROR"},
        )

    @app.exception_handler(ModelResponseError)
    async def handle_model_error(
        request: Request, exc: ModelResponseError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={
                "detail": f"The model request failed: {exc.error_type.value}",
                "code": "MODEL_ERROR",
            },
        )

    yield
