"""Chat API endpoint implementation."""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse

from mongochat.core.participant.models import ChatContext, ChatRequest
from mongochat.infra.cancellation import CancellationToken
from mongochat.infra.id_utils import REQUEST_ID_PREFIX, generate_id

from .deps import APIConfigDep, ParticipantControllerDep
from .models import (
    ChatApiRequest,
    ConnectRequest,
    ExportResponse,
    ExportToLanguageRequest,
    ExportToPlaygroundRequest,
    FeedbackRequest,
    NamespaceSelectionRequest,
    StatusResponse,
)
from .streaming import chat_events, sse_stream

logger = logging.getLogger(__name__)

STREAMING_RESPONSE_MEDIA_TYPE = "text/event-stream"
STREAMING_RESPONSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Headers": "Cache-Control",
}

router = APIRouter(prefix="/api/v1", tags=["chat"])


@router.post("/chat")
async def chat(
    chat_request: ChatApiRequest,
    controller: ParticipantControllerDep,
    api_config: APIConfigDep,
) -> StreamingResponse:
    """
    Handle one chat turn and stream the response.

    The response is a stream of Server-Sent Events, each a JSON object:
    - markdown: a fragment of the answer
    - button: a follow-up action (run, open in playground, ...)
    - reference: a citation link
    - result: the ``ChatResult`` the client stores with the turn
    - error: error information

    Client disconnection cancels outbound model, docs and database calls.
    """
    if len(chat_request.prompt) > api_config.prompt_max_length:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Prompt exceeds {api_config.prompt_max_length} characters",
        )

    request_id = generate_id(REQUEST_ID_PREFIX)
    logger.info(
        "Chat request %s: command=%s history=%d",
        request_id,
        chat_request.command,
        len(chat_request.history),
    )
    events = chat_events(
        controller,
        ChatRequest(prompt=chat_request.prompt, command=chat_request.command),
        ChatContext(history=tuple(chat_request.history)),
        CancellationToken(),
    )
    return StreamingResponse(
        sse_stream(
            events,
            request_timeout=api_config.request_timeout,
            send_traceback=api_config.send_traceback,
        ),
        media_type=STREAMING_RESPONSE_MEDIA_TYPE,
        headers=STREAMING_RESPONSE_HEADERS,
    )


@router.post("/chat/namespace")
async def select_namespace(
    selection: NamespaceSelectionRequest,
    controller: ParticipantControllerDep,
) -> StatusResponse:
    """Store a database/collection clicked in a rendered list."""
    controller.select_namespace(
        selection.chat_id, selection.database_name, selection.collection_name
    )
    return StatusResponse()


@router.post("/chat/connect")
async def connect(
    connect_request: ConnectRequest,
    controller: ParticipantControllerDep,
) -> StatusResponse:
    """Activate a named connection."""
    await controller.connect(connect_request.name)
    return StatusResponse()


@router.post("/chat/feedback")
async def feedback(
    feedback_request: FeedbackRequest,
    controller: ParticipantControllerDep,
) -> StatusResponse:
    controller.handle_feedback(
        chat_id=feedback_request.chat_id,
        reaction=feedback_request.reaction,
        intent=feedback_request.intent,
        reason=feedback_request.reason,
    )
    return StatusResponse()


@router.post("/export/language")
async def export_to_language(
    export_request: ExportToLanguageRequest,
    controller: ParticipantControllerDep,
) -> ExportResponse:
    """Transpile playground code to a driver language."""
    result = await controller.export_to_language(
        export_request.code,
        language=export_request.language,
        include_driver_syntax=export_request.include_driver_syntax,
    )
    return ExportResponse(content=result.content, code=result.code)


@router.post("/export/playground")
async def export_to_playground(
    export_request: ExportToPlaygroundRequest,
    controller: ParticipantControllerDep,
) -> ExportResponse:
    """Convert driver code to shell syntax for a playground."""
    result = await controller.export_to_playground(export_request.code)
    return ExportResponse(
        content=result.content, code=result.code, actions=result.actions
    )
