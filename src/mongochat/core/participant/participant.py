"""The MongoDB chat participant: one ``chat_handler`` call per user turn.

The controller rederives session state from the host's turn history,
routes the request (slash command or model-detected intent), resolves
the namespace for query and schema requests, builds the prompt and lets
the backend dispatcher answer. ``ChatResult.metadata`` carries what the
next turn needs.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from langchain_core.messages import BaseMessage

from mongochat.configs.system import ChatConfig
from mongochat.core.llm import ModelProvider
from mongochat.core.mongo.connection import ConnectionProvider
from mongochat.core.mongo.schema import infer_schema
from mongochat.infra.cancellation import CancellationToken, RequestCancelled
from mongochat.infra.telemetry import (
    ATTR_CHAT_COMMAND,
    ATTR_CHAT_HISTORY_SIZE,
    ATTR_CHAT_INTENT,
    ATTR_SAMPLE_RETURNED,
    ATTR_SAMPLE_SIZE,
    SPAN_CHAT_HANDLER,
    SPAN_INTENT_DETECT,
    SPAN_SAMPLE_DOCUMENTS,
    tracer,
)

from .dispatcher import (
    BackendDispatcher,
    DocsBackend,
    ModelBackend,
    classify_model_error,
)
from .errors import (
    ConnectionUnavailableError,
    ModelResponseError,
    ParticipantErrorType,
)
from .history import get_chat_id_from_history_or_new, last_response, session_facts
from .metadata import ChatMetadataStore
from .metrics import SAMPLE_ENRICHMENT_TOTAL, observe_chat_request
from .models import (
    ADD_CONNECTION_LABEL,
    ASK_TO_CONNECT_MESSAGE,
    COMMAND_DOCS,
    COMMAND_GENERIC,
    COMMAND_QUERY,
    COMMAND_SCHEMA,
    EMPTY_REQUEST_MESSAGE,
    FILTERED_MESSAGE,
    HOST_COMMAND_CONNECT,
    HOST_COMMAND_OPEN_RAW_SCHEMA,
    OFF_TOPIC_MESSAGE,
    OPEN_RAW_SCHEMA_ACTION_TITLE,
    SAMPLE_FETCH_WARNING,
    ChatContext,
    ChatRequest,
    ChatResult,
    ChatResultMetadata,
    ErrorDetails,
    FollowUpAction,
    Intent,
    ResponseStream,
)
from .namespace import NamespaceResolver, command_link
from .post_processor import (
    build_follow_up_actions,
    follow_up_actions_for_code,
    get_runnable_content,
)
from .prompts import (
    DocsPrompt,
    ExportToLanguagePromptArgs,
    Prompts,
    PromptIntent,
    PromptStats,
    QueryPromptArgs,
    SchemaPromptArgs,
    resolve_reconnect_request,
)
from .prompts.base import PromptArgs
from .telemetry import ParticipantTelemetry

logger = logging.getLogger(__name__)

_INTENT_COMMANDS = {
    PromptIntent.QUERY: COMMAND_QUERY,
    PromptIntent.SCHEMA: COMMAND_SCHEMA,
    PromptIntent.DOCS: COMMAND_DOCS,
}

_COMMAND_INTENTS = {
    COMMAND_QUERY: Intent.QUERY,
    COMMAND_SCHEMA: Intent.SCHEMA,
    COMMAND_DOCS: Intent.DOCS,
}

Reaction = Literal["positive", "negative"]


@dataclass
class ExportResult:
    """Model output of an export operation and the code extracted from it."""

    content: str
    code: str | None
    actions: list[FollowUpAction] = field(default_factory=list)


class _ActionAttacher:
    """Adds run/playground buttons for the first code block only."""

    def __init__(self, stream: ResponseStream) -> None:
        self._stream = stream
        self._seen_block = False
        self.actions: list[FollowUpAction] = []

    def __call__(self, code: str) -> None:
        if self._seen_block:
            return
        self._seen_block = True
        self.actions = follow_up_actions_for_code(code)
        for action in self.actions:
            self._stream.button(action)


class ParticipantController:
    """Entry point for chat requests and the participant's side operations."""

    def __init__(
        self,
        *,
        model: ModelProvider,
        connections: ConnectionProvider,
        metadata: ChatMetadataStore,
        telemetry: ParticipantTelemetry,
        docs_backend: DocsBackend | None = None,
        config: ChatConfig | None = None,
    ) -> None:
        self.config = config or ChatConfig()
        self.model = model
        self.connections = connections
        self.metadata = metadata
        self.telemetry = telemetry
        self.dispatcher = BackendDispatcher(
            ModelBackend(model),
            docs_backend,
            metadata,
            telemetry,
            docs_reference_url=self.config.docs_reference_url,
            docs_reference_title=self.config.docs_reference_title,
        )
        self.resolver = NamespaceResolver(
            model,
            connections,
            metadata,
            telemetry,
            max_list_length=self.config.max_namespace_list_length,
        )
        self.docs_prompt = DocsPrompt(self.config.docs_history_length)

    # ------------------------------------------------------------------
    # Chat entry point
    # ------------------------------------------------------------------

    @observe_chat_request
    async def chat_handler(
        self,
        request: ChatRequest,
        context: ChatContext,
        stream: ResponseStream,
        token: CancellationToken | None = None,
    ) -> ChatResult:
        """Handle one user turn.

        Cancellation resolves to a ``cancelledRequest`` result. Off-topic
        and filtered model answers are rendered inline; other classified
        model errors, namespace errors and connection errors propagate.
        """
        with tracer.start_as_current_span(SPAN_CHAT_HANDLER) as span:
            span.set_attribute(ATTR_CHAT_COMMAND, request.command or COMMAND_GENERIC)
            span.set_attribute(ATTR_CHAT_HISTORY_SIZE, len(context.history))
            chat_id = get_chat_id_from_history_or_new(context.history)
            try:
                result = await self._handle(request, context, stream, token, chat_id)
            except RequestCancelled:
                logger.info("Chat request %s cancelled", chat_id)
                result = self._result(Intent.CANCELLED_REQUEST, chat_id)
            except ModelResponseError as exc:
                result = self._handle_model_error(exc, request, stream, chat_id)
            span.set_attribute(ATTR_CHAT_INTENT, result.metadata.intent.value)
            return result

    async def _handle(
        self,
        request: ChatRequest,
        context: ChatContext,
        stream: ResponseStream,
        token: CancellationToken | None,
        chat_id: str,
    ) -> ChatResult:
        connection_names = self.connections.connection_names()

        previous = last_response(context.history)
        if (
            previous is not None
            and previous.intent == Intent.ASK_TO_CONNECT
            and request.prompt in connection_names
        ):
            await self.connections.connect(request.prompt)
            resumed, history = resolve_reconnect_request(
                request, context.history, connection_names
            )
            logger.info("Connected to %s; resuming the previous request", request.prompt)
            request, context = resumed, ChatContext(history=history)

        if Prompts.is_prompt_empty(request.prompt):
            previous = last_response(context.history)
            if previous is not None and previous.intent == Intent.ASK_FOR_NAMESPACE:
                command = (
                    request.command
                    or previous.result.metadata.command
                    or previous.command
                    or COMMAND_QUERY
                )
                request = request.model_copy(update={"command": command})
                return await self._handle_namespace_command(
                    request, context, stream, token, chat_id
                )
            stream.markdown(EMPTY_REQUEST_MESSAGE)
            return self._result(Intent.EMPTY_REQUEST, chat_id)

        command = request.command
        if command is None:
            intent = await self._detect_intent(request, context, token)
            command = _INTENT_COMMANDS.get(intent)
            if command is not None:
                request = request.model_copy(update={"command": command})

        if command in (COMMAND_QUERY, COMMAND_SCHEMA):
            return await self._handle_namespace_command(
                request, context, stream, token, chat_id
            )
        if command == COMMAND_DOCS:
            return await self._handle_docs(request, context, stream, token, chat_id)
        return await self._handle_generic(request, context, stream, token, chat_id)

    def _result(
        self,
        intent: Intent,
        chat_id: str,
        *,
        database_name: str | None = None,
        collection_name: str | None = None,
        external_conversation_id: str | None = None,
        error_details: ErrorDetails | None = None,
        command: str | None = None,
    ) -> ChatResult:
        return ChatResult(
            metadata=ChatResultMetadata(
                intent=intent,
                chat_id=chat_id,
                database_name=database_name,
                collection_name=collection_name,
                external_conversation_id=external_conversation_id,
                command=command,
            ),
            error_details=error_details,
        )

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    async def _complete(
        self, messages: Sequence[BaseMessage], token: CancellationToken | None
    ) -> str:
        try:
            return await self.model.complete(messages, token)
        except RequestCancelled:
            raise
        except Exception as exc:
            raise classify_model_error(exc) from exc

    async def _detect_intent(
        self,
        request: ChatRequest,
        context: ChatContext,
        token: CancellationToken | None,
    ) -> PromptIntent:
        with tracer.start_as_current_span(SPAN_INTENT_DETECT) as span:
            model_input = Prompts.intent.build_messages(
                PromptArgs(
                    request=request,
                    context=context,
                    connection_names=self.connections.connection_names(),
                ),
                self.model,
            )
            self.telemetry.track_prompt_submitted(model_input.stats)
            response = await self._complete(model_input.messages, token)
            intent = Prompts.intent.get_intent_from_model_response(response)
            span.set_attribute(ATTR_CHAT_INTENT, intent.value)
            logger.debug("Detected intent %s", intent)
            return intent

    def _handle_model_error(
        self,
        exc: ModelResponseError,
        request: ChatRequest,
        stream: ResponseStream,
        chat_id: str,
    ) -> ChatResult:
        command = request.command or COMMAND_GENERIC
        self.telemetry.track_response_failed(
            command=command,
            error_type=exc.error_type,
            error_code=exc.code,
            error_details=str(exc),
            metadata=self.metadata.get_chat_metadata(chat_id),
        )
        intent = _COMMAND_INTENTS.get(command, Intent.GENERIC)
        if exc.error_type == ParticipantErrorType.CHAT_MODEL_OFF_TOPIC:
            stream.markdown(OFF_TOPIC_MESSAGE)
            return self._result(intent, chat_id)
        if exc.error_type == ParticipantErrorType.FILTERED:
            stream.markdown(FILTERED_MESSAGE)
            return self._result(
                intent,
                chat_id,
                error_details=ErrorDetails(message=ParticipantErrorType.FILTERED),
            )
        logger.warning("Chat model request failed (%s): %s", exc.error_type, exc)
        raise exc

    # ------------------------------------------------------------------
    # Connect flow
    # ------------------------------------------------------------------

    def _ask_to_connect(
        self, request: ChatRequest, stream: ResponseStream, chat_id: str
    ) -> ChatResult:
        stream.markdown(ASK_TO_CONNECT_MESSAGE)
        command = f"/{request.command}" if request.command else ""
        links = [
            "- " + command_link(name, HOST_COMMAND_CONNECT, {"id": name, "command": command})
            for name in self.connections.connection_names()
        ]
        links.append(
            "- " + command_link(ADD_CONNECTION_LABEL, HOST_COMMAND_CONNECT, {"command": command})
        )
        stream.markdown("\n\n" + "\n".join(links))
        return self._result(Intent.ASK_TO_CONNECT, chat_id)

    # ------------------------------------------------------------------
    # Query and schema
    # ------------------------------------------------------------------

    async def _handle_namespace_command(
        self,
        request: ChatRequest,
        context: ChatContext,
        stream: ResponseStream,
        token: CancellationToken | None,
        chat_id: str,
    ) -> ChatResult:
        if self.connections.get_active_connection() is None:
            return self._ask_to_connect(request, stream, chat_id)

        stored = self.metadata.get_chat_metadata(chat_id)
        facts = session_facts(
            context.history,
            chat_id=chat_id,
            namespace_is_known=stored is not None
            and stored.database_name is not None
            and stored.collection_name is not None,
        )
        resolution = await self.resolver.resolve(
            request=request, context=context, facts=facts, stream=stream, token=token
        )
        state = resolution.state
        if resolution.asked or state.database_name is None or state.collection_name is None:
            return self._result(
                Intent.ASK_FOR_NAMESPACE,
                chat_id,
                database_name=state.database_name,
                command=request.command,
            )

        if request.command == COMMAND_SCHEMA:
            return await self._handle_schema(
                request, context, stream, token, chat_id,
                state.database_name, state.collection_name,
            )
        return await self._handle_query(
            request, context, stream, token, chat_id,
            state.database_name, state.collection_name,
        )

    async def _sample(
        self,
        database_name: str,
        collection_name: str,
        size: int,
        token: CancellationToken | None,
    ) -> list[dict[str, Any]]:
        with tracer.start_as_current_span(SPAN_SAMPLE_DOCUMENTS) as span:
            span.set_attribute(ATTR_SAMPLE_SIZE, size)
            documents = await self.connections.sample(
                database_name, collection_name, size=size, token=token
            )
            span.set_attribute(ATTR_SAMPLE_RETURNED, len(documents))
            return documents

    async def _handle_query(
        self,
        request: ChatRequest,
        context: ChatContext,
        stream: ResponseStream,
        token: CancellationToken | None,
        chat_id: str,
        database_name: str,
        collection_name: str,
    ) -> ChatResult:
        schema: str | None = None
        documents: list[dict[str, Any]] = []
        try:
            documents = await self._sample(
                database_name, collection_name, self.config.query_sample_size, token
            )
            if documents:
                schema = infer_schema(documents).format()
        except RequestCancelled:
            raise
        except Exception:
            logger.warning(
                "Unable to sample %s.%s for enrichment",
                database_name,
                collection_name,
                exc_info=True,
            )
            SAMPLE_ENRICHMENT_TOTAL.labels(result="failed").inc()
            stream.markdown(SAMPLE_FETCH_WARNING + "\n\n")

        model_input = Prompts.query.build_messages(
            QueryPromptArgs(
                request=request,
                context=context,
                connection_names=self.connections.connection_names(),
                database_name=database_name,
                collection_name=collection_name,
                schema=schema,
                sample_documents=documents,
                max_sample_array_length=self.config.max_sample_array_length,
            ),
            self.model,
        )
        if documents:
            SAMPLE_ENRICHMENT_TOTAL.labels(
                result="included" if model_input.stats.has_sample_documents else "omitted"
            ).inc()
        self.telemetry.track_prompt_submitted(model_input.stats)

        attacher = _ActionAttacher(stream)
        answer = await self.dispatcher.answer(
            model_input.messages,
            stream,
            token,
            chat_id=chat_id,
            command=COMMAND_QUERY,
            on_code_block=attacher,
        )
        self.telemetry.track_response_generated(
            command=COMMAND_QUERY,
            output_length=len(answer.content),
            has_cta=bool(attacher.actions),
            has_runnable_content=bool(attacher.actions),
            found_namespace=True,
            backend_used=answer.backend_used.value,
        )
        return self._result(
            Intent.QUERY,
            chat_id,
            database_name=database_name,
            collection_name=collection_name,
        )

    async def _handle_schema(
        self,
        request: ChatRequest,
        context: ChatContext,
        stream: ResponseStream,
        token: CancellationToken | None,
        chat_id: str,
        database_name: str,
        collection_name: str,
    ) -> ChatResult:
        result = self._result(
            Intent.SCHEMA,
            chat_id,
            database_name=database_name,
            collection_name=collection_name,
        )
        try:
            documents = await self._sample(
                database_name, collection_name, self.config.schema_sample_size, token
            )
        except RequestCancelled:
            raise
        except Exception as exc:
            logger.warning(
                "Unable to sample %s.%s for its schema",
                database_name,
                collection_name,
                exc_info=True,
            )
            stream.markdown(
                "Unable to generate a schema from the collection, an error occurred: "
                f"{exc}"
            )
            return result

        if not documents:
            stream.markdown(
                "Unable to generate a schema from the collection, no documents found."
            )
            return result

        schema = infer_schema(documents)
        model_input = Prompts.schema.build_messages(
            SchemaPromptArgs(
                request=request,
                context=context,
                connection_names=self.connections.connection_names(),
                database_name=database_name,
                collection_name=collection_name,
                schema=schema.format(),
                amount_of_documents_sampled=schema.sample_size,
            ),
            self.model,
        )
        self.telemetry.track_prompt_submitted(model_input.stats)

        answer = await self.dispatcher.answer(
            model_input.messages, stream, token, chat_id=chat_id, command=COMMAND_SCHEMA
        )
        stream.button(
            FollowUpAction(
                command=HOST_COMMAND_OPEN_RAW_SCHEMA,
                title=OPEN_RAW_SCHEMA_ACTION_TITLE,
                arguments=[{"schema": json.dumps(schema.to_dict(), indent=2)}],
            )
        )
        self.telemetry.track_response_generated(
            command=COMMAND_SCHEMA,
            output_length=len(answer.content),
            has_cta=True,
            found_namespace=True,
            backend_used=answer.backend_used.value,
        )
        return result

    # ------------------------------------------------------------------
    # Docs and generic
    # ------------------------------------------------------------------

    async def _handle_docs(
        self,
        request: ChatRequest,
        context: ChatContext,
        stream: ResponseStream,
        token: CancellationToken | None,
        chat_id: str,
    ) -> ChatResult:
        args = PromptArgs(
            request=request,
            context=context,
            connection_names=self.connections.connection_names(),
        )
        docs_message = self.docs_prompt.build_message(args)
        self.telemetry.track_prompt_submitted(
            PromptStats(
                command=COMMAND_DOCS,
                total_message_length=docs_message.total_message_length,
                user_input_length=len(request.prompt),
                has_sample_documents=False,
                history_size=len(context.history),
            )
        )
        model_input = Prompts.generic.build_messages(args, self.model)

        answer = await self.dispatcher.answer(
            model_input.messages,
            stream,
            token,
            chat_id=chat_id,
            command=COMMAND_DOCS,
            docs_message=docs_message.message,
        )
        self.telemetry.track_response_generated(
            command=COMMAND_DOCS,
            output_length=len(answer.content),
            backend_used=answer.backend_used.value,
        )
        return self._result(
            Intent.DOCS,
            chat_id,
            external_conversation_id=answer.external_conversation_id,
        )

    async def _handle_generic(
        self,
        request: ChatRequest,
        context: ChatContext,
        stream: ResponseStream,
        token: CancellationToken | None,
        chat_id: str,
    ) -> ChatResult:
        model_input = Prompts.generic.build_messages(
            PromptArgs(
                request=request,
                context=context,
                connection_names=self.connections.connection_names(),
            ),
            self.model,
        )
        self.telemetry.track_prompt_submitted(model_input.stats)

        attacher = _ActionAttacher(stream)
        answer = await self.dispatcher.answer(
            model_input.messages,
            stream,
            token,
            chat_id=chat_id,
            command=request.command,
            on_code_block=attacher,
        )
        self.telemetry.track_response_generated(
            command=COMMAND_GENERIC,
            output_length=len(answer.content),
            has_cta=bool(attacher.actions),
            has_runnable_content=bool(attacher.actions),
            backend_used=answer.backend_used.value,
        )
        return self._result(Intent.GENERIC, chat_id)

    # ------------------------------------------------------------------
    # Side operations
    # ------------------------------------------------------------------

    async def export_to_language(
        self,
        code: str,
        *,
        language: str,
        include_driver_syntax: bool = False,
        token: CancellationToken | None = None,
    ) -> ExportResult:
        """Transpile a playground snippet to *language*."""
        model_input = Prompts.export_to_language.build_messages(
            ExportToLanguagePromptArgs(
                request=ChatRequest(prompt=code),
                language=language,
                include_driver_syntax=include_driver_syntax,
            ),
            self.model,
        )
        self.telemetry.track_prompt_submitted(model_input.stats)
        content = await self._complete(model_input.messages, token)
        match = re.search(
            rf"```{re.escape(language)}[^\n]*\n(.*?)```", content, re.DOTALL
        )
        return ExportResult(content=content, code=match.group(1).strip() if match else None)

    async def export_to_playground(
        self,
        code: str,
        *,
        token: CancellationToken | None = None,
    ) -> ExportResult:
        """Convert driver code in any language to shell syntax."""
        model_input = Prompts.export_to_playground.build_messages(
            PromptArgs(request=ChatRequest(prompt=code)), self.model
        )
        self.telemetry.track_prompt_submitted(model_input.stats)
        content = await self._complete(model_input.messages, token)
        runnable = get_runnable_content(content)
        return ExportResult(
            content=content,
            code=runnable.strip() if runnable is not None else None,
            actions=build_follow_up_actions(content),
        )

    def select_namespace(
        self,
        chat_id: str,
        database_name: str,
        collection_name: str | None = None,
    ) -> None:
        """Record a database/collection clicked in a rendered list."""
        self.metadata.patch_chat_metadata(
            chat_id, database_name=database_name, collection_name=collection_name
        )
        self.metadata.mark_used(database_name, collection_name)
        logger.info("Namespace selected for %s", chat_id)

    async def connect(self, name: str) -> None:
        """Activate the named connection.

        Raises:
            ConnectionUnavailableError: unknown name or connect failed.
        """
        if name not in self.connections.connection_names():
            raise ConnectionUnavailableError(f"Unknown connection: {name}")
        await self.connections.connect(name)

    def handle_feedback(
        self,
        *,
        chat_id: str,
        reaction: Reaction,
        intent: Intent | None = None,
        reason: str | None = None,
    ) -> None:
        self.telemetry.track_feedback(
            chat_id=chat_id,
            reaction=reaction,
            intent=intent.value if intent else None,
            reason=reason,
        )
