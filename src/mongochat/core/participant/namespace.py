"""Namespace resolution: which database and collection a request targets.

The flow is an explicit finite-state machine. ``transition`` is a pure
function ``(state, event) -> (state, output)``; ``NamespaceResolver`` is
the imperative shell that runs the extraction prompt, performs the
enumerations the machine asks for and renders its questions::

    UNRESOLVED --NamespaceExtracted--> AWAITING_DATABASE   (ListDatabases)
                                   \\-> AWAITING_COLLECTION (ListCollections)
                                   \\-> RESOLVED            (Proceed)
    AWAITING_DATABASE   --DatabasesListed-->   AWAITING_COLLECTION | asks | FAILED
    AWAITING_COLLECTION --CollectionsListed--> RESOLVED | asks | FAILED
    any awaiting phase  --EnumerationFailed--> FAILED

An ``AskFor*`` output ends the turn; the next turn starts over from
``UNRESOLVED`` with whatever the user answered plus stored metadata.
An empty answer re-lists the names of the pending question and asks it
again, even when only one name is left.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from urllib.parse import quote

from mongochat.core.llm import ModelProvider
from mongochat.core.mongo.connection import ConnectionProvider
from mongochat.infra.cancellation import CancellationToken, RequestCancelled
from mongochat.infra.telemetry import (
    ATTR_NAMESPACE_CANDIDATES,
    ATTR_NAMESPACE_PHASE,
    SPAN_NAMESPACE_ENUMERATE,
    SPAN_NAMESPACE_RESOLVE,
    tracer,
)

from .dispatcher import classify_model_error
from .errors import (
    NamespaceEnumerationError,
    NamespaceResolutionError,
    NoCollectionsFoundError,
    NoDatabasesFoundError,
)
from .history import HistoryFacts
from .metadata import ChatMetadataStore, order_by_recency
from .metrics import NAMESPACE_RESOLUTIONS_TOTAL
from .models import (
    ASK_FOR_COLLECTION_FOR_SCHEMA_MESSAGE,
    ASK_FOR_COLLECTION_MESSAGE,
    ASK_FOR_DATABASE_FOR_SCHEMA_MESSAGE,
    ASK_FOR_DATABASE_MESSAGE,
    COMMAND_SCHEMA,
    HOST_COMMAND_SELECT_COLLECTION,
    HOST_COMMAND_SELECT_DATABASE,
    SELECT_COLLECTION_HINT,
    SELECT_DATABASE_HINT,
    SHOW_MORE_LABEL,
    ChatContext,
    ChatRequest,
    ResponseStream,
)
from .prompts import ExtractedNamespace, Prompts, parse_namespace_response
from .prompts.base import PromptArgs
from .telemetry import ParticipantTelemetry

logger = logging.getLogger(__name__)

DEFAULT_MAX_LIST_LENGTH = 10


class Phase(StrEnum):
    UNRESOLVED = "unresolved"
    AWAITING_DATABASE = "awaitingDatabase"
    AWAITING_COLLECTION = "awaitingCollection"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class NamespaceState:
    phase: Phase = Phase.UNRESOLVED
    database_name: str | None = None
    collection_name: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.phase == Phase.RESOLVED


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NamespaceExtracted:
    """Names known after merging extraction with stored metadata."""

    database_name: str | None = None
    collection_name: str | None = None


@dataclass(frozen=True)
class DatabasesListed:
    names: tuple[str, ...]


@dataclass(frozen=True)
class CollectionsListed:
    names: tuple[str, ...]


@dataclass(frozen=True)
class EnumerationFailed:
    target: str
    cause: BaseException


NamespaceEvent = NamespaceExtracted | DatabasesListed | CollectionsListed | EnumerationFailed

# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ListDatabases:
    pass


@dataclass(frozen=True)
class ListCollections:
    database_name: str


@dataclass(frozen=True)
class AskForDatabase:
    names: tuple[str, ...]


@dataclass(frozen=True)
class AskForCollection:
    database_name: str
    names: tuple[str, ...]


@dataclass(frozen=True)
class Proceed:
    database_name: str
    collection_name: str


@dataclass(frozen=True)
class Fail:
    error: NamespaceResolutionError


NamespaceOutput = (
    ListDatabases | ListCollections | AskForDatabase | AskForCollection | Proceed | Fail
)


class InvalidTransitionError(Exception):
    def __init__(self, state: NamespaceState, event: NamespaceEvent) -> None:
        super().__init__(
            f"{type(event).__name__} is not valid in phase {state.phase.value}"
        )


def transition(
    state: NamespaceState, event: NamespaceEvent
) -> tuple[NamespaceState, NamespaceOutput]:
    """Advance the namespace machine by one event.

    Raises:
        InvalidTransitionError: *event* cannot happen in ``state.phase``.
    """
    if isinstance(event, EnumerationFailed) and state.phase in (
        Phase.AWAITING_DATABASE,
        Phase.AWAITING_COLLECTION,
    ):
        return (
            NamespaceState(Phase.FAILED, state.database_name),
            Fail(NamespaceEnumerationError(event.target, event.cause)),
        )

    if state.phase == Phase.UNRESOLVED and isinstance(event, NamespaceExtracted):
        if event.database_name is None:
            return NamespaceState(Phase.AWAITING_DATABASE), ListDatabases()
        if event.collection_name is None:
            return (
                NamespaceState(Phase.AWAITING_COLLECTION, event.database_name),
                ListCollections(event.database_name),
            )
        return (
            NamespaceState(Phase.RESOLVED, event.database_name, event.collection_name),
            Proceed(event.database_name, event.collection_name),
        )

    if state.phase == Phase.AWAITING_DATABASE and isinstance(event, DatabasesListed):
        if not event.names:
            return NamespaceState(Phase.FAILED), Fail(NoDatabasesFoundError())
        if len(event.names) == 1:
            database_name = event.names[0]
            return (
                NamespaceState(Phase.AWAITING_COLLECTION, database_name),
                ListCollections(database_name),
            )
        return state, AskForDatabase(event.names)

    if (
        state.phase == Phase.AWAITING_COLLECTION
        and isinstance(event, CollectionsListed)
        and state.database_name is not None
    ):
        if not event.names:
            return (
                NamespaceState(Phase.FAILED, state.database_name),
                Fail(NoCollectionsFoundError(state.database_name)),
            )
        if len(event.names) == 1:
            return (
                NamespaceState(Phase.RESOLVED, state.database_name, event.names[0]),
                Proceed(state.database_name, event.names[0]),
            )
        return state, AskForCollection(state.database_name, event.names)

    raise InvalidTransitionError(state, event)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def command_link(label: str, command: str, data: dict[str, str]) -> str:
    """Markdown link that runs a host command with a JSON payload."""
    return f"[{label}](command:{command}?{quote(json.dumps(data))})"


def render_names(
    names: Sequence[str],
    *,
    chat_id: str,
    database_name: str | None,
    recent: Sequence[str],
    max_length: int = DEFAULT_MAX_LIST_LENGTH,
) -> str:
    """Capped, recency-ordered bullet list of selectable names.

    Databases are listed when *database_name* is ``None``, otherwise the
    collections of that database.
    """
    ordered = order_by_recency(list(names), list(recent))
    if database_name is None:
        command = HOST_COMMAND_SELECT_DATABASE
        base: dict[str, str] = {"chatId": chat_id}
        key = "databaseName"
    else:
        command = HOST_COMMAND_SELECT_COLLECTION
        base = {"chatId": chat_id, "databaseName": database_name}
        key = "collectionName"

    lines = [
        "- " + command_link(name, command, {**base, key: name})
        for name in ordered[:max_length]
    ]
    if len(ordered) > max_length:
        lines.append("- " + command_link(SHOW_MORE_LABEL, command, base))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


@dataclass
class NamespaceResolution:
    """Final state of one resolution run."""

    state: NamespaceState
    asked: bool = False
    candidates: tuple[str, ...] = field(default_factory=tuple)


class NamespaceResolver:
    """Drives ``transition`` against the model, connection and metadata."""

    def __init__(
        self,
        model: ModelProvider,
        connections: ConnectionProvider,
        metadata: ChatMetadataStore,
        telemetry: ParticipantTelemetry,
        *,
        max_list_length: int = DEFAULT_MAX_LIST_LENGTH,
    ) -> None:
        self.model = model
        self.connections = connections
        self.metadata = metadata
        self.telemetry = telemetry
        self.max_list_length = max_list_length

    async def extract(
        self,
        request: ChatRequest,
        context: ChatContext,
        token: CancellationToken | None,
    ) -> ExtractedNamespace:
        """Ask the model for names mentioned in the conversation."""
        if Prompts.is_prompt_empty(request.prompt):
            return ExtractedNamespace()
        model_input = Prompts.namespace.build_messages(
            PromptArgs(
                request=request,
                context=context,
                connection_names=self.connections.connection_names(),
            ),
            self.model,
        )
        self.telemetry.track_prompt_submitted(model_input.stats)
        try:
            response = await self.model.complete(model_input.messages, token)
        except RequestCancelled:
            raise
        except Exception as exc:
            raise classify_model_error(exc) from exc
        return parse_namespace_response(response)

    async def resolve(
        self,
        *,
        request: ChatRequest,
        context: ChatContext,
        facts: HistoryFacts,
        stream: ResponseStream,
        token: CancellationToken | None = None,
    ) -> NamespaceResolution:
        """Resolve the namespace for a query or schema request.

        Renders a database or collection question on *stream* when the
        user has to choose; the returned resolution then has ``asked`` set.

        Raises:
            NamespaceResolutionError: enumeration failed or found nothing.
            RequestCancelled: *token* fired.
        """
        with tracer.start_as_current_span(SPAN_NAMESPACE_RESOLVE) as span:
            if Prompts.is_prompt_empty(request.prompt) and facts.asked_for_namespace:
                state, output = await self._pending_question(facts, token)
            else:
                extracted = await self.extract(request, context, token)
                stored = self.metadata.get_chat_metadata(facts.chat_id)
                event = NamespaceExtracted(
                    database_name=extracted.database_name
                    or (stored.database_name if stored else None),
                    collection_name=extracted.collection_name
                    or (stored.collection_name if stored else None),
                )
                state, output = transition(NamespaceState(), event)

            resolution = await self._run(
                state, output, request=request, facts=facts, stream=stream, token=token
            )
            span.set_attribute(ATTR_NAMESPACE_PHASE, resolution.state.phase.value)
            span.set_attribute(ATTR_NAMESPACE_CANDIDATES, len(resolution.candidates))
            return resolution

    async def _pending_question(
        self, facts: HistoryFacts, token: CancellationToken | None
    ) -> tuple[NamespaceState, NamespaceOutput]:
        """Ask the pending question again, never auto-selecting a name."""
        database_name = facts.pending_database_name
        if database_name is None:
            state = NamespaceState(Phase.AWAITING_DATABASE)
            event = await self._enumerate("databases", None, token)
        else:
            state = NamespaceState(Phase.AWAITING_COLLECTION, database_name)
            event = await self._enumerate(
                f"collections of {database_name}", database_name, token
            )

        if isinstance(event, DatabasesListed) and event.names:
            return state, AskForDatabase(event.names)
        if isinstance(event, CollectionsListed) and event.names and database_name:
            return state, AskForCollection(database_name, event.names)
        # Failed or empty enumerations still end the turn.
        return transition(state, event)

    async def _run(
        self,
        state: NamespaceState,
        output: NamespaceOutput,
        *,
        request: ChatRequest,
        facts: HistoryFacts,
        stream: ResponseStream,
        token: CancellationToken | None,
    ) -> NamespaceResolution:
        while True:
            if isinstance(output, ListDatabases):
                event = await self._enumerate("databases", None, token)
            elif isinstance(output, ListCollections):
                event = await self._enumerate(
                    f"collections of {output.database_name}", output.database_name, token
                )
            elif isinstance(output, AskForDatabase):
                self._render_question(
                    stream, request, facts.chat_id, None, output.names
                )
                NAMESPACE_RESOLUTIONS_TOTAL.labels(outcome="asked").inc()
                return NamespaceResolution(state, asked=True, candidates=output.names)
            elif isinstance(output, AskForCollection):
                # The database is settled; keep it for the next turn.
                self.metadata.patch_chat_metadata(
                    facts.chat_id, database_name=output.database_name
                )
                self._render_question(
                    stream, request, facts.chat_id, output.database_name, output.names
                )
                NAMESPACE_RESOLUTIONS_TOTAL.labels(outcome="asked").inc()
                return NamespaceResolution(state, asked=True, candidates=output.names)
            elif isinstance(output, Proceed):
                self.metadata.patch_chat_metadata(
                    facts.chat_id,
                    database_name=output.database_name,
                    collection_name=output.collection_name,
                )
                self.metadata.mark_used(output.database_name, output.collection_name)
                NAMESPACE_RESOLUTIONS_TOTAL.labels(outcome="resolved").inc()
                return NamespaceResolution(state)
            else:
                NAMESPACE_RESOLUTIONS_TOTAL.labels(outcome="failed").inc()
                logger.warning("Namespace resolution failed: %s", output.error)
                raise output.error

            state, output = transition(state, event)

    async def _enumerate(
        self,
        target: str,
        database_name: str | None,
        token: CancellationToken | None,
    ) -> NamespaceEvent:
        with tracer.start_as_current_span(SPAN_NAMESPACE_ENUMERATE) as span:
            try:
                if database_name is None:
                    names = await self.connections.list_databases(token)
                else:
                    names = await self.connections.list_collections(database_name, token)
            except RequestCancelled:
                raise
            except Exception as exc:
                logger.warning("Unable to fetch %s", target, exc_info=True)
                return EnumerationFailed(target, exc)
            span.set_attribute(ATTR_NAMESPACE_CANDIDATES, len(names))

        if database_name is None:
            return DatabasesListed(tuple(names))
        return CollectionsListed(tuple(names))

    def _render_question(
        self,
        stream: ResponseStream,
        request: ChatRequest,
        chat_id: str,
        database_name: str | None,
        names: Sequence[str],
    ) -> None:
        for_schema = request.command == COMMAND_SCHEMA
        if database_name is None:
            question = (
                ASK_FOR_DATABASE_FOR_SCHEMA_MESSAGE if for_schema else ASK_FOR_DATABASE_MESSAGE
            )
            recent = self.metadata.recent_databases()
            hint = SELECT_DATABASE_HINT
        else:
            question = (
                ASK_FOR_COLLECTION_FOR_SCHEMA_MESSAGE
                if for_schema
                else ASK_FOR_COLLECTION_MESSAGE
            )
            recent = self.metadata.recent_collections(database_name)
            hint = SELECT_COLLECTION_HINT

        stream.markdown(question)
        listing = render_names(
            names,
            chat_id=chat_id,
            database_name=database_name,
            recent=recent,
            max_length=self.max_list_length,
        )
        stream.markdown(f"\n\n{listing}\n\n{hint}")
