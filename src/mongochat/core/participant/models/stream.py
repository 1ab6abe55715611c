"""Response stream primitives written by the participant.

Handlers never format transport output themselves; they call
``markdown`` / ``button`` / ``reference`` on a ``ResponseStream``. The
``EventResponseStream`` turns those calls into typed events that the API
layer forwards as SSE and that tests inspect directly.
"""

from collections.abc import Callable
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field


class FollowUpAction(BaseModel):
    """A button the host renders under the response."""

    command: str = Field(description="Host command id to execute")
    title: str = Field(description="Button label")
    arguments: list[Any] = Field(
        default_factory=list, description="Opaque payload passed to the command"
    )


class Reference(BaseModel):
    """A citation link attached to the response."""

    url: str
    title: str | None = None


class MarkdownEvent(BaseModel):
    type: Literal["markdown"] = "markdown"
    content: str


class ButtonEvent(BaseModel):
    type: Literal["button"] = "button"
    action: FollowUpAction


class ReferenceEvent(BaseModel):
    type: Literal["reference"] = "reference"
    reference: Reference


ResponseEvent = MarkdownEvent | ButtonEvent | ReferenceEvent


class ResponseStream(Protocol):
    """Write side of a chat response, provided by the host."""

    def markdown(self, value: str) -> None: ...

    def button(self, action: FollowUpAction) -> None: ...

    def reference(self, reference: Reference) -> None: ...


class EventResponseStream:
    """``ResponseStream`` that records typed events.

    ``on_event`` is called synchronously for every event, e.g. to push it
    onto an ``asyncio.Queue`` consumed by an SSE generator.
    """

    def __init__(self, on_event: Callable[[ResponseEvent], None] | None = None):
        self.events: list[ResponseEvent] = []
        self._on_event = on_event

    def _emit(self, event: ResponseEvent) -> None:
        self.events.append(event)
        if self._on_event is not None:
            self._on_event(event)

    def markdown(self, value: str) -> None:
        self._emit(MarkdownEvent(content=value))

    def button(self, action: FollowUpAction) -> None:
        self._emit(ButtonEvent(action=action))

    def reference(self, reference: Reference) -> None:
        self._emit(ReferenceEvent(reference=reference))

    @property
    def fragments(self) -> list[str]:
        return [e.content for e in self.events if isinstance(e, MarkdownEvent)]

    @property
    def buttons(self) -> list[FollowUpAction]:
        return [e.action for e in self.events if isinstance(e, ButtonEvent)]

    @property
    def references(self) -> list[Reference]:
        return [e.reference for e in self.events if isinstance(e, ReferenceEvent)]

    @property
    def text(self) -> str:
        return "".join(self.fragments)
