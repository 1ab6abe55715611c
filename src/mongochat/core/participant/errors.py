"""Participant error categories and exceptions."""

from enum import StrEnum


class ParticipantErrorType(StrEnum):
    """Fixed set of failure categories reported to telemetry."""

    CHAT_MODEL_OFF_TOPIC = "Chat Model Off Topic"
    INVALID_PROMPT = "Invalid Prompt"
    FILTERED = "Filtered by Responsible AI Service"
    QUOTA_EXCEEDED = "Chat Model Quota Exceeded"
    DOCS_CHATBOT_API = "Docs Chatbot API Issue"
    OTHER = "Other"


# ---------------------------------------------------------------------------
# Namespace resolution (data access) errors
# ---------------------------------------------------------------------------


class NamespaceResolutionError(Exception):
    """A namespace could not be resolved; the turn is aborted."""


class NoDatabasesFoundError(NamespaceResolutionError):
    def __init__(self) -> None:
        super().__init__(
            "No databases were found for the active connection. "
            "Create a database first, then ask again."
        )


class NoCollectionsFoundError(NamespaceResolutionError):
    def __init__(self, database_name: str) -> None:
        super().__init__(
            f"No collections were found in the database {database_name}. "
            "Create a collection first, then ask again."
        )
        self.database_name = database_name


class NamespaceEnumerationError(NamespaceResolutionError):
    """Listing databases or collections raised."""

    def __init__(self, target: str, cause: BaseException) -> None:
        super().__init__(f"Unable to fetch {target}: {cause}")
        self.target = target


# ---------------------------------------------------------------------------
# Backend errors
# ---------------------------------------------------------------------------


class ModelResponseError(Exception):
    """A chat model call failed and was classified."""

    def __init__(
        self,
        error_type: ParticipantErrorType,
        message: str,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.code = code


class DocsChatbotError(Exception):
    """The documentation chatbot service returned an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConnectionUnavailableError(Exception):
    """No active data connection, or connecting to one failed."""
