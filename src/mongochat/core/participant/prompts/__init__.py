"""Prompt builders, one per request kind."""

from .base import (  # noqa: F401
    ModelInput,
    PromptArgs,
    PromptBase,
    PromptStats,
    TokenBudget,
    resolve_reconnect_request,
)
from .docs import DocsMessage, DocsPrompt  # noqa: F401
from .export_to_language import (  # noqa: F401
    ExportToLanguagePrompt,
    ExportToLanguagePromptArgs,
)
from .export_to_playground import ExportToPlaygroundPrompt
from .generic import GenericPrompt
from .intent import IntentPrompt, PromptIntent  # noqa: F401
from .namespace import (  # noqa: F401
    NO_NAMES_FOUND,
    ExtractedNamespace,
    NamespacePrompt,
    parse_namespace_response,
)
from .query import QueryPrompt, QueryPromptArgs  # noqa: F401
from .schema import (  # noqa: F401
    DOCUMENTS_TO_SAMPLE_FOR_SCHEMA_PROMPT,
    SchemaPrompt,
    SchemaPromptArgs,
)


class Prompts:
    """Shared, stateless builder instances."""

    generic = GenericPrompt()
    intent = IntentPrompt()
    namespace = NamespacePrompt()
    query = QueryPrompt()
    schema = SchemaPrompt()
    export_to_language = ExportToLanguagePrompt()
    export_to_playground = ExportToPlaygroundPrompt()

    @staticmethod
    def is_prompt_empty(prompt: str | None) -> bool:
        return not prompt or not prompt.strip()

