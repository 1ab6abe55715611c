import re
from dataclasses import dataclass

from .base import PromptArgs, PromptBase

NO_NAMES_FOUND = "No names found."

_DATABASE_NAME_RE = re.compile(r"^\s*DATABASE_NAME:[ \t]*(.*)$", re.MULTILINE)
_COLLECTION_NAME_RE = re.compile(r"^\s*COLLECTION_NAME:[ \t]*(.*)$", re.MULTILINE)


@dataclass(frozen=True)
class ExtractedNamespace:
    database_name: str | None = None
    collection_name: str | None = None


def parse_namespace_response(text: str) -> ExtractedNamespace:
    """Parse the two-line ``DATABASE_NAME:`` / ``COLLECTION_NAME:`` answer.

    Values are trimmed; missing or blank keys (including the
    ``No names found.`` answer) yield ``None``.
    """
    database_match = _DATABASE_NAME_RE.search(text)
    collection_match = _COLLECTION_NAME_RE.search(text)
    database_name = database_match.group(1).strip() if database_match else ""
    collection_name = collection_match.group(1).strip() if collection_match else ""
    return ExtractedNamespace(
        database_name=database_name or None,
        collection_name=collection_name or None,
    )


class NamespacePrompt(PromptBase[PromptArgs]):
    """Extracts database and collection names from the conversation."""

    internal_purpose = "namespace"

    def get_assistant_prompt(self, args: PromptArgs) -> str:
        return f"""You are a MongoDB expert.
Parse all user messages to find a database name and a collection name.
Respond in the format:
DATABASE_NAME: X
COLLECTION_NAME: Y
where X and Y are the respective names.
The names should be listed in the order they appear in the conversation; later mentions replace earlier ones.
If the assistant asked for a database or collection name, treat the user's next message as that name.
If you cannot find the names do not imagine names.
If only one of the names is found, respond only with the found name.
Your response must be concise and correct.

When no names are found, respond with:
{NO_NAMES_FOUND}

###
Example 1:
User: How many documents are in the sightings collection in the ufo database?
Response:
DATABASE_NAME: ufo
COLLECTION_NAME: sightings
###
Example 2:
User: How do I create an index in my pineapples collection?
Response:
COLLECTION_NAME: pineapples
###
Example 3:
User: Where is the best hummus in Berlin?
Response:
{NO_NAMES_FOUND}"""
