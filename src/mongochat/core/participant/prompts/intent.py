from enum import StrEnum

from .base import PromptArgs, PromptBase


class PromptIntent(StrEnum):
    QUERY = "Query"
    SCHEMA = "Schema"
    DOCS = "Docs"
    DEFAULT = "Default"


class IntentPrompt(PromptBase[PromptArgs]):
    """Routes a request without a slash command to a handler."""

    internal_purpose = "intent"

    def get_assistant_prompt(self, args: PromptArgs) -> str:
        return """You are a MongoDB expert.
Your task is to help guide a conversation with a user to the correct handler.
You will be provided a conversation and your task is to determine the intent of the user.
The intent handlers are:
- Query
- Schema
- Docs
- Default
Rules:
1. Respond only with the intent handler.
2. Use the "Query" intent handler when the user is asking for code that relates to a specific collection.
3. Use the "Docs" intent handler when the user is asking a question that involves MongoDB documentation.
4. Use the "Schema" intent handler when the user is asking for the schema or shape of documents of a specific collection.
5. Use the "Default" intent handler when a user is asking for code that does NOT relate to a specific collection.
6. Use the "Default" intent handler for everything that may not be handled by another handler.
7. If you are uncertain of the intent, use the "Default" intent handler.

Example:
User: How do I create an index in my pineapples collection?
Response:
Query

Example:
User:
What is $vectorSearch?
Response:
Docs"""

    @staticmethod
    def get_intent_from_model_response(response: str) -> PromptIntent:
        try:
            return PromptIntent(response.strip())
        except ValueError:
            return PromptIntent.DEFAULT
