from __future__ import annotations

from dataclasses import dataclass

from .base import PromptArgs, PromptBase, TokenBudget, UserPrompt

DOCUMENTS_TO_SAMPLE_FOR_SCHEMA_PROMPT = 100


@dataclass
class SchemaPromptArgs(PromptArgs):
    schema: str = ""
    amount_of_documents_sampled: int = 0


class SchemaPrompt(PromptBase[SchemaPromptArgs]):
    def get_assistant_prompt(self, args: SchemaPromptArgs) -> str:
        return f"""You are a senior engineer who describes the schema of documents in a MongoDB database.
The schema is generated from a sample of documents in the user's collection.
You must follow these rules.
Rule 1: Try to be as concise as possible.
Rule 2: Pay attention to the JSON schema.
Rule 3: Mention the amount of documents sampled in your response.
Amount of documents sampled: {args.amount_of_documents_sampled}."""

    def get_user_prompt(
        self, args: SchemaPromptArgs, model: TokenBudget | None
    ) -> UserPrompt:
        prompt = args.request.prompt
        additional = (
            f'The user provided additional information: "{prompt}"\n' if prompt else ""
        )
        return UserPrompt(
            prompt=(
                f"{additional}Database name: {args.database_name}\n"
                f"Collection name: {args.collection_name}\n"
                f"Schema:\n{args.schema}"
            )
        )
