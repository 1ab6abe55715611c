from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .base import PromptArgs, PromptBase, TokenBudget, UserPrompt
from .sample_documents import DEFAULT_MAX_ARRAY_LENGTH, get_stringified_sample_documents

DEFAULT_DATABASE_NAME = "mongodbVSCodeCopilotDB"
DEFAULT_COLLECTION_NAME = "test"

ALLOWED_SHELL_COMMANDS = (
    "use",
    "aggregate",
    "bulkWrite",
    "countDocuments",
    "findOneAndReplace",
    "findOneAndUpdate",
    "insert",
    "insertMany",
    "insertOne",
    "remove",
    "replaceOne",
    "update",
    "updateMany",
    "updateOne",
)


@dataclass
class QueryPromptArgs(PromptArgs):
    schema: str | None = None
    sample_documents: Sequence[Mapping[str, Any]] | None = None
    max_sample_array_length: int = DEFAULT_MAX_ARRAY_LENGTH


class QueryPrompt(PromptBase[QueryPromptArgs]):
    def get_assistant_prompt(self, args: QueryPromptArgs) -> str:
        return f"""You are a MongoDB expert.
Your task is to help the user craft MongoDB shell syntax code to perform their task.
Keep your response concise.
You must suggest code that is performant and correct.
Respond with markdown, write code in a Markdown code block that begins with ```javascript and ends with ```.
Respond in MongoDB shell syntax using the ```javascript code block syntax.
You can use only the following MongoDB Shell commands: {", ".join(ALLOWED_SHELL_COMMANDS)}.

Example 1:
User: Documents in the orders db, sales collection, where the date is in 2014 and group the total sales for each product.
Response:
```javascript
use('orders');
db.getCollection('sales').aggregate([
  // Find all of the sales that occurred in 2014.
  {{ $match: {{ date: {{ $gte: new Date('2014-01-01'), $lt: new Date('2015-01-01') }} }} }},
  // Group the total sales for each product.
  {{ $group: {{ _id: '$item', totalSaleAmount: {{ $sum: {{ $multiply: [ '$price', '$quantity' ] }} }} }} }}
]);
```

Example 2:
User: How do I find all games where the name is Bug Chase, in the arcade db, games collection?
Response:
```javascript
use('arcade');
db.getCollection('games').find({{ name: 'Bug Chase' }});
```

MongoDB command to specify database:
use('');

MongoDB command to specify collection:
db.getCollection('');

Explain the code snippet you have generated."""

    def get_user_prompt(
        self, args: QueryPromptArgs, model: TokenBudget | None
    ) -> UserPrompt:
        prompt = args.request.prompt
        prompt += f"\nDatabase name: {args.database_name or DEFAULT_DATABASE_NAME}\n"
        prompt += f"Collection name: {args.collection_name or DEFAULT_COLLECTION_NAME}\n"
        if args.schema:
            prompt += f"Collection schema:\n{args.schema}\n"

        reserved = model.count_tokens(self.get_assistant_prompt(args)) if model else 0
        sample_section = get_stringified_sample_documents(
            prompt,
            args.sample_documents,
            model,
            reserved_tokens=reserved,
            max_array_length=args.max_sample_array_length,
        )
        return UserPrompt(
            prompt=prompt + sample_section,
            has_sample_documents=bool(sample_section),
        )
