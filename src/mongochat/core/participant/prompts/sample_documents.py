"""Sample documents as prompt enrichment, degraded to fit the token budget."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from bson import json_util

from .base import TokenBudget

SAMPLE_DOCUMENTS_HEADER = "Sample documents from the collection:\n"
DEFAULT_MAX_ARRAY_LENGTH = 3


def simplify_document(value: Any, max_array_length: int = DEFAULT_MAX_ARRAY_LENGTH) -> Any:
    """Copy of *value* with every array cut to *max_array_length* items."""
    if isinstance(value, Mapping):
        return {k: simplify_document(v, max_array_length) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [simplify_document(v, max_array_length) for v in value[:max_array_length]]
    return value


def to_extended_json(documents: Sequence[Mapping[str, Any]]) -> str:
    """Relaxed Extended JSON, keeping BSON types (ObjectId, Date, ...) visible."""
    return json_util.dumps(list(documents), json_options=json_util.RELAXED_JSON_OPTIONS)


def get_stringified_sample_documents(
    prompt: str,
    sample_documents: Sequence[Mapping[str, Any]] | None,
    model: TokenBudget | None,
    *,
    reserved_tokens: int = 0,
    max_array_length: int = DEFAULT_MAX_ARRAY_LENGTH,
) -> str:
    """Sample-document section to append to *prompt*, or ``""``.

    Tries every sample, then a single simplified document, then nothing;
    each candidate must keep ``prompt`` plus the section within the
    model's input budget minus *reserved_tokens*.
    """
    if not sample_documents or model is None:
        return ""

    budget = model.max_input_tokens - reserved_tokens

    candidates = [
        list(sample_documents),
        [simplify_document(sample_documents[0], max_array_length)],
    ]
    for documents in candidates:
        section = SAMPLE_DOCUMENTS_HEADER + to_extended_json(documents) + "\n"
        if model.count_tokens(prompt + section) <= budget:
            return section
    return ""
