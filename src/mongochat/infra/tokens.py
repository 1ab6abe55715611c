"""Lightweight token estimation.

Uses a conservative chars-per-token ratio so that estimates err on the
side of *over*-counting: prompts may carry slightly less history or fewer
sample documents than strictly possible, but never exceed the model's
input budget.
"""

CHARS_PER_TOKEN = 3
"""Conservative ratio (~3.5-4 for English prose, lower for JSON and code)."""


def estimate_tokens(text: str) -> int:
    """Return an estimated token count for *text*."""
    return max(1, len(text) // CHARS_PER_TOKEN)

