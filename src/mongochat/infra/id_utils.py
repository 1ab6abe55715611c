"""Prefixed ID generation.

All IDs minted by the service use a ``{prefix}_{random}`` format so that
any ID can be visually identified by its origin:

- ``chat_a8Kx3nQ9mP2r``  : chat session (stored in every ``ChatResult``)
- ``req_L7wBd4Fj9Ks2``   : single inbound chat request

Conversation IDs of the docs chatbot service are used as-is.
"""

import secrets
import string

_ALPHABET = string.ascii_letters + string.digits
_DEFAULT_LENGTH = 12  # ~71 bits of entropy

CHAT_ID_PREFIX = "chat"
REQUEST_ID_PREFIX = "req"


def generate_id(prefix: str, length: int = _DEFAULT_LENGTH) -> str:
    """Generate a prefixed random ID.

    Args:
        prefix: Short descriptor (e.g. ``"chat"``, ``"req"``).
        length: Number of random alphanumeric characters after the prefix.

    Returns:
        ``"{prefix}_{random}"`` string.
    """
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{prefix}_{suffix}"
