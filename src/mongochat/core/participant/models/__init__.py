"""Domain models of the chat participant.

Re-exports every public symbol so imports like
``from mongochat.core.participant.models import ChatResult`` work.
"""

from .constants import *  # noqa: F401, F403
from .stream import *  # noqa: F401, F403
from .turns import *  # noqa: F401, F403
