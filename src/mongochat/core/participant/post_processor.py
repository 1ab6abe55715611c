"""Response post-processing: runnable code and the follow-up actions on it.

Pure text extraction. The participant never runs the code it finds; it
hands the host an opaque payload attached to "Run" and "Open in
playground" buttons.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from .models import (
    HOST_COMMAND_OPEN_IN_PLAYGROUND,
    HOST_COMMAND_RUN_QUERY,
    OPEN_IN_PLAYGROUND_ACTION_TITLE,
    RUN_ACTION_TITLE,
    FollowUpAction,
)

CODE_BLOCK_START = "```javascript"
CODE_BLOCK_END = "```"

_RUNNABLE_BLOCK_RE = re.compile(
    re.escape(CODE_BLOCK_START) + r"(.*?)" + re.escape(CODE_BLOCK_END), re.DOTALL
)


def get_runnable_content(markdown: str) -> str | None:
    """Inner text of the first ```` ```javascript ```` block, if any."""
    match = _RUNNABLE_BLOCK_RE.search(markdown)
    return match.group(1) if match else None


def follow_up_actions_for_code(code: str) -> list[FollowUpAction]:
    code = code.strip()
    if not code:
        return []
    payload = {"runnableContent": code}
    return [
        FollowUpAction(
            command=HOST_COMMAND_RUN_QUERY, title=RUN_ACTION_TITLE, arguments=[payload]
        ),
        FollowUpAction(
            command=HOST_COMMAND_OPEN_IN_PLAYGROUND,
            title=OPEN_IN_PLAYGROUND_ACTION_TITLE,
            arguments=[payload],
        ),
    ]


def build_follow_up_actions(markdown: str) -> list[FollowUpAction]:
    """Run and open-in-playground actions for the first runnable block."""
    code = get_runnable_content(markdown)
    if code is None:
        return []
    return follow_up_actions_for_code(code)


# ---------------------------------------------------------------------------
# Streaming detection
# ---------------------------------------------------------------------------


class StreamingKMPMatcher:
    """Knuth-Morris-Pratt matcher fed one character at a time."""

    def __init__(self, pattern: str) -> None:
        if not pattern:
            raise ValueError("pattern must not be empty")
        self.pattern = pattern
        self._failure = self._build_failure(pattern)
        self._matched = 0

    @staticmethod
    def _build_failure(pattern: str) -> list[int]:
        failure = [0] * len(pattern)
        k = 0
        for i in range(1, len(pattern)):
            while k and pattern[i] != pattern[k]:
                k = failure[k - 1]
            if pattern[i] == pattern[k]:
                k += 1
            failure[i] = k
        return failure

    def match(self, char: str) -> bool:
        """Advance by *char*; ``True`` when the pattern just completed."""
        while self._matched and char != self.pattern[self._matched]:
            self._matched = self._failure[self._matched - 1]
        if char == self.pattern[self._matched]:
            self._matched += 1
        if self._matched == len(self.pattern):
            self._matched = 0
            return True
        return False

    def reset(self) -> None:
        self._matched = 0


class CodeBlockMatcher:
    """Detects fenced code blocks in a response streamed in fragments.

    ``on_code_block`` is called with the inner text of each block as
    soon as its closing fence arrives, however the fences are split
    across fragments.
    """

    def __init__(
        self,
        on_code_block: Callable[[str], None],
        *,
        start: str = CODE_BLOCK_START,
        end: str = CODE_BLOCK_END,
    ) -> None:
        self._on_code_block = on_code_block
        self._start = StreamingKMPMatcher(start)
        self._end = StreamingKMPMatcher(end)
        self._end_length = len(end)
        self._inside = False
        self._buffer: list[str] = []

    def feed(self, fragment: str) -> None:
        for char in fragment:
            if not self._inside:
                if self._start.match(char):
                    self._inside = True
                    self._buffer = []
                    self._end.reset()
                continue

            self._buffer.append(char)
            if self._end.match(char):
                content = "".join(self._buffer[: -self._end_length])
                self._inside = False
                self._buffer = []
                self._start.reset()
                self._on_code_block(content)
