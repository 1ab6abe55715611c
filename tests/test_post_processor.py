"""Tests for runnable-content extraction and streaming code-block detection."""

import pytest

from mongochat.core.participant.models import (
    HOST_COMMAND_OPEN_IN_PLAYGROUND,
    HOST_COMMAND_RUN_QUERY,
)
from mongochat.core.participant.post_processor import (
    CodeBlockMatcher,
    StreamingKMPMatcher,
    build_follow_up_actions,
    get_runnable_content,
)

ANSWER = (
    "Here is the query:\n"
    "```javascript\nuse('ufo');\ndb.getCollection('sightings').find();\n```\n"
    "And another:\n"
    "```javascript\ndb.other.find()\n```"
)


class TestGetRunnableContent:
    def test_first_block_inner_text(self):
        assert get_runnable_content(ANSWER) == (
            "\nuse('ufo');\ndb.getCollection('sightings').find();\n"
        )

    def test_no_block(self):
        assert get_runnable_content("no code here") is None

    def test_other_languages_are_not_runnable(self):
        assert get_runnable_content("```python\nprint(1)\n```") is None


class TestBuildFollowUpActions:
    def test_run_and_playground_actions(self):
        actions = build_follow_up_actions(ANSWER)
        assert [a.command for a in actions] == [
            HOST_COMMAND_RUN_QUERY,
            HOST_COMMAND_OPEN_IN_PLAYGROUND,
        ]
        payload = {"runnableContent": "use('ufo');\ndb.getCollection('sightings').find();"}
        assert all(a.arguments == [payload] for a in actions)

    def test_empty_block_has_no_actions(self):
        assert build_follow_up_actions("```javascript\n  \n```") == []

    def test_no_block_has_no_actions(self):
        assert build_follow_up_actions("plain text") == []


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class TestStreamingKMPMatcher:
    def test_overlapping_prefix(self):
        matcher = StreamingKMPMatcher("aab")
        results = [matcher.match(c) for c in "aaab"]
        assert results == [False, False, False, True]

    def test_rejects_empty_pattern(self):
        with pytest.raises(ValueError):
            StreamingKMPMatcher("")


class TestCodeBlockMatcher:
    @pytest.mark.parametrize("size", [1, 2, 5, 13, len(ANSWER)])
    def test_blocks_detected_across_fragments(self, size):
        blocks: list[str] = []
        matcher = CodeBlockMatcher(blocks.append)
        for i in range(0, len(ANSWER), size):
            matcher.feed(ANSWER[i : i + size])
        assert blocks == [
            "\nuse('ufo');\ndb.getCollection('sightings').find();\n",
            "\ndb.other.find()\n",
        ]

    def test_unterminated_block_is_not_reported(self):
        blocks: list[str] = []
        matcher = CodeBlockMatcher(blocks.append)
        matcher.feed("```javascript\ndb.a.find(")
        assert blocks == []
