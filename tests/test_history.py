"""Tests for tool call/result correlation and history pruning."""

from design_agent.models.messages import TextPart, ToolCallPart, ToolResultPart, Turn
from design_agent.services.history import find_tool_result, pending_tool_calls, prune_dangling_tool_calls


def call_turn(*call_ids: str, text: str | None = None) -> Turn:
    parts = [TextPart(text=text)] if text else []
    parts += [ToolCallPart(id=call_id, name="ls") for call_id in call_ids]
    return Turn(role="assistant", content=parts)


def result_turn(call_id: str) -> Turn:
    return Turn(role="tool", content=[ToolResultPart(call_id=call_id, name="ls", result={"success": True})])


class TestToolResultCorrelation:
    """Tests for matching results to calls."""

    def test_find_tool_result_scans_forward(self):
        """Test that only results at or after the start index are found."""
        turns = [call_turn("c1"), result_turn("c1")]

        assert find_tool_result(turns, "c1").call_id == "c1"
        assert find_tool_result(turns, "c1", start=2) is None
        assert find_tool_result(turns, "missing") is None

    def test_pending_tool_calls(self):
        """Test listing calls that have no later result."""
        turns = [
            Turn(role="user", content="go"),
            call_turn("c1", "c2"),
            result_turn("c1"),
        ]

        assert [call.id for call in pending_tool_calls(turns)] == ["c2"]

    def test_result_before_call_does_not_count(self):
        """Test that a result must come after its call."""
        turns = [result_turn("c1"), call_turn("c1")]

        assert [call.id for call in pending_tool_calls(turns)] == ["c1"]


class TestPruneDanglingToolCalls:
    """Tests for building the history re-sent to the model."""

    def test_complete_history_is_unchanged(self):
        """Test that answered calls are kept as they are."""
        turns = [Turn(role="user", content="go"), call_turn("c1"), result_turn("c1")]

        assert prune_dangling_tool_calls(turns) == turns

    def test_unanswered_call_is_dropped(self):
        """Test that a call aborted before its result is removed, keeping the text."""
        turns = [
            Turn(role="user", content="go"),
            call_turn("c1", text="Running it"),
            Turn(role="user", content="stop, do something else"),
        ]

        pruned = prune_dangling_tool_calls(turns)

        assert len(pruned) == 3
        assert pruned[1].tool_calls == []
        assert pruned[1].text == "Running it"

    def test_call_only_turn_is_dropped_when_empty(self):
        """Test that an assistant turn holding only dangling calls disappears."""
        turns = [Turn(role="user", content="go"), call_turn("c1"), Turn(role="user", content="again")]

        pruned = prune_dangling_tool_calls(turns)

        assert [turn.role for turn in pruned] == ["user", "user"]

    def test_result_after_next_user_turn_does_not_answer(self):
        """Test that a result separated by a user turn is treated as orphaned."""
        turns = [
            Turn(role="user", content="go"),
            call_turn("c1"),
            Turn(role="user", content="hurry"),
            result_turn("c1"),
        ]

        pruned = prune_dangling_tool_calls(turns)

        assert [turn.role for turn in pruned] == ["user", "user"]

    def test_error_turns_are_excluded(self):
        """Test that error turns never reach the model."""
        turns = [
            Turn(role="user", content="go"),
            Turn(role="assistant", content="rate limited", is_error=True),
            Turn(role="user", content="retry"),
        ]

        pruned = prune_dangling_tool_calls(turns)

        assert [turn.content for turn in pruned] == ["go", "retry"]

    def test_input_is_not_mutated(self):
        """Test that pruning copies the turns it changes."""
        original = call_turn("c1", "c2")
        turns = [Turn(role="user", content="go"), original, result_turn("c1")]

        pruned = prune_dangling_tool_calls(turns)

        assert [call.id for call in pruned[1].tool_calls] == ["c1"]
        assert [call.id for call in original.tool_calls] == ["c1", "c2"]
