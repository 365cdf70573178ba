"""Tool call/result correlation over a list of turns.

Results are matched to calls by id, scanning forward from the call. A call
without a forward match is still pending.
"""

from collections.abc import Sequence

from design_agent.models.messages import ToolCallPart, ToolResultPart, Turn


def find_tool_result(turns: Sequence[Turn], call_id: str, start: int = 0) -> ToolResultPart | None:
    """Return the first result for ``call_id`` at or after index ``start``."""
    for turn in turns[start:]:
        if turn.role != "tool":
            continue
        for part in turn.tool_results:
            if part.call_id == call_id:
                return part
    return None


def pending_tool_calls(turns: Sequence[Turn]) -> list[ToolCallPart]:
    """List the tool calls that have no later result."""
    pending = []
    for index, turn in enumerate(turns):
        if turn.role != "assistant":
            continue
        for call in turn.tool_calls:
            if find_tool_result(turns, call.id, index + 1) is None:
                pending.append(call)
    return pending


def _answered_call_ids(turns: Sequence[Turn], index: int) -> set[str]:
    """Ids answered by tool turns after ``index`` and before the next user turn."""
    answered: set[str] = set()
    for turn in turns[index + 1 :]:
        if turn.role == "user":
            break
        for part in turn.tool_results:
            answered.add(part.call_id)
    return answered


def prune_dangling_tool_calls(turns: Sequence[Turn]) -> list[Turn]:
    """Build the history to re-send to the model.

    Drops error turns, tool calls with no result before the next user turn,
    tool results whose call was dropped or never made, and turns left empty.
    Input turns are not mutated.
    """
    kept_call_ids: set[str] = set()
    pruned: list[Turn] = []

    for index, turn in enumerate(turns):
        if turn.is_error:
            continue

        if turn.role == "assistant" and turn.tool_calls:
            answered = _answered_call_ids(turns, index)
            parts = [p for p in turn.parts if not isinstance(p, ToolCallPart) or p.id in answered]
            kept_call_ids.update(p.id for p in parts if isinstance(p, ToolCallPart))
            if parts:
                pruned.append(turn.model_copy(update={"content": parts}))
            continue

        if turn.role == "tool":
            parts = [p for p in turn.parts if isinstance(p, ToolResultPart) and p.call_id in kept_call_ids]
            if parts:
                pruned.append(turn.model_copy(update={"content": parts}))
            continue

        if turn.parts:
            pruned.append(turn)

    return pruned
