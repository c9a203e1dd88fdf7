from __future__ import annotations

from .model import ToolCall, ToolUse


class ToolCallTracker:
    """In-flight tool invocations of one run, keyed by tool-use id.

    A duplicate id replaces the earlier entry. Resolving an unknown id is a
    harmless no-op and returns None.
    """

    def __init__(self) -> None:
        self._calls: dict[str, ToolCall] = {}

    def register(self, event: ToolUse) -> ToolCall:
        call = ToolCall(id=event.id, name=event.name, input=dict(event.input))
        self._calls[event.id] = call
        return call

    def resolve(self, tool_use_id: str) -> ToolCall | None:
        call = self._calls.pop(tool_use_id, None)
        if call is not None:
            call.state = "resolved"
        return call

    def get(self, tool_use_id: str) -> ToolCall | None:
        return self._calls.get(tool_use_id)

    def pending(self) -> list[ToolCall]:
        return list(self._calls.values())

    def clear(self) -> None:
        self._calls.clear()

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, tool_use_id: object) -> bool:
        return tool_use_id in self._calls
