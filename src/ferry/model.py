"""Ferry domain model types (stream events, tool calls, turns, sessions)."""

from __future__ import annotations

from typing import Any, Literal, TypeAlias

import msgspec

TurnResultKind: TypeAlias = Literal["success", "error"]
ToolCallState: TypeAlias = Literal["pending", "resolved"]

DEFAULT_ERROR_MESSAGE = "Unknown error"


class _Event(msgspec.Struct, tag_field="type", frozen=True, kw_only=True):
    @property
    def type(self) -> str:
        info = msgspec.inspect.type_info(self.__class__)
        tag = getattr(info, "tag", None)
        return tag or ""


class SystemInit(_Event, tag="system.init"):
    session_id: str
    tool_names: tuple[str, ...] = ()
    model: str | None = None


class AssistantText(_Event, tag="assistant.text"):
    text: str


class ToolUse(_Event, tag="tool.use"):
    id: str
    name: str
    input: dict[str, Any] = msgspec.field(default_factory=dict)


class ToolResult(_Event, tag="tool.result"):
    tool_use_id: str
    content: str


class TurnResult(_Event, tag="turn.result"):
    kind: TurnResultKind
    turns: int | None = None
    cost_usd: float | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind == "success"


Event: TypeAlias = SystemInit | AssistantText | ToolUse | ToolResult | TurnResult


class ToolCall(msgspec.Struct, kw_only=True):
    id: str
    name: str
    input: dict[str, Any] = msgspec.field(default_factory=dict)
    state: ToolCallState = "pending"


class ConversationTurn(msgspec.Struct, frozen=True, kw_only=True):
    user_text: str
    assistant_transcript: str


class Session(msgspec.Struct, kw_only=True):
    session_id: str | None = None
    turns: list[ConversationTurn] = msgspec.field(default_factory=list)

    def reset(self) -> None:
        self.session_id = None
        self.turns = []

    def to_builtins(self) -> dict[str, Any]:
        return msgspec.to_builtins(self)

    @classmethod
    def from_builtins(cls, data: Any) -> Session:
        return msgspec.convert(data, type=cls)
