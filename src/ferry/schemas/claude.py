"""
Decoder for newline-delimited JSON ("JSONL") emitted by:

  claude -p --output-format stream-json --verbose

Each record is turned into zero or more typed events, one per recognized
content block, in block order. Unknown record types, unknown block types and
malformed lines produce no events; the stream is never aborted by a bad line.
"""

from __future__ import annotations

from typing import Any

import msgspec

from ..errors import StreamDecodeError
from ..logging import get_logger
from ..model import (
    DEFAULT_ERROR_MESSAGE,
    AssistantText,
    Event,
    SystemInit,
    ToolResult,
    ToolUse,
    TurnResult,
)

logger = get_logger(__name__)


def _number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def normalize_tool_result(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            text = item.get("text") if isinstance(item, dict) else None
            parts.append(text if isinstance(text, str) else "")
        return "\n".join(parts)
    if content is None:
        return ""
    return msgspec.json.encode(content).decode("utf-8")


def _message_blocks(record: dict[str, Any]) -> list[dict[str, Any]]:
    message = record.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _system_events(record: dict[str, Any]) -> list[Event]:
    if record.get("subtype") != "init":
        return []
    session_id = record.get("session_id")
    # Without a session id there is nothing to resume; the record is dropped
    # and the current id is kept.
    if not isinstance(session_id, str) or not session_id:
        raise StreamDecodeError("system/init record without session_id")
    tool_names: list[str] = []
    tools = record.get("tools")
    if isinstance(tools, list):
        for tool in tools:
            # Older CLI releases emit bare strings; newer ones emit {name}.
            if isinstance(tool, dict):
                tool = tool.get("name")
            if isinstance(tool, str) and tool:
                tool_names.append(tool)
    model = record.get("model")
    return [
        SystemInit(
            session_id=session_id,
            tool_names=tuple(tool_names),
            model=model if isinstance(model, str) else None,
        )
    ]


def _assistant_events(record: dict[str, Any]) -> list[Event]:
    out: list[Event] = []
    for block in _message_blocks(record):
        match block.get("type"):
            case "text":
                text = block.get("text")
                if isinstance(text, str) and text:
                    out.append(AssistantText(text=text))
            case "tool_use":
                tool_id = block.get("id")
                if not isinstance(tool_id, str) or not tool_id:
                    continue
                tool_input = block.get("input")
                if not isinstance(tool_input, dict):
                    tool_input = {}
                out.append(
                    ToolUse(
                        id=tool_id,
                        name=str(block.get("name") or "tool"),
                        input=tool_input,
                    )
                )
    return out


def _user_events(record: dict[str, Any]) -> list[Event]:
    out: list[Event] = []
    for block in _message_blocks(record):
        if block.get("type") != "tool_result":
            continue
        tool_use_id = block.get("tool_use_id")
        if not isinstance(tool_use_id, str) or not tool_use_id:
            continue
        out.append(
            ToolResult(
                tool_use_id=tool_use_id,
                content=normalize_tool_result(block.get("content")),
            )
        )
    return out


def _extract_error(record: dict[str, Any]) -> str:
    error = record.get("error")
    if isinstance(error, str) and error:
        return error
    errors = record.get("errors")
    if isinstance(errors, list):
        for item in errors:
            if isinstance(item, dict):
                message = item.get("message") or item.get("error")
                if isinstance(message, str) and message:
                    return message
            elif isinstance(item, str) and item:
                return item
    return DEFAULT_ERROR_MESSAGE


def _result_events(record: dict[str, Any]) -> list[Event]:
    subtype = record.get("subtype")
    if subtype == "success":
        turns = _number(record.get("num_turns"))
        cost = _number(record.get("cost_usd"))
        if cost is None:
            cost = _number(record.get("total_cost_usd"))
        return [
            TurnResult(
                kind="success",
                turns=int(turns) if turns is not None else 0,
                cost_usd=float(cost) if cost is not None else 0.0,
            )
        ]
    # error_max_turns, error_during_execution, ... are reported like "error".
    if isinstance(subtype, str) and subtype.startswith("error"):
        return [TurnResult(kind="error", error_message=_extract_error(record))]
    return []


def decode_record_strict(record: str | bytes) -> list[Event]:
    """Decode one record, raising StreamDecodeError if it is not JSON."""
    if isinstance(record, str):
        raw = record.encode("utf-8", errors="replace")
    else:
        raw = record

    raw = raw.strip()
    if not raw:
        return []

    try:
        obj = msgspec.json.decode(raw)
    except msgspec.DecodeError as e:
        raise StreamDecodeError(f"invalid json: {e}") from e

    if not isinstance(obj, dict):
        raise StreamDecodeError(f"expected a JSON object, got {type(obj).__name__}")

    match obj.get("type"):
        case "system":
            return _system_events(obj)
        case "assistant":
            return _assistant_events(obj)
        case "user":
            return _user_events(obj)
        case "result":
            return _result_events(obj)
    return []


def decode_record(record: str | bytes) -> list[Event]:
    """Decode one record into its events; malformed records yield none."""
    try:
        return decode_record_strict(record)
    except StreamDecodeError as e:
        logger.debug("claude.record_dropped", reason=e.message)
        return []


def parse_record(record: str | bytes) -> Event | None:
    """Return the first event of a record, or None."""
    events = decode_record(record)
    return events[0] if events else None
