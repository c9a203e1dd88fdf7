"""Turn aggregation and the session storage boundary."""

from __future__ import annotations

import enum
import os
from pathlib import Path
from typing import Protocol

import msgspec

from .errors import FerryError
from .logging import get_logger
from .model import (
    AssistantText,
    ConversationTurn,
    Event,
    Session,
    SystemInit,
    ToolResult,
    ToolUse,
    TurnResult,
)
from .tracker import ToolCallTracker

logger = get_logger(__name__)

TOOL_SEPARATOR = "\n\n"


class SessionStoreError(FerryError):
    pass


class SessionStore(Protocol):
    def load(self) -> Session: ...

    def save(self, session: Session) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    def __init__(self, session: Session | None = None) -> None:
        self.saved: Session | None = session
        self.save_count = 0

    def load(self) -> Session:
        if self.saved is None:
            return Session()
        return Session.from_builtins(self.saved.to_builtins())

    def save(self, session: Session) -> None:
        self.saved = Session.from_builtins(session.to_builtins())
        self.save_count += 1

    def clear(self) -> None:
        self.saved = None


class JsonSessionStore:
    """Persist the session as one JSON document."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Session:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return Session()
        except OSError as e:
            raise SessionStoreError(
                f"Failed to read session file {self.path}: {e}"
            ) from e
        try:
            return msgspec.json.decode(raw, type=Session)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise SessionStoreError(
                f"Malformed session file {self.path}: {e}"
            ) from None

    def save(self, session: Session) -> None:
        payload = msgspec.json.format(msgspec.json.encode(session), indent=2)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(payload + b"\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise SessionStoreError(
                f"Failed to write session file {self.path}: {e}"
            ) from e

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise SessionStoreError(
                f"Failed to remove session file {self.path}: {e}"
            ) from e


class TurnState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    FINALIZING = "finalizing"


class TurnAggregator:
    """Fold stream events into the transcript of the current turn.

    Text segments are concatenated in arrival order. A tool invocation between
    two segments leaves a blank-line separator so the stored transcript reads
    as plain prose with tool activity elided.
    """

    def __init__(
        self,
        session: Session,
        tracker: ToolCallTracker,
        store: SessionStore | None = None,
    ) -> None:
        self.session = session
        self.tracker = tracker
        self.store = store
        self._state = TurnState.IDLE
        self._user_text = ""
        self._transcript = ""
        self._live_text = ""
        self._trailing_separator = False

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def live_text(self) -> str:
        return self._live_text

    def begin(self, user_text: str) -> None:
        if self._state is not TurnState.IDLE:
            raise RuntimeError("a turn is already in progress")
        self._reset()
        self._user_text = user_text
        self._state = TurnState.ACTIVE

    def cancel(self) -> None:
        if self._state is TurnState.ACTIVE:
            logger.info(
                "turn.cancelled",
                discarded_chars=len(self._transcript),
                pending_tools=len(self.tracker),
            )
        self.tracker.clear()
        self._reset()
        self._state = TurnState.IDLE

    def handle(self, event: Event) -> ConversationTurn | None:
        if isinstance(event, SystemInit):
            self.session.session_id = event.session_id
            return None
        if self._state is not TurnState.ACTIVE:
            logger.debug("turn.event_ignored", event=event.type)
            return None
        match event:
            case AssistantText(text=text):
                self._transcript += text
                self._live_text += text
                self._trailing_separator = False
            case ToolUse():
                if self._transcript and not self._transcript.endswith(TOOL_SEPARATOR):
                    self._transcript += TOOL_SEPARATOR
                    self._trailing_separator = True
                self._live_text = ""
                self.tracker.register(event)
            case ToolResult(tool_use_id=tool_use_id):
                if self.tracker.resolve(tool_use_id) is None:
                    logger.debug("turn.orphan_tool_result", tool_use_id=tool_use_id)
            case TurnResult():
                return self._finalize()
        return None

    def _finalize(self) -> ConversationTurn:
        self._state = TurnState.FINALIZING
        transcript = self._transcript
        if self._trailing_separator:
            transcript = transcript.removesuffix(TOOL_SEPARATOR)
        turn = ConversationTurn(
            user_text=self._user_text,
            assistant_transcript=transcript,
        )
        try:
            self.session.turns.append(turn)
            if self.store is not None:
                self.store.save(self.session)
        finally:
            self.tracker.clear()
            self._reset()
            self._state = TurnState.IDLE
        logger.info("turn.finalized", turns=len(self.session.turns))
        return turn

    def _reset(self) -> None:
        self._user_text = ""
        self._transcript = ""
        self._live_text = ""
        self._trailing_separator = False
