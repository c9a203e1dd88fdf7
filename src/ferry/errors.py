"""Errors surfaced on the single error channel of a run."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeAlias

from .model import DEFAULT_ERROR_MESSAGE


class FerryError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SpawnError(FerryError):
    """The agent process could not be launched."""


class ExecutableNotFoundError(SpawnError):
    def __init__(self, command: str) -> None:
        super().__init__(
            f"Claude binary not found at {command!r}. "
            "Check `claude_cmd` in your ferry settings."
        )
        self.command = command


class StreamDecodeError(FerryError):
    """A record could not be decoded. Recovered locally; never reported."""


class RuntimeSignal(FerryError):
    """Stderr text that looks like a failure.

    Best-effort only: benign output can match and real failures can be missed.
    """

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.text = text


class ProtocolError(FerryError):
    """The process reported an explicit `result/error` record."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or DEFAULT_ERROR_MESSAGE)


class ProcessExitAnomaly(FerryError):
    def __init__(self, returncode: int | None, stderr_tail: str = "") -> None:
        if returncode:
            message = f"claude exited with code {returncode} before reporting a result."
        else:
            message = "claude exited without reporting a result."
        super().__init__(message)
        self.returncode = returncode
        self.stderr_tail = stderr_tail


ErrorSink: TypeAlias = Callable[[FerryError], Awaitable[None] | None]
