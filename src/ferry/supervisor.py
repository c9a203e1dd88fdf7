"""Own the agent process and turn its stdout into ordered events."""

from __future__ import annotations

import inspect
import os
import signal
import subprocess
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeAlias

import anyio
from anyio.abc import Process

from .errors import (
    ErrorSink,
    ExecutableNotFoundError,
    FerryError,
    ProcessExitAnomaly,
    ProtocolError,
    RuntimeSignal,
    SpawnError,
)
from .logging import get_logger
from .model import Event, TurnResult
from .schemas.claude import decode_record
from .utils.streams import STDERR_TAIL_LINES, drain_stderr, iter_records

logger = get_logger(__name__)

EventSink: TypeAlias = Callable[[Event], Awaitable[None] | None]

# Set by the claude CLI in its own environment; a child that inherits them
# believes it is nested inside another claude session.
NESTED_SESSION_ENV_KEYS = frozenset(
    {"CLAUDECODE", "CLAUDE_CODE", "CLAUDE_CODE_ENTRYPOINT"}
)

TERMINATE_GRACE_S = 2.0


def _noop_sink(_value: Any) -> None:
    return None


NO_OP_SINK: EventSink = _noop_sink


def sanitize_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    source = os.environ if environ is None else environ
    return {
        key: value
        for key, value in source.items()
        if key not in NESTED_SESSION_ENV_KEYS
    }


@dataclass(frozen=True, slots=True)
class LaunchSpec:
    command: str
    args: tuple[str, ...] = ()
    cwd: Path | str | None = None
    env: Mapping[str, str] | None = None
    resume: str | None = None

    def argv(self) -> list[str]:
        argv = [self.command, *self.args]
        if self.resume:
            argv.extend(["--resume", self.resume])
        return argv

    def environment(self) -> dict[str, str]:
        return sanitize_env(self.env)


@dataclass(frozen=True, slots=True)
class RunOutcome:
    returncode: int | None
    killed: bool = False
    result: TurnResult | None = None
    stderr_tail: str = ""
    error: FerryError | None = None

    @property
    def ok(self) -> bool:
        return (
            not self.killed
            and self.error is None
            and self.result is not None
            and self.result.ok
        )


async def call_sink(sink: Callable[[Any], Awaitable[None] | None], value: Any) -> None:
    res = sink(value)
    if inspect.isawaitable(res):
        await res


async def _wait_for_process(proc: Process, timeout: float) -> bool:
    with anyio.move_on_after(timeout) as scope:
        await proc.wait()
    return scope.cancel_called


def _signal_process(proc: Process, sig: signal.Signals) -> None:
    if proc.returncode is not None:
        return
    if os.name == "posix" and proc.pid is not None:
        try:
            os.killpg(proc.pid, sig)
            return
        except ProcessLookupError:
            return
        except OSError as e:
            logger.debug("claude.signal_group_failed", signal=sig.name, error=str(e))
    try:
        if sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()
    except ProcessLookupError:
        return


class ProcessHandle:
    def __init__(self, proc: Process, spec: LaunchSpec) -> None:
        self.proc = proc
        self.spec = spec
        self.killed = False
        # Set while `pump` reads the process; cancelled by `kill`.
        self.cancel_scope: anyio.CancelScope | None = None

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def returncode(self) -> int | None:
        return self.proc.returncode

    @property
    def running(self) -> bool:
        return self.proc.returncode is None and not self.killed

    def kill(self) -> None:
        """Send SIGTERM and stop reading. Safe to call more than once.

        The pump then gives the process TERMINATE_GRACE_S to exit before
        the process group is killed with SIGKILL.
        """
        if self.killed:
            return
        self.killed = True
        logger.info("claude.kill", pid=self.proc.pid)
        _signal_process(self.proc, signal.SIGTERM)
        if self.cancel_scope is not None:
            self.cancel_scope.cancel()


@dataclass
class ProcessSupervisor:
    """Run one agent process at a time and dispatch its events in order."""

    tag: str = "claude"
    _handle: ProcessHandle | None = field(default=None, init=False, repr=False)

    @property
    def active(self) -> ProcessHandle | None:
        return self._handle

    async def start(self, spec: LaunchSpec) -> ProcessHandle:
        if self._handle is not None and self._handle.running:
            raise RuntimeError(f"{self.tag} process already running; kill it first")
        if spec.cwd is not None and not Path(spec.cwd).is_dir():
            raise SpawnError(f"Working directory {spec.cwd} does not exist.")
        argv = spec.argv()
        kwargs: dict[str, Any] = {}
        if os.name == "posix":
            kwargs["start_new_session"] = True
        try:
            proc = await anyio.open_process(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=spec.cwd,
                env=spec.environment(),
                **kwargs,
            )
        except FileNotFoundError as e:
            raise ExecutableNotFoundError(spec.command) from e
        except OSError as e:
            reason = e.strerror or str(e)
            raise SpawnError(f"Failed to start {self.tag}: {reason}") from e
        logger.debug("claude.spawn", pid=proc.pid, argv=argv, resume=spec.resume)
        handle = ProcessHandle(proc, spec)
        self._handle = handle
        return handle

    def kill(self, handle: ProcessHandle | None = None) -> None:
        target = handle or self._handle
        if target is None:
            return
        target.kill()

    async def pump(
        self,
        handle: ProcessHandle,
        on_event: EventSink = NO_OP_SINK,
        on_error: ErrorSink = NO_OP_SINK,
    ) -> RunOutcome:
        proc = handle.proc
        if proc.stdout is None or proc.stderr is None:
            raise RuntimeError(f"{self.tag} failed to open subprocess pipes")
        proc_stdout = proc.stdout
        proc_stderr = proc.stderr

        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        result: TurnResult | None = None
        error: FerryError | None = None

        async def on_stderr(text: str) -> None:
            if handle.killed:
                return
            await call_sink(on_error, RuntimeSignal(text))

        try:
            with anyio.CancelScope() as scope:
                handle.cancel_scope = scope
                if handle.killed:
                    scope.cancel()
                async with anyio.create_task_group() as tg:
                    tg.start_soon(drain_stderr, proc_stderr, stderr_tail, on_stderr)
                    async for record in iter_records(proc_stdout):
                        logger.debug("claude.jsonl", line=record)
                        if handle.killed:
                            continue
                        for event in decode_record(record):
                            if handle.killed:
                                break
                            await call_sink(on_event, event)
                            if isinstance(event, TurnResult):
                                result = event
                                if not event.ok:
                                    error = ProtocolError(event.error_message)
                                    await call_sink(on_error, error)
                    await proc.wait()
        finally:
            handle.cancel_scope = None
            if proc.returncode is None:
                with anyio.CancelScope(shield=True):
                    _signal_process(proc, signal.SIGTERM)
                    if await _wait_for_process(proc, timeout=TERMINATE_GRACE_S):
                        _signal_process(proc, signal.SIGKILL)
                        await proc.wait()
            if self._handle is handle:
                self._handle = None

        rc = proc.returncode
        logger.debug("claude.exit", pid=proc.pid, rc=rc, killed=handle.killed)
        tail = "".join(stderr_tail)
        if not handle.killed and (result is None or (rc != 0 and result.ok)):
            error = ProcessExitAnomaly(rc, tail)
            logger.warning("claude.exit_anomaly", rc=rc, has_result=result is not None)
            await call_sink(on_error, error)
        return RunOutcome(
            returncode=rc,
            killed=handle.killed,
            result=result,
            stderr_tail=tail,
            error=error,
        )

    async def run(
        self,
        spec: LaunchSpec,
        on_event: EventSink = NO_OP_SINK,
        on_error: ErrorSink = NO_OP_SINK,
    ) -> RunOutcome:
        try:
            handle = await self.start(spec)
        except SpawnError as e:
            logger.warning("claude.spawn_failed", command=spec.command, error=e.message)
            await call_sink(on_error, e)
            return RunOutcome(returncode=None, error=e)
        return await self.pump(handle, on_event, on_error)
