"""Multi-turn conversation on top of one supervised claude process per turn."""

from __future__ import annotations

from typing import Protocol

from .errors import ErrorSink, SpawnError
from .logging import get_logger
from .model import ConversationTurn, Event, Session
from .supervisor import (
    NO_OP_SINK,
    EventSink,
    LaunchSpec,
    ProcessSupervisor,
    RunOutcome,
    call_sink,
)
from .tracker import ToolCallTracker
from .turns import MemorySessionStore, SessionStore, TurnAggregator, TurnState

logger = get_logger(__name__)


class LaunchBuilder(Protocol):
    def launch_spec(self, prompt: str, resume: str | None = None) -> LaunchSpec: ...


class Conversation:
    """Session state that outlives individual process runs.

    Only one run is active at a time. The resume token captured from the
    process's init record is handed to the next run until `clear` is called.
    """

    def __init__(
        self,
        command: LaunchBuilder,
        store: SessionStore | None = None,
        *,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        self.command = command
        self.store: SessionStore = store if store is not None else MemorySessionStore()
        self.supervisor = supervisor or ProcessSupervisor()
        self.session = Session()
        self.tracker = ToolCallTracker()
        self.aggregator = TurnAggregator(self.session, self.tracker, self.store)
        self._running = False
        self._cancel_requested = False

    @property
    def running(self) -> bool:
        return self._running

    def load(self) -> Session:
        loaded = self.store.load()
        self.session.session_id = loaded.session_id
        self.session.turns = list(loaded.turns)
        return self.session

    def cancel(self) -> None:
        if not self._running:
            return
        self._cancel_requested = True
        self.supervisor.kill()
        self.aggregator.cancel()

    def clear(self) -> None:
        self.cancel()
        self.session.reset()
        self.store.clear()

    async def send(
        self,
        prompt: str,
        on_event: EventSink = NO_OP_SINK,
        on_error: ErrorSink = NO_OP_SINK,
    ) -> RunOutcome:
        if self._running:
            raise RuntimeError("a run is already active; cancel it first")
        self._running = True
        self._cancel_requested = False

        async def dispatch(event: Event) -> None:
            self.aggregator.handle(event)
            await call_sink(on_event, event)

        try:
            self.aggregator.begin(prompt)
            spec = self.command.launch_spec(prompt, self.session.session_id)
            try:
                handle = await self.supervisor.start(spec)
            except SpawnError as e:
                logger.warning("conversation.spawn_failed", error=e.message)
                await call_sink(on_error, e)
                return RunOutcome(returncode=None, error=e)
            if self._cancel_requested:
                handle.kill()
            return await self.supervisor.pump(handle, dispatch, on_error)
        finally:
            self._running = False
            if self.aggregator.state is TurnState.ACTIVE:
                # The process ended without a result record; the turn is dropped.
                self.aggregator.cancel()


async def run_once(
    command: LaunchBuilder,
    prompt: str,
    on_event: EventSink = NO_OP_SINK,
    on_error: ErrorSink = NO_OP_SINK,
    *,
    supervisor: ProcessSupervisor | None = None,
) -> tuple[RunOutcome, ConversationTurn | None]:
    """Single-shot run: no resume token, nothing persisted."""
    session = Session()
    aggregator = TurnAggregator(session, ToolCallTracker())
    aggregator.begin(prompt)

    async def dispatch(event: Event) -> None:
        aggregator.handle(event)
        await call_sink(on_event, event)

    runner = supervisor or ProcessSupervisor()
    try:
        outcome = await runner.run(command.launch_spec(prompt), dispatch, on_error)
    finally:
        if aggregator.state is TurnState.ACTIVE:
            aggregator.cancel()
    turn = session.turns[-1] if session.turns else None
    return outcome, turn
