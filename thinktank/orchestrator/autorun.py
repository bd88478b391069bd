"""Automatic conversation loop.

While a conversation is in auto mode the loop keeps it going on its own:

    IDLE -> AWAITING_DECISION -> GENERATING -> PACING -> AWAITING_DECISION ...
                                                      \\-> STOPPED

Each pass re-reads the conversation, checks the budget, asks the
OrchestrationService for the next speaker, has the Response Generator write
the message and then waits according to the conversation speed. The loop is a plain
``while`` inside one task, so its stack does not grow with the conversation.
"""

import asyncio
import logging
from functools import partial
from typing import Awaitable, Callable, Optional

from thinktank.collaborators import (
    BudgetOracle,
    ConversationSource,
    ResponseGenerator,
    StreamCallback,
    UnlimitedBudget,
)
from thinktank.config import AutoRunConfig
from thinktank.errors import (
    BudgetExhaustedError,
    CeilingReachedError,
    GenerationFailedError,
    LoopFailure,
    NoPersonasError,
)

from .engine import OrchestrationService
from .events import AutoRunResult, LoopEvent, LoopState, StopReason, TurnDecision
from .state import ConversationOrchestrationState

logger = logging.getLogger(__name__)

EventListener = Callable[[LoopEvent], None]
SleepFunc = Callable[[float], Awaitable[None]]

MIN_SPEED = 1
MAX_SPEED = 10


def pacing_delay_ms(speed: int) -> int:
    """Delay between generated messages for a speed in [1, 10].

    Speed 1 waits 10 seconds, speed 10 waits 1 second. Out-of-range speeds
    are clamped.
    """
    speed = max(MIN_SPEED, min(MAX_SPEED, speed))
    return (MAX_SPEED + 1 - speed) * 1000


class AutoRunLoop:
    """Runs auto-mode conversations until something stops them.

    At most one loop runs per conversation. Cancellation is cooperative and
    is checked before each decision, before pacing and right after pacing.
    """

    def __init__(
        self,
        service: OrchestrationService,
        source: ConversationSource,
        generator: ResponseGenerator,
        budget: Optional[BudgetOracle] = None,
        config: Optional[AutoRunConfig] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """Initialize the loop.

        Args:
            service: Service that decides each turn
            source: Where the latest conversation snapshot is read from
            generator: Writes each persona message
            budget: Approves each turn's spend (defaults to unlimited)
            config: Ceiling and cost estimate
            sleep: Awaitable sleep used for pacing (seconds)
        """
        self.service = service
        self.source = source
        self.generator = generator
        self.budget = budget or UnlimitedBudget()
        self.config = config or AutoRunConfig()
        self.sleep = sleep or asyncio.sleep
        self._tasks: dict[str, asyncio.Task] = {}

    def is_running(self, conversation_id: str) -> bool:
        task = self._tasks.get(conversation_id)
        if task is not None and not task.done():
            return True
        if conversation_id not in self.service.states:
            return False
        return self.service.get_state(conversation_id).running

    def start(
        self,
        conversation_id: str,
        on_stream_chunk: Optional[StreamCallback] = None,
        on_event: Optional[EventListener] = None,
    ) -> asyncio.Task:
        """Start the loop for a conversation.

        Starting a conversation that already has a running loop does nothing
        and returns the running task. This holds even after a reset: a loop
        still finishing an in-flight generation keeps the conversation until
        it reaches its next cancellation checkpoint.

        Returns:
            The task running the loop; its result is an AutoRunResult
        """
        running = self._tasks.get(conversation_id)
        if running is not None and not running.done():
            logger.debug(f"Auto-run already active for {conversation_id}")
            return running

        state = self.service.attach(conversation_id)
        state.cancel_requested = False
        state.running = True
        task = asyncio.create_task(
            self._run(state, on_stream_chunk, on_event),
            name=f"autorun-{conversation_id}",
        )
        state.task = task
        self._tasks[conversation_id] = task
        task.add_done_callback(partial(self._forget_task, conversation_id))
        return task

    def _forget_task(self, conversation_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(conversation_id) is task:
            del self._tasks[conversation_id]

    def cancel(self, conversation_id: str) -> None:
        """Ask the running loop to stop at its next checkpoint.

        Raises:
            UnknownConversationError: If the conversation is not attached
        """
        self.service.get_state(conversation_id).request_cancel()

    async def on_new_message(
        self,
        conversation_id: str,
        on_stream_chunk: Optional[StreamCallback] = None,
        on_event: Optional[EventListener] = None,
    ) -> Optional[asyncio.Task]:
        """React to a new message: start the loop if the conversation is in auto mode."""
        snapshot = await self.source.load(conversation_id)
        if snapshot.control != "auto" or not snapshot.is_active:
            return None
        return self.start(conversation_id, on_stream_chunk=on_stream_chunk, on_event=on_event)

    async def run(
        self,
        conversation_id: str,
        on_stream_chunk: Optional[StreamCallback] = None,
        on_event: Optional[EventListener] = None,
    ) -> AutoRunResult:
        """Run the loop to completion.

        Args:
            conversation_id: Conversation to drive
            on_stream_chunk: Sink for streamed response text
            on_event: Listener for lifecycle events

        Returns:
            AutoRunResult describing why the loop stopped
        """
        return await self._run(self.service.attach(conversation_id), on_stream_chunk, on_event)

    async def _run(
        self,
        state: ConversationOrchestrationState,
        on_stream_chunk: Optional[StreamCallback],
        on_event: Optional[EventListener],
    ) -> AutoRunResult:
        # The loop keeps the state it started with; a reset detaches it from
        # the service but the cancel flag still reaches this run.
        state.running = True
        run = _Run(state.conversation_id, state, on_event)

        try:
            return await self._loop(run, on_stream_chunk)
        except asyncio.CancelledError:
            logger.info(f"Auto-run task for {state.conversation_id} was cancelled")
            raise
        finally:
            state.running = False
            state.phase = LoopState.STOPPED
            if state.task is asyncio.current_task():
                state.task = None

    async def _loop(self, run: "_Run", on_stream_chunk: Optional[StreamCallback]) -> AutoRunResult:
        cid = run.conversation_id
        state = run.state
        ceiling = self.config.message_ceiling

        while True:
            state.phase = LoopState.AWAITING_DECISION
            snapshot = await self.source.load(cid)

            if not snapshot.is_active:
                # Ended conversations keep no orchestration state
                self.service.states.detach(cid)
                return run.stop(StopReason.CONVERSATION_ENDED)
            if snapshot.message_count >= ceiling:
                return run.stop(StopReason.CEILING_REACHED, CeilingReachedError(ceiling))
            if state.cancel_requested:
                return run.stop(StopReason.CANCELLED)
            if snapshot.control != "auto":
                return run.stop(StopReason.MANUAL_MODE)

            # A denied turn is never recorded as a decision
            failure = await self._check_budget(snapshot.user_id)
            if failure is not None:
                return run.stop(StopReason.BUDGET_EXHAUSTED, failure)
            if state.cancel_requested:
                return run.stop(StopReason.CANCELLED)

            try:
                decision = await self.service.determine_speaker(
                    cid,
                    snapshot.personas,
                    snapshot.messages,
                    mode=snapshot.mode,
                    strategy=snapshot.strategy,
                    control=snapshot.control,
                )
            except NoPersonasError:
                return run.stop(StopReason.NO_PERSONAS)

            if decision.is_empty:
                return run.stop(StopReason.MANUAL_MODE)
            run.decided(decision)

            state.phase = LoopState.GENERATING
            run.emit(LoopEvent.generating(cid, decision.persona_id))
            try:
                message = await self.generator.generate(
                    cid, decision.persona_id, on_stream_chunk=on_stream_chunk
                )
            except Exception as e:
                logger.exception(f"Response generation failed for {decision.persona_id} in {cid}")
                error = GenerationFailedError(decision.persona_id, str(e) or type(e).__name__)
                return run.stop(StopReason.GENERATION_FAILED, error)

            run.generated += 1
            run.emit(LoopEvent.message_ready(cid, message))

            if state.cancel_requested:
                return run.stop(StopReason.CANCELLED)
            if run.generated >= ceiling:
                return run.stop(StopReason.CEILING_REACHED, CeilingReachedError(ceiling))

            state.phase = LoopState.PACING
            delay_ms = pacing_delay_ms(snapshot.speed)
            run.emit(LoopEvent.pacing(cid, delay_ms))
            await self.sleep(delay_ms / 1000)

            if state.cancel_requested:
                return run.stop(StopReason.CANCELLED)

    async def _check_budget(self, user_id: Optional[str]) -> Optional[BudgetExhaustedError]:
        try:
            check = await self.budget.check_budget(user_id, self.config.estimated_turn_cost)
        except Exception as e:
            logger.warning(f"Budget check failed for user {user_id}: {e}")
            return BudgetExhaustedError(user_id, reason=f"budget check failed: {e}")

        if not check.allowed:
            return BudgetExhaustedError(user_id, reason=check.reason)
        return None


class _Run:
    """Bookkeeping for one pass of AutoRunLoop.run."""

    def __init__(
        self,
        conversation_id: str,
        state: ConversationOrchestrationState,
        on_event: Optional[EventListener],
    ):
        self.conversation_id = conversation_id
        self.state = state
        self.on_event = on_event
        self.generated = 0
        self.last_decision: Optional[TurnDecision] = None

    def emit(self, event: LoopEvent) -> None:
        if self.on_event is not None:
            self.on_event(event)

    def decided(self, decision: TurnDecision) -> None:
        self.last_decision = decision
        self.emit(LoopEvent.decided(self.conversation_id, decision))

    def stop(self, reason: StopReason, error: Optional[LoopFailure] = None) -> AutoRunResult:
        if error is not None and reason.is_failure:
            logger.warning(f"Auto-run for {self.conversation_id} stopped: {error}")
        else:
            logger.info(
                f"Auto-run for {self.conversation_id} stopped ({reason.value}) "
                f"after {self.generated} messages"
            )
        self.emit(LoopEvent.stopped(self.conversation_id, reason, error))
        return AutoRunResult(
            conversation_id=self.conversation_id,
            stop_reason=reason,
            generated=self.generated,
            last_decision=self.last_decision,
            error=error,
        )
