"""Tests for the auto-run loop."""

import asyncio
from typing import Callable, Optional

import pytest

from thinktank.collaborators import BudgetCheck, BudgetOracle, ResponseGenerator
from thinktank.config import AutoRunConfig
from thinktank.conversation import InMemoryConversationStore, Message, Persona
from thinktank.errors import BudgetExhaustedError, CeilingReachedError, GenerationFailedError
from thinktank.orchestrator.autorun import AutoRunLoop, pacing_delay_ms
from thinktank.orchestrator.engine import OrchestrationService
from thinktank.orchestrator.events import LoopEvent, LoopEventType, LoopState, StopReason


class StoreGenerator(ResponseGenerator):
    """Writes a canned message into the store, like a real generator would."""

    def __init__(self, store: InMemoryConversationStore, persist: bool = True):
        self.store = store
        self.persist = persist
        self.calls: list[str] = []

    async def generate(self, conversation_id, persona_id, on_stream_chunk=None) -> Message:
        self.calls.append(persona_id)
        if on_stream_chunk:
            on_stream_chunk(f"{persona_id} speaking")
        message = Message.assistant(f"Turn {len(self.calls)} from {persona_id}", persona_id)
        if self.persist:
            self.store.add_message(conversation_id, message)
        return message


class FailingGenerator(ResponseGenerator):
    async def generate(self, conversation_id, persona_id, on_stream_chunk=None) -> Message:
        raise RuntimeError("provider returned 500")


class DenyingBudget(BudgetOracle):
    def __init__(self, allow_first: int = 0):
        self.allow_first = allow_first
        self.checks: list[tuple[Optional[str], float]] = []

    async def check_budget(self, user_id, estimated_cost) -> BudgetCheck:
        self.checks.append((user_id, estimated_cost))
        if len(self.checks) <= self.allow_first:
            return BudgetCheck.allow()
        return BudgetCheck.deny("monthly limit reached")


class BrokenBudget(BudgetOracle):
    async def check_budget(self, user_id, estimated_cost) -> BudgetCheck:
        raise ConnectionError("billing service down")


class FakeSleep:
    """Records pacing delays and runs an optional hook instead of sleeping."""

    def __init__(self, hook: Optional[Callable[[int], None]] = None):
        self.delays: list[float] = []
        self.hook = hook

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.hook:
            self.hook(len(self.delays))


def make_loop(
    store: InMemoryConversationStore,
    generator: Optional[ResponseGenerator] = None,
    **kwargs,
) -> tuple[AutoRunLoop, OrchestrationService, FakeSleep]:
    service = OrchestrationService()
    sleep = kwargs.pop("sleep", None) or FakeSleep()
    loop = AutoRunLoop(service, store, generator or StoreGenerator(store), sleep=sleep, **kwargs)
    return loop, service, sleep


class TestPacingDelay:
    """Tests for pacing_delay_ms."""

    def test_slowest_and_fastest(self) -> None:
        assert pacing_delay_ms(1) == 10000
        assert pacing_delay_ms(10) == 1000

    def test_middle(self) -> None:
        assert pacing_delay_ms(5) == 6000

    def test_out_of_range_clamped(self) -> None:
        assert pacing_delay_ms(0) == 10000
        assert pacing_delay_ms(42) == 1000


class TestAutoRunStops:
    """Tests for each way the loop can stop."""

    @pytest.mark.asyncio
    async def test_ceiling_with_non_persisting_generator(self, store: InMemoryConversationStore) -> None:
        store.set_speed("conv-1", 10)
        generator = StoreGenerator(store, persist=False)
        loop, _, sleep = make_loop(store, generator)

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.CEILING_REACHED
        assert result.generated == 100
        assert isinstance(result.error, CeilingReachedError)
        assert not result.failed
        assert len(generator.calls) == 100
        assert sleep.delays == [1.0] * 99

    @pytest.mark.asyncio
    async def test_ceiling_counts_existing_messages(self, store: InMemoryConversationStore) -> None:
        loop, _, _ = make_loop(store, config=AutoRunConfig(message_ceiling=6))

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.CEILING_REACHED
        # One user message was already there
        assert result.generated == 5
        assert len(store.messages("conv-1")) == 6

    @pytest.mark.asyncio
    async def test_cancel_during_pacing(self, store: InMemoryConversationStore) -> None:
        holder: dict[str, AutoRunLoop] = {}

        def cancel_on_second(count: int) -> None:
            if count == 2:
                holder["loop"].cancel("conv-1")

        loop, _, sleep = make_loop(store, sleep=FakeSleep(cancel_on_second))
        holder["loop"] = loop

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.CANCELLED
        assert result.generated == 2
        assert len(sleep.delays) == 2
        assert not loop.is_running("conv-1")

    @pytest.mark.asyncio
    async def test_reset_cancels_running_loop(self, store: InMemoryConversationStore) -> None:
        holder: dict[str, OrchestrationService] = {}
        loop, service, _ = make_loop(store, sleep=FakeSleep(lambda count: holder["service"].reset("conv-1")))
        holder["service"] = service

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.CANCELLED
        assert result.generated == 1

    @pytest.mark.asyncio
    async def test_budget_denied(self, store: InMemoryConversationStore) -> None:
        budget = DenyingBudget(allow_first=2)
        loop, service, _ = make_loop(store, budget=budget, config=AutoRunConfig(estimated_turn_cost=0.02))

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.BUDGET_EXHAUSTED
        assert result.failed
        assert result.generated == 2
        assert isinstance(result.error, BudgetExhaustedError)
        assert "monthly limit reached" in str(result.error)
        assert budget.checks[0] == ("user-1", 0.02)
        # Only turns that were generated count as decisions
        state = service.get_state("conv-1")
        assert state.decisions == 2
        assert sum(state.turn_counts.values()) == 2

    @pytest.mark.asyncio
    async def test_budget_oracle_error_stops(self, store: InMemoryConversationStore) -> None:
        generator = StoreGenerator(store)
        loop, _, _ = make_loop(store, generator, budget=BrokenBudget())

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.BUDGET_EXHAUSTED
        assert "billing service down" in str(result.error)
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_generation_failure(self, store: InMemoryConversationStore) -> None:
        loop, _, _ = make_loop(store, FailingGenerator())

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.GENERATION_FAILED
        assert isinstance(result.error, GenerationFailedError)
        assert "provider returned 500" in str(result.error)
        assert result.last_decision is not None
        assert result.error.details["persona_id"] == result.last_decision.persona_id

    @pytest.mark.asyncio
    async def test_manual_mode(self, store: InMemoryConversationStore) -> None:
        store.set_control("conv-1", "manual")
        generator = StoreGenerator(store)
        loop, _, _ = make_loop(store, generator)

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.MANUAL_MODE
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_switch_to_manual_mid_run(self, store: InMemoryConversationStore) -> None:
        loop, _, _ = make_loop(store, sleep=FakeSleep(lambda count: store.set_control("conv-1", "manual")))

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.MANUAL_MODE
        assert result.generated == 1

    @pytest.mark.asyncio
    async def test_conversation_ended(self, store: InMemoryConversationStore) -> None:
        loop, service, _ = make_loop(store, sleep=FakeSleep(lambda count: store.end("conv-1")))

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.CONVERSATION_ENDED
        assert result.generated == 1
        assert "conv-1" not in service.states

    @pytest.mark.asyncio
    async def test_no_active_personas(self, store: InMemoryConversationStore, personas: list[Persona]) -> None:
        for persona in personas:
            store.deactivate_persona("conv-1", persona.id)
        loop, _, _ = make_loop(store)

        result = await loop.run("conv-1")

        assert result.stop_reason == StopReason.NO_PERSONAS
        assert not result.failed


class TestAutoRunLifecycle:
    """Tests for start, events and re-entrancy."""

    @pytest.mark.asyncio
    async def test_event_sequence(self, store: InMemoryConversationStore) -> None:
        events: list[LoopEvent] = []
        chunks: list[str] = []
        loop, _, _ = make_loop(store, config=AutoRunConfig(message_ceiling=2))

        result = await loop.run("conv-1", on_stream_chunk=chunks.append, on_event=events.append)

        assert [e.type for e in events] == [
            LoopEventType.DECISION,
            LoopEventType.GENERATING,
            LoopEventType.MESSAGE,
            LoopEventType.PACING,
            LoopEventType.STOPPED,
        ]
        assert events[0].persona_id == events[2].message.persona_id
        assert events[-1].stop_reason == StopReason.CEILING_REACHED
        assert len(chunks) == 1
        assert result.generated == 1

    @pytest.mark.asyncio
    async def test_pacing_event_carries_delay(self, store: InMemoryConversationStore) -> None:
        events: list[LoopEvent] = []
        store.set_speed("conv-1", 1)
        loop, _, sleep = make_loop(store, config=AutoRunConfig(message_ceiling=3))

        await loop.run("conv-1", on_event=events.append)

        pacing = [e for e in events if e.type == LoopEventType.PACING]
        assert [e.delay_ms for e in pacing] == [10000, 10000]
        assert sleep.delays == [10.0, 10.0]

    @pytest.mark.asyncio
    async def test_turns_rotate_with_round_robin(self, store: InMemoryConversationStore) -> None:
        generator = StoreGenerator(store)
        store.create(
            "conv-rr",
            (await store.load("conv-1")).personas,
            strategy="round-robin",
            messages=[Message.user("Kick off")],
        )
        loop, _, _ = make_loop(store, generator, config=AutoRunConfig(message_ceiling=5))

        await loop.run("conv-rr")

        assert generator.calls == ["alice", "bob", "carol", "alice"]

    @pytest.mark.asyncio
    async def test_start_twice_returns_same_task(self, store: InMemoryConversationStore) -> None:
        gate = asyncio.Event()

        async def wait_for_gate(seconds: float) -> None:
            await gate.wait()

        generator = StoreGenerator(store)
        loop, service, _ = make_loop(store, generator, sleep=wait_for_gate)

        first = loop.start("conv-1")
        await asyncio.sleep(0)
        second = loop.start("conv-1")

        assert first is second
        assert loop.is_running("conv-1")

        loop.cancel("conv-1")
        gate.set()
        result = await first

        assert result.stop_reason == StopReason.CANCELLED
        assert len(generator.calls) == 1
        assert not loop.is_running("conv-1")
        assert service.get_state("conv-1").phase == LoopState.STOPPED
        assert service.get_state("conv-1").task is None

    @pytest.mark.asyncio
    async def test_restart_after_reset_waits_for_inflight_loop(self, store: InMemoryConversationStore) -> None:
        release = asyncio.Event()
        in_flight = {"now": 0, "max": 0}

        class BlockingGenerator(ResponseGenerator):
            async def generate(self, conversation_id, persona_id, on_stream_chunk=None) -> Message:
                in_flight["now"] += 1
                in_flight["max"] = max(in_flight["max"], in_flight["now"])
                await release.wait()
                in_flight["now"] -= 1
                message = Message.assistant(f"reply from {persona_id}", persona_id)
                store.add_message(conversation_id, message)
                return message

        loop, service, _ = make_loop(store, BlockingGenerator(), config=AutoRunConfig(message_ceiling=3))

        first = loop.start("conv-1")
        await asyncio.sleep(0.01)
        service.reset("conv-1")
        second = loop.start("conv-1")

        assert first is second
        assert loop.is_running("conv-1")

        release.set()
        result = await first

        assert result.stop_reason == StopReason.CANCELLED
        assert in_flight["max"] == 1
        assert "conv-1" not in service.states
        assert not loop.is_running("conv-1")

        restarted = await loop.start("conv-1")
        assert restarted.stop_reason == StopReason.CEILING_REACHED
        assert restarted.generated == 1
        assert service.get_state("conv-1").decisions == 1

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, store: InMemoryConversationStore) -> None:
        async def forever(seconds: float) -> None:
            await asyncio.Event().wait()

        loop, _, _ = make_loop(store, sleep=forever)
        task = loop.start("conv-1")
        await asyncio.sleep(0.01)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not loop.is_running("conv-1")

    @pytest.mark.asyncio
    async def test_on_new_message_starts_auto(self, store: InMemoryConversationStore) -> None:
        loop, _, _ = make_loop(store, config=AutoRunConfig(message_ceiling=3))

        task = await loop.on_new_message("conv-1")

        assert task is not None
        result = await task
        assert result.generated == 2

    @pytest.mark.asyncio
    async def test_on_new_message_ignores_manual(self, store: InMemoryConversationStore) -> None:
        store.set_control("conv-1", "manual")
        loop, _, _ = make_loop(store)

        assert await loop.on_new_message("conv-1") is None
        assert not loop.is_running("conv-1")

    @pytest.mark.asyncio
    async def test_on_new_message_ignores_ended(self, store: InMemoryConversationStore) -> None:
        store.end("conv-1")
        loop, _, _ = make_loop(store)

        assert await loop.on_new_message("conv-1") is None

    def test_is_running_unknown_conversation(self, store: InMemoryConversationStore) -> None:
        loop, _, _ = make_loop(store)
        assert loop.is_running("missing") is False
