"""Tests for the pipeline runner: ordering, progress, cancellation, failure and retry."""

from __future__ import annotations

import asyncio

import pytest

from docflow.errors import ModelError, ModelErrorKind, PreconditionError
from docflow.runtime import RuntimeConfig
from docflow.workflow import (
    ModelTarget,
    PipelineRunner,
    ProgressEvent,
    RunStatus,
    StageStatus,
    run_pipeline,
)
from docflow.workflow.runner import stage_progress

from .conftest import FakeClient, by_prompt, chunk_of, make_agent

FIVE_CHUNKS = "\n\n".join(f"# S{i} body" for i in range(1, 6))


# ─── Happy path ─────────────────────────────────────────────────────────────


class TestCompletedRun:
    @pytest.mark.asyncio
    async def test_end_to_end_scenario(self, target, config):
        identity = make_agent(1, "Identity")
        exclaim = make_agent(2, "Exclaim")
        client = FakeClient(
            respond=by_prompt({
                identity.prompt_template: lambda text: text,
                exclaim.prompt_template: lambda text: text + "!",
            })
        )

        state = await run_pipeline(
            [identity, exclaim],
            "# A\n\nalpha\n\n# B\n\nbeta",
            target,
            client=client,
            config=config,
        )

        assert state.status is RunStatus.COMPLETED
        assert state.final_artifact == "# A\n\nalpha\n\n# B\n\nbeta!"
        assert [s.status for s in state.steps] == [StageStatus.SUCCESS, StageStatus.SUCCESS]
        assert state.progress_percent == 100
        assert state.error is None
        assert state.completed_at

    @pytest.mark.asyncio
    async def test_stage_output_feeds_next_stage(self, target, config):
        agents = [make_agent(1, "One"), make_agent(2, "Marker"), make_agent(3, "Three")]
        client = FakeClient(
            respond=by_prompt({
                "prompt:One": lambda text: text.upper(),
                "prompt:Marker": lambda text: text + " [[M]]",
                "prompt:Three": lambda text: text,
            })
        )

        state = await run_pipeline(agents, "hello", target, client=client, config=config)

        stage_three_input = [chunk_of(r) for r in client.requests if r.system_prompt == "prompt:Three"]
        assert stage_three_input == ["HELLO [[M]]"]
        assert stage_three_input[0].count("[[M]]") == 1
        assert state.final_artifact == "HELLO [[M]]"

    @pytest.mark.asyncio
    async def test_each_stage_uses_its_own_temperature(self, target, config):
        agents = [make_agent(1, "Cold", temperature=0.1), make_agent(2, "Warm", temperature=0.9)]
        client = FakeClient()

        await run_pipeline(agents, "text", target, client=client, config=config)

        assert [r.temperature for r in client.requests] == [0.1, 0.9]

    @pytest.mark.asyncio
    async def test_chunk_size_from_config(self, target):
        client = FakeClient()
        await run_pipeline(
            [make_agent(1, "A")],
            FIVE_CHUNKS,
            target,
            client=client,
            config=RuntimeConfig(max_chunk_chars=12),
        )
        assert len(client.requests) == 5

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, target, config):
        client = FakeClient()
        await run_pipeline([make_agent(1, "A")], "text", target, client=client, config=config)
        assert not client.closed


# ─── Progress ───────────────────────────────────────────────────────────────


class TestProgress:
    def test_stage_progress_rounds_half_up(self):
        assert stage_progress(1, 3) == 33
        assert stage_progress(2, 3) == 67
        assert stage_progress(1, 8) == 13
        assert stage_progress(3, 3) == 100

    @pytest.mark.asyncio
    async def test_progress_is_monotone_and_ends_at_100(self, target, config):
        events: list[ProgressEvent] = []
        agents = [make_agent(i, f"Agent {i}") for i in range(1, 4)]

        await run_pipeline(
            agents, FIVE_CHUNKS, target, client=FakeClient(), config=config, observers=[events.append]
        )

        percents = [e.overall_percent for e in events]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert events[-1].status is RunStatus.COMPLETED
        assert events[-1].is_final
        assert all(e.overall_percent < 100 for e in events[:-1] if e.status is RunStatus.RUNNING)

    @pytest.mark.asyncio
    async def test_chunk_events_carry_position(self, target):
        events: list[ProgressEvent] = []
        await run_pipeline(
            [make_agent(1, "Cleaner")],
            FIVE_CHUNKS,
            target,
            client=FakeClient(),
            config=RuntimeConfig(max_chunk_chars=12),
            observers=[events.append],
        )

        chunk_events = [e for e in events if e.total_chunks is not None]
        assert [e.chunk_index for e in chunk_events] == [0, 1, 2, 3, 4]
        assert chunk_events[0].stage_message == "Cleaner (chunk 1/5)"
        assert all(e.stage_index == 0 for e in chunk_events)

    @pytest.mark.asyncio
    async def test_events_are_snapshots(self, target, config):
        events: list[ProgressEvent] = []
        await run_pipeline(
            [make_agent(1, "A")], "text", target, client=FakeClient(), config=config, observers=[events.append]
        )
        assert events[0].steps[0].status is StageStatus.PENDING
        assert events[-1].steps[0].status is StageStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_stop_run(self, target, config):
        def broken(event: ProgressEvent) -> None:
            raise RuntimeError("observer bug")

        state = await run_pipeline(
            [make_agent(1, "A")], "text", target, client=FakeClient(), config=config, observers=[broken]
        )
        assert state.status is RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_event_stream(self, target, config):
        runner = PipelineRunner(
            [make_agent(1, "A"), make_agent(2, "B")], "text", target, client=FakeClient(), config=config
        )

        async def collect() -> list[ProgressEvent]:
            return [event async for event in runner.events()]

        collector = asyncio.create_task(collect())
        await asyncio.sleep(0)
        state = await runner.run()
        events = await collector

        assert events[0].stage_message == "Starting workflow"
        assert events[-1].status is RunStatus.COMPLETED
        assert events[-1].run_id == state.run_id

        late = [event async for event in runner.events()]
        assert len(late) == 1
        assert late[0].is_final


# ─── Preconditions ──────────────────────────────────────────────────────────


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_empty_agent_list(self, target):
        with pytest.raises(PreconditionError):
            await run_pipeline([], "some text", target, client=FakeClient())

    def test_no_state_created_on_precondition_failure(self, target):
        with pytest.raises(PreconditionError):
            PipelineRunner([], "some text", target)

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_empty_text(self, target, text):
        with pytest.raises(PreconditionError):
            PipelineRunner([make_agent(1, "A")], text, target)

    def test_missing_api_key(self):
        target = ModelTarget(provider="openrouter", model="openai/gpt-4o")
        with pytest.raises(PreconditionError, match="API key"):
            PipelineRunner([make_agent(1, "A")], "text", target)

    def test_keyless_provider_allowed(self):
        target = ModelTarget(provider="ollama", model="llama3")
        runner = PipelineRunner([make_agent(1, "A")], "text", target, client=FakeClient())
        assert runner.state is None

    def test_unknown_provider(self):
        target = ModelTarget(provider="acme", model="m1", api_key="k")
        with pytest.raises(PreconditionError, match="acme"):
            PipelineRunner([make_agent(1, "A")], "text", target)

    @pytest.mark.asyncio
    async def test_runner_runs_once(self, target, config):
        runner = PipelineRunner([make_agent(1, "A")], "text", target, client=FakeClient(), config=config)
        await runner.run()
        with pytest.raises(RuntimeError):
            await runner.run()


# ─── Cancellation ───────────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_stage(self, target):
        agents = [make_agent(1, "First"), make_agent(2, "Second")]
        client = FakeClient(respond=by_prompt({
            "prompt:First": lambda text: text + "\n\n",
            "prompt:Second": lambda text: text.upper(),
        }))
        runner = PipelineRunner(
            agents, FIVE_CHUNKS, target, client=client, config=RuntimeConfig(max_chunk_chars=12)
        )

        def cancel_on_second_chunk_of_stage_two(call: int) -> None:
            # Calls 1-5 belong to the first stage
            if call == 7:
                runner.cancel()

        client.on_call = cancel_on_second_chunk_of_stage_two
        state = await runner.run()

        assert state.status is RunStatus.CANCELLED
        assert state.cancelled
        assert state.steps[0].status is StageStatus.SUCCESS
        assert state.steps[1].status is StageStatus.RUNNING
        assert state.current_text == "".join(f"# S{i} body\n\n" for i in range(1, 6))
        assert state.final_artifact is None
        assert state.progress_percent == 50
        assert len(client.requests) == 7

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, target, config):
        client = FakeClient()
        runner = PipelineRunner([make_agent(1, "A")], "text", target, client=client, config=config)
        runner.cancel()

        state = await runner.run()

        assert state.status is RunStatus.CANCELLED
        assert state.steps[0].status is StageStatus.PENDING
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_stage_finishing_after_stop_is_discarded(self, target, config):
        client = FakeClient(respond=lambda r: "changed")
        runner = PipelineRunner(
            [make_agent(1, "A"), make_agent(2, "B")], "text", target, client=client, config=config
        )
        client.on_call = lambda call: runner.cancel()

        state = await runner.run()

        assert state.status is RunStatus.CANCELLED
        assert state.current_text == "text"
        assert state.steps[0].status is StageStatus.RUNNING

    @pytest.mark.asyncio
    async def test_error_after_stop_is_ignored(self, target, config):
        client = FakeClient()
        runner = PipelineRunner([make_agent(1, "A")], "text", target, client=client, config=config)

        def stop_then_fail(call: int) -> None:
            runner.cancel()
            raise ModelError("connection reset", ModelErrorKind.NETWORK_ERROR)

        client.on_call = stop_then_fail
        state = await runner.run()

        assert state.status is RunStatus.CANCELLED
        assert state.error is None
        assert state.steps[0].status is StageStatus.RUNNING


# ─── Failure and retry ──────────────────────────────────────────────────────


class TestFailure:
    @pytest.mark.asyncio
    async def test_failure_marks_stage_and_keeps_previous_text(self, target, config):
        agents = [make_agent(1, "Cleaner"), make_agent(2, "Architect"), make_agent(3, "Synth")]

        def fail_in_stage_two(call: int) -> None:
            if call == 2:
                raise ModelError("quota exceeded", ModelErrorKind.RATE_LIMITED, status_code=429)

        client = FakeClient(respond=lambda r: chunk_of(r) + "+", on_call=fail_in_stage_two)
        state = await run_pipeline(agents, "text", target, client=client, config=config)

        assert state.status is RunStatus.FAILED
        assert [s.status for s in state.steps] == [
            StageStatus.SUCCESS,
            StageStatus.ERROR,
            StageStatus.PENDING,
        ]
        assert state.steps[1].message == "Architect - Failed"
        assert state.current_text == "text+"
        assert state.final_artifact is None
        assert state.progress_percent == 33
        assert state.error is not None
        assert state.error.kind == "model.rate_limited"
        assert state.error.retryable
        assert "Architect" in state.error.details

    @pytest.mark.asyncio
    async def test_unauthorized_is_not_retryable(self, target, config):
        def reject(call: int) -> None:
            raise ModelError("bad key", ModelErrorKind.UNAUTHORIZED, status_code=401)

        state = await run_pipeline(
            [make_agent(1, "A")], "text", target, client=FakeClient(on_call=reject), config=config
        )

        assert state.status is RunStatus.FAILED
        assert state.error.kind == "model.unauthorized"
        assert not state.error.retryable

    @pytest.mark.asyncio
    async def test_retry_restarts_from_original_text(self, target, config):
        agents = [make_agent(1, "A"), make_agent(2, "B")]
        failures = {"left": 1}

        def fail_once_in_stage_two(call: int) -> None:
            if call == 2 and failures["left"]:
                failures["left"] -= 1
                raise ModelError("overloaded", ModelErrorKind.SERVICE_UNAVAILABLE, status_code=503)

        client = FakeClient(respond=lambda r: chunk_of(r) + "+", on_call=fail_once_in_stage_two)
        events: list[ProgressEvent] = []
        runner = PipelineRunner(agents, "text", target, client=client, config=config, observers=[events.append])

        first = await runner.run()
        assert first.status is RunStatus.FAILED

        client.requests.clear()
        retried = runner.retry()
        second = await retried.run()

        assert second.status is RunStatus.COMPLETED
        assert second.run_id != first.run_id
        assert client.chunks[0] == "text"
        assert second.final_artifact == "text++"
        assert events[-1].run_id == second.run_id
