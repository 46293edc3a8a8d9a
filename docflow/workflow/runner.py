"""
Pipeline runner - drives the ordered core agents over one document.

Each stage consumes the complete output of the previous one, so stages run
strictly one after another. The runner owns a RunState, reports progress to
observers and through an async event stream, and honours cooperative
cancellation before every stage and every chunk.

Usage:
    runner = PipelineRunner(agents, text, target)
    state = await runner.run()
    if state.status is RunStatus.FAILED and state.error.retryable:
        state = await runner.retry().run()
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable

from docflow.errors import PreconditionError, StageError, classify_error
from docflow.runtime import RuntimeConfig, get_global_config

from .agents import Agent, ModelTarget
from .llm import ModelClient, create_client, is_known_provider
from .stage import run_stage
from .state import (
    CancellationToken,
    ProgressEvent,
    ProgressObserver,
    RunState,
    RunStatus,
    StageRunRecord,
    StageStatus,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def stage_progress(completed_stages: int, total_stages: int) -> int:
    """Overall percentage after completed_stages of total_stages, rounded half up."""
    return int(math.floor(completed_stages / total_stages * 100 + 0.5))


def validate_run_inputs(
    agents: tuple[Agent, ...],
    initial_text: str,
    target: ModelTarget,
    *,
    check_provider: bool = True,
) -> None:
    """
    Check run preconditions.

    Raises:
        PreconditionError: On missing text, no agents, or an unusable target
    """
    if not initial_text or not initial_text.strip():
        raise PreconditionError("No input text. Upload a file and wait for text extraction.")
    if not agents:
        raise PreconditionError(
            "No agents configured to run. Add agents to the core workflow in settings."
        )
    if check_provider and not is_known_provider(target.provider):
        raise PreconditionError(f"Unknown model provider: '{target.provider}'")
    if not target.model:
        raise PreconditionError("The selected model configuration has no model name.")
    if target.requires_api_key and not target.api_key.strip():
        raise PreconditionError("Select a configured model with a valid API key.")


class PipelineRunner:
    """Runs one pipeline over one input text. Each instance runs once."""

    def __init__(
        self,
        agents: Iterable[Agent],
        initial_text: str,
        target: ModelTarget,
        *,
        client: ModelClient | None = None,
        config: RuntimeConfig | None = None,
        observers: Iterable[ProgressObserver] = (),
    ):
        self.agents: tuple[Agent, ...] = tuple(agents)
        validate_run_inputs(self.agents, initial_text, target, check_provider=client is None)

        self.initial_text = initial_text
        self.target = target
        self.config = config or get_global_config()
        self.token = CancellationToken()
        self.state: RunState | None = None

        self._client = client
        self._observers: list[ProgressObserver] = list(observers)
        self._queues: list[asyncio.Queue] = []

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def subscribe(self, observer: ProgressObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def cancel(self) -> None:
        """Request cancellation; takes effect before the next stage or chunk."""
        if not self.token.cancelled:
            logger.info("Cancellation requested")
        self.token.cancel()

    def retry(self) -> "PipelineRunner":
        """Fresh runner over the original text, agents and target."""
        return PipelineRunner(
            self.agents,
            self.initial_text,
            self.target,
            client=self._client,
            config=self.config,
            observers=self._observers,
        )

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Stream progress events until the run terminates."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        try:
            if self.state is not None and self.state.status.is_terminal:
                yield self._make_event()
                return
            while True:
                event = await queue.get()
                yield event
                if event.is_final:
                    return
        finally:
            self._queues.remove(queue)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def run(self) -> RunState:
        """
        Execute every stage in order and return the terminal RunState.

        Model failures do not raise: they end the run as FAILED with a
        classified error on the state.
        """
        if self.state is not None:
            raise RuntimeError("A PipelineRunner runs once; use retry() for a new run")

        state = RunState(
            steps=[StageRunRecord(agent_id=a.id, agent_name=a.name) for a in self.agents],
            status=RunStatus.RUNNING,
            current_text=self.initial_text,
            started_at=_now(),
        )
        self.state = state
        total = len(self.agents)

        owns_client = self._client is None
        client = self._client or create_client(self.target, timeout=self.config.request_timeout)

        logger.info("Run %s started: %d stage(s) on %s", state.run_id[:8], total, self.target.label)
        self._emit(stage_message="Starting workflow")

        try:
            for index, agent in enumerate(self.agents):
                if self.token.cancelled:
                    break

                step = state.steps[index]
                state.current_stage_index = index
                step.status = StageStatus.RUNNING
                self._emit(stage_message=agent.name)

                def on_chunk(chunk_index: int, total_chunks: int, name: str = agent.name) -> None:
                    self._emit(
                        stage_message=f"{name} (chunk {chunk_index + 1}/{total_chunks})",
                        chunk_index=chunk_index,
                        total_chunks=total_chunks,
                    )

                try:
                    result = await run_stage(
                        agent,
                        state.current_text,
                        client,
                        max_chunk_chars=self.config.max_chunk_chars,
                        on_chunk_progress=on_chunk,
                        cancel_token=self.token,
                        stage_index=index,
                    )
                except StageError as e:
                    if self.token.cancelled:
                        logger.info("Workflow stopped, ignoring error from '%s': %s", agent.name, e)
                        break
                    self._fail(index, e)
                    return state

                # A stage finishing after a stop request is discarded
                if result.cancelled or self.token.cancelled:
                    break

                state.current_text = result.output
                step.status = StageStatus.SUCCESS
                logger.info(
                    "Stage %d/%d '%s' done in %dms", index + 1, total, agent.name, result.duration_ms
                )
                # 100% is reported only by _complete()
                if index + 1 < total:
                    state.progress_percent = stage_progress(index + 1, total)
                    self._emit(stage_message=agent.name)
            else:
                self._complete()
                return state

            self._mark_cancelled()
            return state

        except Exception as e:
            if self.token.cancelled:
                logger.info("Workflow stopped, ignoring error: %s", e)
                self._mark_cancelled()
                return state
            logger.exception("Unexpected error in run %s", state.run_id[:8])
            self._fail(state.current_stage_index, e)
            return state
        finally:
            if owns_client:
                await client.aclose()

    def _complete(self) -> None:
        state = self._require_state()
        state.final_artifact = state.current_text
        for step in state.steps:
            step.status = StageStatus.SUCCESS
        state.progress_percent = 100
        state.status = RunStatus.COMPLETED
        state.completed_at = _now()
        logger.info("Run %s completed (%d chars)", state.run_id[:8], len(state.final_artifact))
        self._emit(stage_message="Workflow completed!")

    def _mark_cancelled(self) -> None:
        state = self._require_state()
        state.cancelled = True
        state.status = RunStatus.CANCELLED
        state.completed_at = _now()
        logger.info("Run %s cancelled", state.run_id[:8])
        self._emit(stage_message="Workflow stopped")

    def _fail(self, index: int | None, error: Exception) -> None:
        state = self._require_state()
        if index is not None:
            step = state.steps[index]
            step.status = StageStatus.ERROR
            step.message = f"{step.message} - Failed"
        state.error = classify_error(error, "AI workflow")
        state.status = RunStatus.FAILED
        state.completed_at = _now()
        logger.error("Run %s failed: %s", state.run_id[:8], error)
        self._emit(stage_message="Workflow error occurred")

    def _require_state(self) -> RunState:
        if self.state is None:
            raise RuntimeError("Run has not started")
        return self.state

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def _make_event(
        self,
        stage_message: str = "",
        chunk_index: int | None = None,
        total_chunks: int | None = None,
    ) -> ProgressEvent:
        state = self._require_state()
        snapshot = state.snapshot()
        return ProgressEvent(
            run_id=state.run_id,
            status=state.status,
            overall_percent=state.progress_percent,
            stage_index=state.current_stage_index,
            stage_message=stage_message,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            steps=tuple(snapshot.steps),
        )

    def _emit(self, **kwargs) -> None:
        event = self._make_event(**kwargs)
        for queue in self._queues:
            queue.put_nowait(event)
        for observer in self._observers:
            try:
                observer(event)
            except Exception as e:
                logger.warning("Progress observer %r failed: %s", observer, e)


async def run_pipeline(
    agents: Iterable[Agent],
    initial_text: str,
    target: ModelTarget,
    *,
    client: ModelClient | None = None,
    config: RuntimeConfig | None = None,
    observers: Iterable[ProgressObserver] = (),
) -> RunState:
    """
    Run the pipeline once and return its terminal state.

    Args:
        agents: Ordered core agents
        initial_text: Extracted document text
        target: Model target used for every call
        client: Pre-built client (default: created from target)
        config: Runtime configuration (default: global config)
        observers: Callbacks receiving ProgressEvents

    Returns:
        The terminal RunState

    Raises:
        PreconditionError: If inputs are invalid (before any state exists)
    """
    runner = PipelineRunner(
        agents, initial_text, target, client=client, config=config, observers=observers
    )
    return await runner.run()
