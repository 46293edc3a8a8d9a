"""Shared fixtures: fake model clients, agents and targets."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from docflow.runtime import RuntimeConfig
from docflow.workflow.agents import Agent, ModelTarget
from docflow.workflow.llm import GenerationRequest
from docflow.workflow.stage import TASK_FRAMING_PREFIX


def chunk_of(request: GenerationRequest) -> str:
    """Recover the chunk text from a user prompt."""
    return request.user_prompt.removeprefix(f"{TASK_FRAMING_PREFIX}\n")


class FakeClient:
    """
    In-memory ModelClient.

    respond maps a request to the model output; the default echoes the chunk.
    on_call runs before each response with the 1-based call number and may
    raise to simulate a provider failure. delay seconds are slept per call.
    """

    provider = "fake"

    def __init__(
        self,
        respond: Callable[[GenerationRequest], str] | None = None,
        on_call: Callable[[int], None] | None = None,
        delay: float = 0.0,
    ):
        self.respond = respond or chunk_of
        self.on_call = on_call
        self.delay = delay
        self.requests: list[GenerationRequest] = []
        self.closed = False

    async def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        if self.on_call is not None:
            self.on_call(len(self.requests))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.respond(request)

    async def aclose(self) -> None:
        self.closed = True

    @property
    def chunks(self) -> list[str]:
        return [chunk_of(r) for r in self.requests]


def make_agent(agent_id: int, name: str, prompt: str | None = None, **kwargs) -> Agent:
    return Agent(
        id=agent_id,
        name=name,
        prompt_template=prompt or f"prompt:{name}",
        sort_order=kwargs.pop("sort_order", agent_id),
        **kwargs,
    )


def by_prompt(handlers: dict[str, Callable[[str], str]]) -> Callable[[GenerationRequest], str]:
    """Build a respond function that dispatches on the agent's system prompt."""

    def respond(request: GenerationRequest) -> str:
        return handlers[request.system_prompt](chunk_of(request))

    return respond


@pytest.fixture
def target() -> ModelTarget:
    return ModelTarget(provider="google", model="gemini-test", api_key="test-key", id="test")


@pytest.fixture
def config() -> RuntimeConfig:
    return RuntimeConfig(max_chunk_chars=1000)
