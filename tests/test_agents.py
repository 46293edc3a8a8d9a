"""Tests for agent and model target definitions."""

from __future__ import annotations

import json

import pytest

from docflow.workflow.agents import DEFAULT_AGENTS, Agent, AgentKind, ModelTarget, select_core_agents
from docflow.workflow.state import RunState, RunStatus, StageRunRecord, StageStatus

from .conftest import make_agent


class TestAgent:
    def test_kind_coerced_from_string(self):
        agent = Agent(id=1, name="A", prompt_template="p", kind="optional")
        assert agent.kind is AgentKind.OPTIONAL
        assert not agent.is_core

    @pytest.mark.parametrize("temperature", [-0.1, 1.01])
    def test_temperature_bounds(self, temperature):
        with pytest.raises(ValueError):
            Agent(id=1, name="A", prompt_template="p", temperature=temperature)

    def test_dict_round_trip(self):
        agent = make_agent(7, "Architect", temperature=0.25, description="Adds headings")
        assert Agent.from_dict(agent.to_dict()) == agent

    def test_select_core_agents(self):
        agents = [
            make_agent(3, "C", sort_order=1),
            make_agent(1, "A", sort_order=2),
            make_agent(2, "B", sort_order=1),
            make_agent(4, "Optional", kind=AgentKind.OPTIONAL, sort_order=0),
        ]
        assert [a.name for a in select_core_agents(agents)] == ["B", "C", "A"]

    def test_default_catalog(self):
        assert [a.name for a in select_core_agents(DEFAULT_AGENTS)] == [
            "Structural Cleaner",
            "Academic Architect",
        ]
        assert [a.temperature for a in DEFAULT_AGENTS] == [0.1, 0.2, 0.25]


class TestModelTarget:
    def test_key_requirements(self):
        assert ModelTarget("google", "gemini").requires_api_key
        assert ModelTarget("openrouter", "x").requires_api_key
        assert not ModelTarget("ollama", "llama3").requires_api_key

    def test_label(self):
        assert ModelTarget("google", "gemini").label == "google:gemini"
        assert ModelTarget("google", "gemini", display_name="Flash").label == "Flash"

    def test_to_dict_hides_key(self):
        target = ModelTarget("google", "gemini", api_key="secret")
        assert "api_key" not in target.to_dict()
        assert ModelTarget.from_dict(target.to_dict(include_key=True)) == target


class TestRunState:
    def test_stage_message_defaults_to_name(self):
        assert StageRunRecord(agent_id=1, agent_name="Cleaner").message == "Cleaner"

    def test_snapshot_is_independent(self):
        state = RunState(steps=[StageRunRecord(agent_id=1, agent_name="A")])
        copy = state.snapshot()
        state.steps[0].status = StageStatus.SUCCESS
        assert copy.steps[0].status is StageStatus.PENDING

    def test_terminal_statuses(self):
        assert {s for s in RunStatus if s.is_terminal} == {
            RunStatus.COMPLETED,
            RunStatus.CANCELLED,
            RunStatus.FAILED,
        }

    def test_json_export(self):
        state = RunState(steps=[StageRunRecord(agent_id=1, agent_name="A")], current_text="abc")
        data = json.loads(state.to_json())
        assert data["status"] == "not_started"
        assert data["current_text"] == "abc"
        assert "current_text" not in state.to_dict()
