"""
Docflow Workflow Engine.

Runs an ordered chain of LLM agents over extracted document text.

Architecture:
    Text → [Chunker] → chunks → [Stage: agent 1] → text → ... → [Stage: agent N] → Markdown
                                      ↑
                          (one model call per chunk)

Usage:
    from docflow.workflow import PipelineRunner

    runner = PipelineRunner(agents, text, target)
    state = await runner.run()
    print(state.final_artifact)
"""

from .agents import DEFAULT_AGENTS, Agent, AgentKind, ModelTarget, select_core_agents
from .llm import GenerationRequest, ModelClient, create_client, register_provider
from .runner import PipelineRunner, run_pipeline
from .stage import StageResult, run_stage
from .state import (
    CancellationToken,
    ProgressEvent,
    RunState,
    RunStatus,
    StageRunRecord,
    StageStatus,
)

__all__ = [
    "Agent",
    "AgentKind",
    "ModelTarget",
    "DEFAULT_AGENTS",
    "select_core_agents",
    "GenerationRequest",
    "ModelClient",
    "create_client",
    "register_provider",
    "PipelineRunner",
    "run_pipeline",
    "StageResult",
    "run_stage",
    "CancellationToken",
    "ProgressEvent",
    "RunState",
    "RunStatus",
    "StageRunRecord",
    "StageStatus",
]
