"""
Agent and model target definitions.

An agent is one pipeline stage: a system prompt plus a temperature. Only
"core" agents run; "optional" agents sit in the catalog until promoted.
A model target names the provider, model and credential used for every
call of one run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class AgentKind(str, Enum):
    CORE = "core"
    OPTIONAL = "optional"


@dataclass(frozen=True)
class Agent:
    """A configured text-transformation step."""

    id: int
    name: str
    prompt_template: str
    kind: AgentKind = AgentKind.CORE
    description: str = ""
    temperature: float = 0.2
    sort_order: int = 0

    def __post_init__(self):
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        # Accept plain strings from storage rows and JSON bodies
        object.__setattr__(self, "kind", AgentKind(self.kind))

    @property
    def is_core(self) -> bool:
        return self.kind is AgentKind.CORE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "description": self.description,
            "temperature": self.temperature,
            "prompt_template": self.prompt_template,
            "sort_order": self.sort_order,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Agent":
        return cls(
            id=data["id"],
            name=data["name"],
            prompt_template=data.get("prompt_template", ""),
            kind=data.get("kind", AgentKind.CORE),
            description=data.get("description", ""),
            temperature=data.get("temperature", 0.2),
            sort_order=data.get("sort_order", 0),
        )


def select_core_agents(agents: Iterable[Agent]) -> tuple[Agent, ...]:
    """Return the core agents in execution order (sort_order, then id)."""
    core = [agent for agent in agents if agent.is_core]
    return tuple(sorted(core, key=lambda a: (a.sort_order, a.id)))


# Providers that run without an API key
KEYLESS_PROVIDERS: frozenset[str] = frozenset({"ollama"})


@dataclass(frozen=True)
class ModelTarget:
    """Provider, model and credential selected for one run."""

    provider: str
    model: str
    api_key: str = field(default="", repr=False)
    id: str = ""
    display_name: str = ""

    @property
    def requires_api_key(self) -> bool:
        return self.provider not in KEYLESS_PROVIDERS

    @property
    def label(self) -> str:
        return self.display_name or f"{self.provider}:{self.model}"

    def to_dict(self, *, include_key: bool = False) -> dict:
        data = {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "display_name": self.display_name,
        }
        if include_key:
            data["api_key"] = self.api_key
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ModelTarget":
        return cls(
            provider=data["provider"],
            model=data["model"],
            api_key=data.get("api_key") or "",
            id=data.get("id", ""),
            display_name=data.get("display_name", ""),
        )


# -----------------------------------------------------------------------------
# Default catalog
# -----------------------------------------------------------------------------

STRUCTURAL_CLEANER_PROMPT = """You are a structural parser. Your only job is to take raw text extracted from technical slides or documents and clean it of every non-informative element while preserving the original structure of the content.

Steps:
1. Keep only text with teaching value.
2. Remove page numbers, running headers and footers, logos, copyright notices, text pulled out of diagrams that makes no sense without the picture, and colloquial "thinking aloud" comments.
3. Fix obvious transcription errors ("functoin" -> "function").
4. Preserve structure: bullet lists become Markdown lists, code becomes fenced code blocks, and output logs (lines starting with "Epoch", "loss:" and similar) are grouped into a single code block.

Output ONLY the cleaned Markdown, in the original language. Do not translate. Do not remove or alter informative content. Do not remove redundancy at this stage."""

ACADEMIC_ARCHITECT_PROMPT = """You are an academic architect: an expert at giving technical study material a clear hierarchical structure with Markdown headings.

Steps:
1. Read the whole text and identify its main themes, merging fragmented content into coherent sections.
2. Give each main theme a second-level heading (##) and each sub-topic a third-level heading (###).
3. Headings must be concise and describe the content they introduce.
4. Remove headings left without meaningful content below them.

Output ONLY the reorganised Markdown, in the original language. Do not translate. Do not change the text of paragraphs or lists. Do not drop information. Do not use first-level headings (#). Do not change the original order of the content."""

SYNTHESIZER_PROMPT = """You are an academic synthesizer. Your job is not to summarise but to increase the information density of a text, removing verbosity while keeping every concept.

For each section decide whether its content is a logical flow (write a compact paragraph) or an enumeration of distinct items (write a dense bullet list in the form "**Key concept:** essential explanation").

Absolute rules:
- Zero information loss: every concept, definition and example in the input must be traceable in the output.
- Headings, section order and code blocks must not be altered or removed.
- Every word must be necessary."""


DEFAULT_AGENTS: tuple[Agent, ...] = (
    Agent(
        id=1,
        name="Structural Cleaner",
        kind=AgentKind.CORE,
        description="Removes noise (page numbers, headers) and corrects transcription errors.",
        temperature=0.1,
        prompt_template=STRUCTURAL_CLEANER_PROMPT,
        sort_order=1,
    ),
    Agent(
        id=2,
        name="Academic Architect",
        kind=AgentKind.CORE,
        description="Organizes the clean text into a logical structure with clear headings.",
        temperature=0.2,
        prompt_template=ACADEMIC_ARCHITECT_PROMPT,
        sort_order=2,
    ),
    Agent(
        id=3,
        name="Synthesizer",
        kind=AgentKind.OPTIONAL,
        description="Adds a final step to increase the informational density of the text.",
        temperature=0.25,
        prompt_template=SYNTHESIZER_PROMPT,
        sort_order=3,
    ),
)
