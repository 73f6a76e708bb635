"""Runtime index types derived from an embedded manifest."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from bmad_bundle.bundle.types import AgentEntry


@dataclass(slots=True, frozen=True)
class ResolvedWorkflow:
    module: str
    slug: str
    title: str
    directory: Path
    instructions_path: Path | None
    workflow_path: Path | None

    @property
    def qualified_name(self) -> str:
        return f"{self.module}:{self.slug}"


@dataclass(slots=True, frozen=True)
class AgentDocument:
    name: str
    display_name: str
    module: str
    markdown: str


@dataclass(slots=True, frozen=True)
class WorkflowIndex:
    """Immutable snapshot of one embedded store; replaced wholesale on reload."""

    embedded_root: Path
    schema_version: str
    source_version: str
    build_timestamp: str
    workflows: tuple[ResolvedWorkflow, ...]
    agents: tuple[AgentEntry, ...]

    def find_workflow(self, module: str, slug: str) -> ResolvedWorkflow | None:
        for workflow in self.workflows:
            if workflow.module == module and workflow.slug == slug:
                return workflow
        return None

    def find_agent(self, name: str) -> AgentEntry | None:
        wanted = name.strip().lower()
        for agent in self.agents:
            if agent.name == wanted or agent.display_name.lower() == wanted:
                return agent
        return None

    def workflow_names(self) -> list[str]:
        return [workflow.qualified_name for workflow in self.workflows]

    def agent_names(self) -> list[str]:
        return [f"{agent.name} ({agent.display_name})" for agent in self.agents]
