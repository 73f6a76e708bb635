"""Types for packaged agent/workflow bundles."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True, frozen=True)
class AgentEntry:
    name: str
    display_name: str
    module: str
    embedded_path: str

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "module": self.module,
            "embeddedPath": self.embedded_path,
        }


@dataclass(slots=True, frozen=True)
class WorkflowEntry:
    module: str
    slug: str
    title: str
    embedded_path: str
    instructions_path: str | None = None
    workflow_descriptor_path: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.module, self.slug)

    def as_dict(self) -> dict[str, object]:
        return {
            "module": self.module,
            "slug": self.slug,
            "title": self.title,
            "embeddedPath": self.embedded_path,
            "instructionsPath": self.instructions_path,
            "workflowDescriptorPath": self.workflow_descriptor_path,
        }


@dataclass(slots=True, frozen=True)
class BuildStats:
    total_agents: int
    total_workflows: int
    total_files: int
    files_copied: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "totalAgents": self.total_agents,
            "totalWorkflows": self.total_workflows,
            "totalFiles": self.total_files,
            "filesCopied": self.files_copied,
        }


@dataclass(slots=True, frozen=True)
class Manifest:
    """In-memory form of manifest.json; ``as_dict`` gives the on-disk layout."""

    schema_version: str
    build_timestamp: str
    source_version: str
    agents: tuple[AgentEntry, ...]
    workflows: tuple[WorkflowEntry, ...]
    stats: BuildStats

    def as_dict(self) -> dict[str, object]:
        return {
            "schemaVersion": self.schema_version,
            "buildTimestamp": self.build_timestamp,
            "sourceVersion": self.source_version,
            "agents": [agent.as_dict() for agent in self.agents],
            "workflows": [workflow.as_dict() for workflow in self.workflows],
            "stats": self.stats.as_dict(),
        }


@dataclass(slots=True)
class BuildState:
    """Mutable accumulator for a single packaging run."""

    agents: list[AgentEntry] = field(default_factory=list)
    workflows: list[WorkflowEntry] = field(default_factory=list)
    copied_files: int = 0
    skipped_files: int = 0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)

    @property
    def packaged_files(self) -> int:
        return self.copied_files + self.skipped_files

    def record_copy(self, copied: bool) -> None:
        if copied:
            self.copied_files += 1
        else:
            self.skipped_files += 1


@dataclass(slots=True)
class BuildResult:
    manifest_path: Path
    manifest: dict[str, object]
    warnings: list[str]
    errors: list[str]
    copied_files: int
    skipped_files: int
    duration_s: float
