"""Embedded manifest loader."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from bmad_bundle.bundle.builder import INSTRUCTIONS_FILE, MANIFEST_FILE, WORKFLOW_DESCRIPTOR
from bmad_bundle.bundle.types import AgentEntry
from bmad_bundle.discovery.types import AgentDocument, ResolvedWorkflow, WorkflowIndex
from bmad_bundle.errors import (
    AgentNotFoundError,
    ManifestMissingError,
    ManifestParseError,
    ManifestSchemaError,
    MissingSourceError,
    UnreadableFileError,
)
from bmad_bundle.sandbox import confine

logger = logging.getLogger(__name__)


def read_manifest(embedded_root: Path) -> dict[str, object]:
    manifest_path = confine(embedded_root, MANIFEST_FILE)
    if not manifest_path.is_file():
        raise ManifestMissingError(
            f"embedded manifest not found at {manifest_path}; "
            "run 'bmad-bundle build' before starting the server"
        )
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ManifestParseError(f"failed to parse manifest: {exc}") from exc

    if not isinstance(data, dict):
        raise ManifestSchemaError("manifest", "invalid manifest: top level is not an object")
    if not isinstance(data.get("workflows"), list):
        raise ManifestSchemaError("workflows")
    if not isinstance(data.get("agents"), list):
        raise ManifestSchemaError("agents")
    if not data.get("schemaVersion"):
        raise ManifestSchemaError("schemaVersion")
    return data


def _require_str(item: object, key: str, section: str) -> str:
    value = item.get(key) if isinstance(item, dict) else None
    if not isinstance(value, str) or not value:
        raise ManifestSchemaError(f"{section}[].{key}")
    return value


def _parse_agent(item: object) -> AgentEntry:
    name = _require_str(item, "name", "agents")
    return AgentEntry(
        name=name,
        display_name=str(item.get("displayName") or name),
        module=_require_str(item, "module", "agents"),
        embedded_path=_require_str(item, "embeddedPath", "agents"),
    )


def _resolve_workflow(embedded_root: Path, item: object) -> ResolvedWorkflow:
    module = _require_str(item, "module", "workflows")
    slug = _require_str(item, "slug", "workflows")
    embedded_path = _require_str(item, "embeddedPath", "workflows")

    directory = confine(embedded_root, embedded_path)
    descriptor = confine(
        embedded_root,
        item.get("workflowDescriptorPath") or f"{embedded_path}/{WORKFLOW_DESCRIPTOR}",
    )
    instructions = confine(
        embedded_root, item.get("instructionsPath") or f"{embedded_path}/{INSTRUCTIONS_FILE}"
    )
    return ResolvedWorkflow(
        module=module,
        slug=slug,
        title=str(item.get("title") or slug),
        directory=directory,
        instructions_path=instructions if instructions.is_file() else None,
        workflow_path=descriptor if descriptor.is_file() else None,
    )


def load_workflow_index(embedded_root: Path) -> WorkflowIndex:
    """Read and verify the embedded manifest, returning a fresh index.

    Every call builds a new WorkflowIndex; callers swap the reference they
    hold rather than mutating an existing index.
    """
    embedded_root = Path(embedded_root).expanduser().resolve()
    manifest = read_manifest(embedded_root)

    workflows = tuple(_resolve_workflow(embedded_root, item) for item in manifest["workflows"])
    agents = tuple(_parse_agent(item) for item in manifest["agents"])
    index = WorkflowIndex(
        embedded_root=embedded_root,
        schema_version=str(manifest["schemaVersion"]),
        source_version=str(manifest.get("sourceVersion") or ""),
        build_timestamp=str(manifest.get("buildTimestamp") or ""),
        workflows=workflows,
        agents=agents,
    )
    logger.info(
        "Loaded embedded manifest v%s: %d workflows, %d agents",
        index.schema_version,
        len(workflows),
        len(agents),
    )
    return index


def load_agent(index: WorkflowIndex, name: str) -> AgentDocument:
    agent = index.find_agent(name)
    if agent is None:
        raise AgentNotFoundError(name, index.agent_names())
    path = confine(index.embedded_root, agent.embedded_path)
    if not path.is_file():
        raise MissingSourceError(
            str(path), f"agent file missing from bundle: {agent.embedded_path}"
        )
    try:
        markdown = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise UnreadableFileError(str(path)) from exc
    return AgentDocument(
        name=agent.name,
        display_name=agent.display_name,
        module=agent.module,
        markdown=markdown,
    )
