"""Per-workflow operation descriptors projected from a workflow index."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from bmad_bundle.discovery.types import WorkflowIndex

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]+")

RUN_PARAMETERS: dict[str, object] = {
    "type": "object",
    "properties": {
        "cwd": {"type": "string", "description": "Target workspace directory to write into"},
        "inputs": {"type": "object", "description": "Key/value inputs for the workflow"},
        "targetPath": {"type": "string", "description": "Optional explicit target file path"},
        "dryRun": {"type": "boolean", "description": "Set true to avoid writing"},
    },
}


@dataclass(slots=True, frozen=True)
class OperationDef:
    name: str
    title: str
    description: str
    module: str
    slug: str
    parameters: dict[str, object] = field(default_factory=lambda: dict(RUN_PARAMETERS))


def operation_name(module: str, slug: str) -> str:
    return _UNSAFE_CHARS.sub("-", f"bmad-{module}-{slug}".lower())


def workflow_operations(index: WorkflowIndex) -> list[OperationDef]:
    """One descriptor per workflow, recomputed from scratch for each index."""
    operations: list[OperationDef] = []
    seen: set[str] = set()
    for workflow in index.workflows:
        name = operation_name(workflow.module, workflow.slug)
        if name in seen:
            continue
        seen.add(name)
        operations.append(
            OperationDef(
                name=name,
                title=f"{workflow.module}/{workflow.slug}",
                description=workflow.title or f"Run {workflow.module}/{workflow.slug}",
                module=workflow.module,
                slug=workflow.slug,
            )
        )
    return operations


def operation_schemas(operations: list[OperationDef]) -> list[dict[str, object]]:
    return [
        {
            "name": operation.name,
            "description": operation.description,
            "parameters": operation.parameters,
        }
        for operation in operations
    ]
