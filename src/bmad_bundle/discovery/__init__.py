"""Embedded store discovery package."""

from bmad_bundle.discovery.loader import load_agent, load_workflow_index, read_manifest
from bmad_bundle.discovery.operations import workflow_operations
from bmad_bundle.discovery.types import AgentDocument, ResolvedWorkflow, WorkflowIndex

__all__ = [
    "AgentDocument",
    "ResolvedWorkflow",
    "WorkflowIndex",
    "load_agent",
    "load_workflow_index",
    "read_manifest",
    "workflow_operations",
]
