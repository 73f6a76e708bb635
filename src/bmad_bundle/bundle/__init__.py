"""Bundle packaging package."""

from bmad_bundle.bundle.builder import build_bundle, validate_bundle
from bmad_bundle.bundle.types import (
    AgentEntry,
    BuildResult,
    BuildStats,
    Manifest,
    WorkflowEntry,
)

__all__ = [
    "AgentEntry",
    "BuildResult",
    "BuildStats",
    "Manifest",
    "WorkflowEntry",
    "build_bundle",
    "validate_bundle",
]
