"""Host-facing operations over the embedded bundle.

The transport layer calls only into BundleService. Lookup and rendering
errors come back as ``{"ok": False, ...}`` dictionaries; only a missing
manifest on the first load is allowed to propagate.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from bmad_bundle.config import Settings
from bmad_bundle.discovery.loader import load_agent, load_workflow_index
from bmad_bundle.discovery.operations import OperationDef, operation_schemas, workflow_operations
from bmad_bundle.discovery.types import ResolvedWorkflow, WorkflowIndex
from bmad_bundle.errors import BundleError, LookupFailedError, WorkflowNotFoundError
from bmad_bundle.execution.assembler import DEFAULT_OUTPUT_DIR, Clock, render, utc_now
from bmad_bundle.execution.outputs import OutputRegistry, output_uri
from bmad_bundle.logging import log_context

logger = logging.getLogger(__name__)

_Loaded = tuple[WorkflowIndex, list[OperationDef]]


def failure(exc: Exception) -> dict[str, object]:
    payload: dict[str, object] = {
        "ok": False,
        "error": str(exc),
        "error_type": type(exc).__name__,
    }
    if isinstance(exc, LookupFailedError):
        payload["available"] = list(exc.available)
    return payload


class BundleService:
    def __init__(
        self,
        embedded_root: Path,
        *,
        registry: OutputRegistry | None = None,
        clock: Clock = utc_now,
        output_dir: str = DEFAULT_OUTPUT_DIR,
    ) -> None:
        self._embedded_root = Path(embedded_root)
        self._registry = registry if registry is not None else OutputRegistry()
        self._clock = clock
        self._output_dir = output_dir
        self._loaded: _Loaded | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        embedded_root: Path | None = None,
        clock: Clock = utc_now,
    ) -> BundleService:
        return cls(
            embedded_root or settings.embedded_root_path(),
            registry=OutputRegistry(settings.output_registry_capacity),
            clock=clock,
            output_dir=settings.output_dir,
        )

    @property
    def registry(self) -> OutputRegistry:
        return self._registry

    def _load(self) -> _Loaded:
        index = load_workflow_index(self._embedded_root)
        loaded = (index, workflow_operations(index))
        # Single reference assignment: readers see the old pair or the new one.
        self._loaded = loaded
        return loaded

    def start(self) -> WorkflowIndex:
        return self._load()[0]

    @property
    def index(self) -> WorkflowIndex:
        loaded = self._loaded or self._load()
        return loaded[0]

    def operations(self) -> list[OperationDef]:
        loaded = self._loaded or self._load()
        return list(loaded[1])

    def describe_operations(self) -> list[dict[str, object]]:
        """Name, description and parameter schema of every workflow operation."""
        return operation_schemas(self.operations())

    def reload(self) -> dict[str, object]:
        try:
            index, _ = self._load()
        except BundleError as exc:
            logger.warning("Reload failed, keeping previous index: %s", exc)
            return failure(exc)
        count = len(index.workflows)
        return {"ok": True, "workflows": count, "message": f"Reloaded {count} workflows."}

    def list_workflows(self, module: str | None = None) -> list[dict[str, str]]:
        return [
            {"module": workflow.module, "slug": workflow.slug, "title": workflow.title}
            for workflow in self.index.workflows
            if not module or workflow.module == module
        ]

    def resolve_workflow(self, identifier: str) -> ResolvedWorkflow:
        """Find a workflow by bare slug, ``module:slug`` or ``module/slug``."""
        index = self.index
        wanted = identifier.strip()
        for workflow in index.workflows:
            if workflow.slug == wanted:
                return workflow
        for separator in (":", "/"):
            if separator in wanted:
                module, slug = wanted.split(separator, 1)
                found = index.find_workflow(module.strip(), slug.strip())
                if found is not None:
                    return found
        raise WorkflowNotFoundError(identifier, index.workflow_names())

    def run_workflow(
        self,
        workflow: str,
        inputs: Mapping[str, object] | None = None,
        cwd: str | Path | None = None,
        target_path: str | Path | None = None,
        dry_run: bool = False,
    ) -> dict[str, object]:
        with log_context(workflow=workflow, dry_run=dry_run):
            try:
                resolved = self.resolve_workflow(workflow)
                result = render(
                    resolved,
                    inputs,
                    cwd,
                    target_path,
                    dry_run,
                    clock=self._clock,
                    output_dir=self._output_dir,
                )
            except (BundleError, OSError) as exc:
                logger.warning("run_workflow %s failed: %s", workflow, exc)
                return failure(exc)

        payload: dict[str, object] = {"ok": True, **result.as_dict()}
        if result.path is not None:
            output_id = self._registry.register(result.path)
            payload["output_id"] = output_id
            payload["resource_uri"] = output_uri(output_id)
        return payload

    def load_agent(self, name: str) -> dict[str, object]:
        try:
            document = load_agent(self.index, name)
        except (BundleError, OSError) as exc:
            return failure(exc)
        return {
            "ok": True,
            "name": document.name,
            "displayName": document.display_name,
            "module": document.module,
            "markdown": document.markdown,
        }

    def read_output(self, output_id: str) -> dict[str, object]:
        path = self._registry.resolve(output_id)
        text = self._registry.read(output_id) if path is not None else None
        if path is None or text is None:
            return {"ok": False, "error": f"output not found: {output_id}"}
        return {"ok": True, "uri": output_uri(output_id), "path": str(path), "text": text}
