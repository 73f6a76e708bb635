"""Build a versioned embedded store of agents and workflows from a source tree."""

from __future__ import annotations

import csv
import json
import logging
import re
import shutil
import time
import tomllib
from datetime import UTC, datetime
from pathlib import Path

import yaml

from bmad_bundle.bundle.types import (
    AgentEntry,
    BuildResult,
    BuildState,
    BuildStats,
    Manifest,
    WorkflowEntry,
)
from bmad_bundle.errors import (
    BuildValidationError,
    ConfigError,
    MissingManifestError,
    MissingSourceError,
    PathEscapeError,
    UnreadableFileError,
)
from bmad_bundle.sandbox import confine

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0.0"
MANIFEST_FILE = "manifest.json"
AGENT_INDEX_PATH = "bmad/_cfg/agent-manifest.csv"
AGENT_INDEX_COPY = "agents/agent-manifest.csv"
WORKFLOW_DESCRIPTOR = "workflow.yaml"
INSTRUCTIONS_FILE = "instructions.md"
CORE_MODULE = "core"
UNKNOWN_VERSION = "unknown"

# (root relative to the source tree, fixed module). A module of None is taken
# from the first path segment below the root.
WORKFLOW_ROOTS: tuple[tuple[str, str | None], ...] = (
    ("src/core/workflows", CORE_MODULE),
    ("src/modules", None),
)
SIBLING_SUFFIXES = frozenset({".md", ".yaml", ".yml", ".txt"})
IGNORED_DIRS = frozenset({"node_modules", ".git"})
SLUG_RE = re.compile(r"^[a-z0-9_-]+$", re.IGNORECASE)

MIN_AGENTS = 10
REQUIRED_WORKFLOW = (CORE_MODULE, "party-mode")


def _now() -> datetime:
    return datetime.now(UTC)


def _warn(state: BuildState, message: str) -> None:
    state.warnings.append(message)
    logger.warning(message)


def copy_if_newer(source: Path, target: Path, force: bool = False) -> bool:
    """Copy *source* to *target* unless the target is already up to date.

    Returns True when a copy happened. Metadata is preserved so an unchanged
    source is never newer than its previous copy.
    """
    if not force and target.exists():
        if source.stat().st_mtime <= target.stat().st_mtime:
            return False
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)
    return True


def read_source_version(source_root: Path) -> str | None:
    package_json = source_root / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            data = None
        version = data.get("version") if isinstance(data, dict) else None
        if isinstance(version, str) and version.strip():
            return version.strip()
    pyproject = source_root / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError):
            data = {}
        project = data.get("project")
        version = project.get("version") if isinstance(project, dict) else None
        if isinstance(version, str) and version.strip():
            return version.strip()
    return None


def _read_agent_index(index_path: Path) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    try:
        with index_path.open(encoding="utf-8", newline="") as handle:
            for raw in csv.DictReader(handle, skipinitialspace=True):
                row = {
                    key.strip(): value.strip()
                    for key, value in raw.items()
                    if key is not None and isinstance(value, str)
                }
                if any(row.values()):
                    rows.append(row)
    except UnicodeDecodeError as exc:
        raise UnreadableFileError(str(index_path)) from exc
    return rows


def _package_agents(
    source_root: Path, embedded_root: Path, state: BuildState, force: bool
) -> None:
    index_path = source_root / AGENT_INDEX_PATH
    if not index_path.is_file():
        raise MissingManifestError(f"agent index not found: {index_path}")

    state.record_copy(copy_if_newer(index_path, embedded_root / AGENT_INDEX_COPY, force))
    rows = _read_agent_index(index_path)
    logger.info("Found %d agents in index", len(rows))

    seen: set[str] = set()
    for row in rows:
        name = row.get("name", "").lower()
        module = row.get("module", "")
        rel_path = row.get("path", "")
        if not (name and module and rel_path):
            _warn(state, f"Agent row missing name, module or path: {row}")
            continue
        if name in seen:
            _warn(state, f"Duplicate agent name skipped: {name}")
            continue
        try:
            source = confine(source_root, rel_path)
            if not source.is_file():
                raise MissingSourceError(str(source), f"Agent file not found: {source}")
            embedded_path = f"agents/{module}/{source.name}"
            target = confine(embedded_root, embedded_path)
        except (MissingSourceError, PathEscapeError) as exc:
            _warn(state, str(exc))
            continue

        state.record_copy(copy_if_newer(source, target, force))
        seen.add(name)
        state.agents.append(
            AgentEntry(
                name=name,
                display_name=row.get("displayName") or name,
                module=module,
                embedded_path=embedded_path,
            )
        )
    logger.info("Packaged %d agents", len(state.agents))


def _find_descriptors(base_dir: Path) -> list[Path]:
    found: list[Path] = []
    for path in sorted(base_dir.rglob(WORKFLOW_DESCRIPTOR)):
        if IGNORED_DIRS.intersection(path.relative_to(base_dir).parts):
            continue
        if path.is_file():
            found.append(path)
    return found


def _infer_module(descriptor: Path, base_dir: Path, fixed_module: str | None) -> str | None:
    if fixed_module:
        return fixed_module
    parts = descriptor.relative_to(base_dir).parts
    return parts[0] if len(parts) > 1 else None


def _load_descriptor(path: Path) -> dict[str, object] | None:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _package_workflow(
    descriptor: Path,
    module: str,
    data: dict[str, object],
    embedded_root: Path,
    state: BuildState,
    force: bool,
) -> WorkflowEntry:
    slug = str(data["name"]).strip().lower()
    title = str(data.get("title") or data.get("description") or slug).strip()
    embedded_path = f"workflows/{module}/{slug}"
    target_dir = confine(embedded_root, embedded_path)
    source_dir = descriptor.parent

    state.record_copy(copy_if_newer(descriptor, target_dir / WORKFLOW_DESCRIPTOR, force))

    instructions_path: str | None = None
    instructions = source_dir / INSTRUCTIONS_FILE
    if instructions.is_file():
        state.record_copy(copy_if_newer(instructions, target_dir / INSTRUCTIONS_FILE, force))
        instructions_path = f"{embedded_path}/{INSTRUCTIONS_FILE}"

    for sibling in sorted(source_dir.iterdir()):
        if not sibling.is_file() or sibling.suffix not in SIBLING_SUFFIXES:
            continue
        if sibling.name in (WORKFLOW_DESCRIPTOR, INSTRUCTIONS_FILE):
            continue
        state.record_copy(copy_if_newer(sibling, target_dir / sibling.name, force))

    return WorkflowEntry(
        module=module,
        slug=slug,
        title=title,
        embedded_path=embedded_path,
        instructions_path=instructions_path,
        workflow_descriptor_path=f"{embedded_path}/{WORKFLOW_DESCRIPTOR}",
    )


def _package_workflows(
    source_root: Path, embedded_root: Path, state: BuildState, force: bool
) -> None:
    seen: set[tuple[str, str]] = set()
    for rel_root, fixed_module in WORKFLOW_ROOTS:
        base_dir = source_root / rel_root
        if not base_dir.is_dir():
            _warn(state, f"Workflow directory not found: {base_dir}")
            continue

        descriptors = _find_descriptors(base_dir)
        logger.info("Found %d workflows in %s", len(descriptors), rel_root)
        for descriptor in descriptors:
            data = _load_descriptor(descriptor)
            if data is None:
                _warn(
                    state,
                    f"Workflow descriptor is unreadable or not a YAML mapping: {descriptor}",
                )
                continue
            raw_name = str(data.get("name") or "").strip()
            if not raw_name:
                _warn(state, f"Workflow missing name field: {descriptor}")
                continue
            if not SLUG_RE.match(raw_name):
                _warn(state, f"Workflow name is not a valid slug, skipped: {raw_name}")
                continue
            module = _infer_module(descriptor, base_dir, fixed_module)
            if module is None:
                _warn(state, f"Cannot infer module for workflow: {descriptor}")
                continue
            key = (module, raw_name.lower())
            if key in seen:
                _warn(state, f"Duplicate workflow skipped: {module}/{key[1]} ({descriptor})")
                continue
            try:
                entry = _package_workflow(descriptor, module, data, embedded_root, state, force)
            except PathEscapeError as exc:
                _warn(state, str(exc))
                continue
            seen.add(key)
            state.workflows.append(entry)
    logger.info("Packaged %d workflows", len(state.workflows))


def build_manifest(state: BuildState, source_version: str, now: datetime) -> Manifest:
    agents = tuple(sorted(state.agents, key=lambda item: item.name))
    workflows = tuple(sorted(state.workflows, key=lambda item: item.key))
    return Manifest(
        schema_version=SCHEMA_VERSION,
        build_timestamp=now.isoformat(timespec="milliseconds"),
        source_version=source_version,
        agents=agents,
        workflows=workflows,
        stats=BuildStats(
            total_agents=len(agents),
            total_workflows=len(workflows),
            total_files=state.packaged_files,
            files_copied=state.copied_files,
        ),
    )


def _check_embedded(embedded_root: Path, rel_path: object, label: str) -> str | None:
    if not isinstance(rel_path, str) or not rel_path:
        return f"{label}: missing path"
    try:
        resolved = confine(embedded_root, rel_path)
    except PathEscapeError:
        return f"{label} escapes the embedded store: {rel_path}"
    if not resolved.exists():
        return f"{label} missing: {rel_path}"
    return None


def validate_bundle(
    embedded_root: Path,
    *,
    min_agents: int = MIN_AGENTS,
    required_workflow: tuple[str, str] = REQUIRED_WORKFLOW,
) -> dict[str, object]:
    """Reload the written manifest and check it against the files on disk.

    Raises BuildValidationError listing every problem found.
    """
    manifest_path = embedded_root / MANIFEST_FILE
    if not manifest_path.is_file():
        raise BuildValidationError([f"{MANIFEST_FILE} not generated"])
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BuildValidationError([f"{MANIFEST_FILE} is not valid JSON: {exc}"]) from exc
    if not isinstance(manifest, dict):
        raise BuildValidationError([f"{MANIFEST_FILE} is not a JSON object"])

    problems: list[str] = []
    for key in ("schemaVersion", "buildTimestamp", "sourceVersion"):
        if not manifest.get(key):
            problems.append(f"Manifest missing {key}")
    agents = manifest.get("agents")
    if not isinstance(agents, list):
        problems.append("Manifest missing agents array")
        agents = []
    workflows = manifest.get("workflows")
    if not isinstance(workflows, list):
        problems.append("Manifest missing workflows array")
        workflows = []

    if len(agents) < min_agents:
        problems.append(
            f"agents below minimum: {len(agents)} found, expected at least {min_agents}"
        )
    module, slug = required_workflow
    if not any(
        isinstance(item, dict) and item.get("module") == module and item.get("slug") == slug
        for item in workflows
    ):
        problems.append(f"required workflow not found: {module}/{slug}")

    for agent in agents:
        if not isinstance(agent, dict):
            problems.append(f"Agent entry is not an object: {agent!r}")
            continue
        problem = _check_embedded(embedded_root, agent.get("embeddedPath"), "Agent file")
        if problem:
            problems.append(problem)

    for workflow in workflows:
        if not isinstance(workflow, dict):
            problems.append(f"Workflow entry is not an object: {workflow!r}")
            continue
        base = workflow.get("embeddedPath")
        problem = _check_embedded(embedded_root, base, "Workflow directory")
        if problem:
            problems.append(problem)
            continue
        descriptor = workflow.get("workflowDescriptorPath") or f"{base}/{WORKFLOW_DESCRIPTOR}"
        problem = _check_embedded(embedded_root, descriptor, "Workflow file")
        if problem:
            problems.append(problem)
        if workflow.get("instructionsPath"):
            problem = _check_embedded(
                embedded_root, workflow["instructionsPath"], "Instructions file"
            )
            if problem:
                problems.append(problem)

    if problems:
        raise BuildValidationError(problems)
    logger.info("Validation passed")
    return manifest


def _log_summary(state: BuildState, duration_s: float) -> None:
    logger.info(
        "Build summary: duration=%.2fs copied=%d up_to_date=%d agents=%d workflows=%d",
        duration_s,
        state.copied_files,
        state.skipped_files,
        len(state.agents),
        len(state.workflows),
    )
    if state.warnings:
        logger.warning("Build finished with %d warnings", len(state.warnings))
    for error in state.errors:
        logger.error("Build error: %s", error)


def build_bundle(
    source_root: Path,
    embedded_root: Path,
    *,
    clean: bool = False,
    force: bool = False,
    min_agents: int = MIN_AGENTS,
    now: datetime | None = None,
) -> BuildResult:
    """Package *source_root* into *embedded_root* and validate the result.

    File-level problems are collected as warnings. A missing agent index raises
    MissingManifestError and a failed validation raises BuildValidationError;
    in both cases the store is left as far as the build got.
    """
    source_root = Path(source_root).expanduser().resolve()
    embedded_root = Path(embedded_root).expanduser().resolve()
    state = BuildState()
    logger.info("Starting bundle build: source=%s embedded=%s", source_root, embedded_root)

    if clean:
        if source_root == embedded_root or embedded_root in source_root.parents:
            raise ConfigError(f"refusing to clean {embedded_root}: it contains the source tree")
        shutil.rmtree(embedded_root, ignore_errors=True)
        logger.info("Cleaned embedded directory")
    for sub in ("", "agents", "workflows"):
        (embedded_root / sub).mkdir(parents=True, exist_ok=True)

    _package_agents(source_root, embedded_root, state, force)
    _package_workflows(source_root, embedded_root, state, force)

    source_version = read_source_version(source_root)
    if source_version is None:
        _warn(state, f"No version metadata found in {source_root}; using '{UNKNOWN_VERSION}'")
        source_version = UNKNOWN_VERSION
    manifest = build_manifest(state, source_version, now or _now())
    manifest_path = embedded_root / MANIFEST_FILE
    manifest_path.write_text(json.dumps(manifest.as_dict(), indent=2) + "\n", encoding="utf-8")
    logger.info(
        "Generated %s: %d agents, %d workflows",
        MANIFEST_FILE,
        len(state.agents),
        len(state.workflows),
    )

    try:
        written = validate_bundle(embedded_root, min_agents=min_agents)
    except BuildValidationError as exc:
        state.errors.extend(exc.problems)
        _log_summary(state, time.monotonic() - state.started_at)
        raise

    duration = time.monotonic() - state.started_at
    _log_summary(state, duration)
    return BuildResult(
        manifest_path=manifest_path,
        manifest=written,
        warnings=list(state.warnings),
        errors=list(state.errors),
        copied_files=state.copied_files,
        skipped_files=state.skipped_files,
        duration_s=duration,
    )
