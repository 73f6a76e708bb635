"""Render prompt packs for a workflow into a sandboxed working directory."""

from __future__ import annotations

import json
import logging
import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from bmad_bundle.discovery.types import ResolvedWorkflow
from bmad_bundle.errors import UnreadableFileError
from bmad_bundle.sandbox import confine

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

FORMAT_MARKER = "<!-- bmad.prompt.v1 -->"
DEFAULT_OUTPUT_DIR = "docs"
README_FILE = "README.md"
README_EXCERPT_LINES = 30
PROJECT_FIELDS = ("name", "version", "description")
NEXT_STEPS = (
    "---",
    "Next Steps:",
    "- Use this file as the working canvas and draft the output here.",
    "- If another workflow is recommended by the instructions, trigger it via the bmad tools "
    "or the /bmad command.",
    "",
)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True, frozen=True)
class RenderResult:
    path: Path | None
    bytes: int
    summary: str
    module: str
    slug: str

    def as_dict(self) -> dict[str, object]:
        return {
            "path": str(self.path) if self.path is not None else None,
            "bytes": self.bytes,
            "summary": self.summary,
            "module": self.module,
            "slug": self.slug,
        }


def output_stamp(now: datetime) -> str:
    """ISO 8601 UTC instant with ':' and '.' made filesystem safe."""
    instant = now.astimezone(UTC)
    iso = instant.strftime("%Y-%m-%dT%H:%M:%S") + f".{instant.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def default_output_path(
    workflow: ResolvedWorkflow,
    working_dir: Path,
    now: datetime,
    output_dir: str = DEFAULT_OUTPUT_DIR,
) -> Path:
    return working_dir / output_dir / workflow.module / f"{workflow.slug}-{output_stamp(now)}.md"


def _pick_fields(data: Mapping[str, object]) -> dict[str, object]:
    picked: dict[str, object] = {}
    for key in PROJECT_FIELDS:
        value = data.get(key)
        if value is not None:
            picked[key] = value
    return picked


def _project_context(working_dir: Path) -> tuple[str, dict[str, object]] | None:
    pyproject = working_dir / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError):
            logger.debug("Ignoring unreadable %s", pyproject)
        else:
            project = data.get("project")
            if isinstance(project, dict):
                return pyproject.name, _pick_fields(project)

    package_json = working_dir / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Ignoring unreadable %s", package_json)
        else:
            if isinstance(data, dict):
                return package_json.name, _pick_fields(data)
    return None


def build_prompt_pack(
    workflow: ResolvedWorkflow,
    working_dir: Path,
    inputs: Mapping[str, object] | None = None,
) -> str:
    lines = [FORMAT_MARKER, f"# {workflow.title or f'{workflow.module}/{workflow.slug}'}", ""]

    context = _project_context(working_dir)
    if context is not None:
        source, fields = context
        lines.extend(
            [f"## Context: {source}", "```json", json.dumps(fields, indent=2), "```", ""]
        )

    readme = working_dir / README_FILE
    if readme.is_file():
        try:
            text = readme.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.debug("Ignoring unreadable %s", readme)
        else:
            excerpt = "\n".join(text.split("\n")[:README_EXCERPT_LINES])
            lines.extend(["## Context: README excerpt", "```md", excerpt, "```", ""])

    lines.extend(
        ["## Inputs", "```json", json.dumps(dict(inputs or {}), indent=2, default=str), "```", ""]
    )

    if workflow.instructions_path is not None:
        try:
            instructions = workflow.instructions_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise UnreadableFileError(str(workflow.instructions_path)) from exc
        lines.extend(["## Instructions", instructions.strip(), ""])

    lines.extend(NEXT_STEPS)
    return "\n".join(lines)


def render(
    workflow: ResolvedWorkflow,
    inputs: Mapping[str, object] | None,
    working_dir: str | Path | None,
    target_path: str | Path | None = None,
    dry_run: bool = False,
    *,
    clock: Clock = utc_now,
    output_dir: str = DEFAULT_OUTPUT_DIR,
) -> RenderResult:
    """Assemble the prompt pack for *workflow* and write it below *working_dir*.

    The output path is confined to the working directory before anything is
    read or written; PathEscapeError aborts the call. With ``dry_run`` the
    content is measured but nothing is written and ``path`` is None.
    """
    base_dir = Path(working_dir or os.getcwd()).expanduser().resolve()
    candidate = (
        Path(target_path)
        if target_path
        else default_output_path(workflow, base_dir, clock(), output_dir)
    )
    out_path = confine(base_dir, candidate)

    encoded = build_prompt_pack(workflow, base_dir, inputs).encode("utf-8")
    if not dry_run:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(encoded)
        logger.info("Wrote prompt pack %s/%s to %s", workflow.module, workflow.slug, out_path)

    action = "prepared (dry-run)" if dry_run else "written"
    return RenderResult(
        path=None if dry_run else out_path,
        bytes=len(encoded),
        summary=f"BMAD {workflow.module}/{workflow.slug} {action} at {out_path}",
        module=workflow.module,
        slug=workflow.slug,
    )
