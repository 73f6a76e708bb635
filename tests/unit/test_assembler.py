import json
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from bmad_bundle.discovery.types import ResolvedWorkflow
from bmad_bundle.errors import PathEscapeError
from bmad_bundle.execution.assembler import (
    FORMAT_MARKER,
    build_prompt_pack,
    output_stamp,
    render,
)

FIXED = datetime(2026, 10, 17, 12, 34, 56, 789123, tzinfo=UTC)


def _clock() -> datetime:
    return FIXED


def _workflow(tmp_path: Path, *, instructions: str | None = "Do the thing.\n") -> ResolvedWorkflow:
    directory = tmp_path / "embedded" / "workflows" / "core" / "party-mode"
    directory.mkdir(parents=True, exist_ok=True)
    instructions_path = None
    if instructions is not None:
        instructions_path = directory / "instructions.md"
        instructions_path.write_text(instructions, encoding="utf-8")
    return ResolvedWorkflow(
        module="core",
        slug="party-mode",
        title="Party Mode",
        directory=directory,
        instructions_path=instructions_path,
        workflow_path=None,
    )


def _files(root: Path) -> list[Path]:
    return sorted(path for path in root.rglob("*"))


def test_output_stamp() -> None:
    assert output_stamp(FIXED) == "2026-10-17T12-34-56-789Z"
    shifted = FIXED.astimezone(timezone(timedelta(hours=2)))
    assert output_stamp(shifted) == "2026-10-17T12-34-56-789Z"


def test_render_writes_default_path(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    result = render(_workflow(tmp_path), {"topic": "launch"}, work, clock=_clock)

    expected = work / "docs" / "core" / "party-mode-2026-10-17T12-34-56-789Z.md"
    assert result.path == expected.resolve()
    assert expected.is_file()
    assert result.bytes == len(expected.read_bytes())
    assert result.module == "core"
    assert result.slug == "party-mode"
    assert result.summary == f"BMAD core/party-mode written at {expected.resolve()}"


def test_render_custom_output_dir(tmp_path: Path) -> None:
    result = render(_workflow(tmp_path), None, tmp_path, clock=_clock, output_dir="packs")
    assert result.path == (tmp_path / "packs/core/party-mode-2026-10-17T12-34-56-789Z.md").resolve()


def test_dry_run_writes_nothing(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    before = _files(work)

    result = render(_workflow(tmp_path), {"a": 1}, work, dry_run=True, clock=_clock)

    assert result.path is None
    assert result.bytes > 0
    assert "prepared (dry-run)" in result.summary
    assert _files(work) == before


def test_relative_target_path(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    result = render(_workflow(tmp_path), None, work, target_path="notes/party.md")
    assert result.path == (work / "notes" / "party.md").resolve()
    assert result.path.is_file()


def test_absolute_target_inside_working_dir(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    target = work / "party.md"
    assert render(_workflow(tmp_path), None, work, target_path=target).path == target.resolve()


@pytest.mark.parametrize("target", ["../../outside.md", "../project-evil/x.md"])
def test_escaping_target_fails_before_write(tmp_path: Path, target: str) -> None:
    work = tmp_path / "project"
    work.mkdir()
    workflow = _workflow(tmp_path)
    before = _files(tmp_path)
    with pytest.raises(PathEscapeError):
        render(workflow, None, work, target_path=target)
    assert _files(tmp_path) == before


def test_absolute_target_outside_fails(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    with pytest.raises(PathEscapeError):
        render(_workflow(tmp_path), None, work, target_path=tmp_path / "elsewhere.md")


def test_prompt_pack_section_order(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    (work / "pyproject.toml").write_text(
        '[project]\nname = "demo"\nversion = "1.2.3"\ndescription = "Demo app"\n'
        'dependencies = ["secret-lib"]\n',
        encoding="utf-8",
    )
    readme = [f"line {i}" for i in range(1, 41)]
    (work / "README.md").write_text("\n".join(readme) + "\n", encoding="utf-8")

    content = build_prompt_pack(_workflow(tmp_path), work, {"topic": "launch"})
    lines = content.split("\n")

    assert lines[0] == FORMAT_MARKER
    assert lines[1] == "# Party Mode"
    order = [
        content.index("## Context: pyproject.toml"),
        content.index("## Context: README excerpt"),
        content.index("## Inputs"),
        content.index("## Instructions"),
        content.index("Next Steps:"),
    ]
    assert order == sorted(order)
    assert '"name": "demo"' in content
    assert '"version": "1.2.3"' in content
    assert '"description": "Demo app"' in content
    assert "secret-lib" not in content
    assert "line 30" in content
    assert "line 31" not in content
    assert json.dumps({"topic": "launch"}, indent=2) in content
    assert "Do the thing." in content
    assert content.endswith("\n")


def test_prompt_pack_without_optional_sources(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    content = build_prompt_pack(_workflow(tmp_path, instructions=None), work)
    assert "## Context" not in content
    assert "## Instructions" not in content
    assert "## Inputs\n```json\n{}\n```" in content


def test_invalid_pyproject_falls_back_to_package_json(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    (work / "pyproject.toml").write_text("[project\nbroken", encoding="utf-8")
    (work / "package.json").write_text(
        json.dumps({"name": "web", "version": "0.1.0", "scripts": {"x": "y"}}), encoding="utf-8"
    )
    content = build_prompt_pack(_workflow(tmp_path), work)
    assert "## Context: package.json" in content
    assert '"name": "web"' in content
    assert "scripts" not in content


def test_invalid_package_json_is_skipped(tmp_path: Path) -> None:
    work = tmp_path / "project"
    work.mkdir()
    (work / "package.json").write_text("{oops", encoding="utf-8")
    content = build_prompt_pack(_workflow(tmp_path), work)
    assert "## Context" not in content
