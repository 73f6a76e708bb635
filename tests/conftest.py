import json
from collections.abc import Callable
from pathlib import Path

import pytest

from bmad_bundle.bundle.builder import build_bundle
from bmad_bundle.config import get_settings

ENV_KEYS = (
    "APP_ENV",
    "LOG_LEVEL",
    "BMAD_SOURCE_ROOT",
    "BMAD_EMBEDDED_ROOT",
    "BMAD_MIN_AGENTS",
    "BMAD_OUTPUT_DIR",
    "BMAD_OUTPUT_REGISTRY_CAPACITY",
)

AGENT_NAMES = (
    "bmad-master",
    "pm",
    "analyst",
    "architect",
    "dev",
    "sm",
    "tea",
    "ux-expert",
    "game-designer",
    "po",
    "tech-writer",
    "quick-flow",
)
DISPLAY_NAMES = {"bmad-master": "BMad Master", "pm": "John", "analyst": "Mary"}
AGENT_MODULES = {"bmad-master": "core", "game-designer": "bmgd"}

CORE_WORKFLOWS = ("party-mode", "brainstorming")
MODULE_WORKFLOWS = (("bmm", "prd"), ("bmm", "dev-story"))


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("BMAD_EMBEDDED_ROOT", str(tmp_path / "embedded"))
    work = tmp_path / "cwd"
    work.mkdir()
    monkeypatch.chdir(work)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def write_workflow(
    workflow_dir: Path,
    name: str,
    *,
    description: str | None = None,
    instructions: bool = True,
    extra: dict[str, str] | None = None,
) -> Path:
    workflow_dir.mkdir(parents=True, exist_ok=True)
    descriptor = workflow_dir / "workflow.yaml"
    descriptor.write_text(
        f'name: "{name}"\ndescription: "{description or f"Run {name}"}"\n', encoding="utf-8"
    )
    if instructions:
        (workflow_dir / "instructions.md").write_text(
            f"# {name} instructions\n\nStep 1.\n", encoding="utf-8"
        )
    (workflow_dir / "template.md").write_text(f"# {name} template\n", encoding="utf-8")
    for filename, text in (extra or {}).items():
        (workflow_dir / filename).write_text(text, encoding="utf-8")
    return descriptor


def write_source_tree(
    root: Path,
    *,
    agents: tuple[str, ...] = AGENT_NAMES,
    missing_agent_files: tuple[str, ...] = (),
    core_workflows: tuple[str, ...] = CORE_WORKFLOWS,
    module_workflows: tuple[tuple[str, str], ...] = MODULE_WORKFLOWS,
    version: str | None = "6.0.0",
) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    if version is not None:
        (root / "package.json").write_text(
            json.dumps({"name": "bmad-method", "version": version}), encoding="utf-8"
        )

    cfg = root / "bmad" / "_cfg"
    cfg.mkdir(parents=True, exist_ok=True)
    lines = ["name,displayName,module,path"]
    for name in agents:
        module = AGENT_MODULES.get(name, "bmm")
        rel = f"bmad/{module}/agents/{name}.md"
        display = DISPLAY_NAMES.get(name, name.replace("-", " ").title())
        lines.append(f"{name},{display},{module},{rel}")
        if name in missing_agent_files:
            continue
        agent_file = root / rel
        agent_file.parent.mkdir(parents=True, exist_ok=True)
        agent_file.write_text(f"# {display}\n\nPersona for {name}.\n", encoding="utf-8")
    (cfg / "agent-manifest.csv").write_text("\n".join(lines) + "\n", encoding="utf-8")

    for slug in core_workflows:
        write_workflow(root / "src" / "core" / "workflows" / slug, slug)
    for module, slug in module_workflows:
        write_workflow(root / "src" / "modules" / module / "workflows" / slug, slug)
    return root


@pytest.fixture
def source_root(tmp_path: Path) -> Path:
    return write_source_tree(tmp_path / "source")


@pytest.fixture
def make_source_tree(tmp_path: Path) -> Callable[..., Path]:
    def _make(**kwargs: object) -> Path:
        return write_source_tree(tmp_path / "source", **kwargs)

    return _make


@pytest.fixture
def embedded_root(tmp_path: Path) -> Path:
    return tmp_path / "embedded"


@pytest.fixture
def built_bundle(source_root: Path, embedded_root: Path) -> Path:
    build_bundle(source_root, embedded_root)
    return embedded_root
