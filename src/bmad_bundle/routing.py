"""Route slash commands and free-text requests onto bundle operations."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from bmad_bundle.bundle.builder import CORE_MODULE
from bmad_bundle.service import BundleService

MASTER_AGENT = "bmad-master"
MASTER_COMMAND = "/bmad:master"


@dataclass(slots=True, frozen=True)
class IntentRoute:
    agent: str | None = None
    workflow: str | None = None


# Evaluated top to bottom; the first keyword found in the message wins.
INTENT_RULES: list[tuple[str, IntentRoute]] = [
    ("plan", IntentRoute(agent="pm", workflow="plan-project")),
    ("project", IntentRoute(agent="pm", workflow="plan-project")),
    ("prd", IntentRoute(agent="pm", workflow="prd")),
    ("requirements", IntentRoute(agent="analyst")),
    ("architect", IntentRoute(agent="architect", workflow="solution-architecture")),
    ("architecture", IntentRoute(agent="architect", workflow="solution-architecture")),
    ("tech spec", IntentRoute(agent="architect", workflow="tech-spec")),
    ("technical", IntentRoute(agent="architect")),
    ("implement", IntentRoute(agent="dev", workflow="dev-story")),
    ("code", IntentRoute(agent="dev")),
    ("develop", IntentRoute(agent="dev", workflow="dev-story")),
    ("story", IntentRoute(agent="sm", workflow="create-story")),
    ("test", IntentRoute(agent="tea")),
    ("quality", IntentRoute(agent="tea")),
    ("qa", IntentRoute(agent="tea")),
    ("ux", IntentRoute(agent="ux-expert", workflow="ux-spec")),
    ("user experience", IntentRoute(agent="ux-expert", workflow="ux-spec")),
    ("ui", IntentRoute(agent="ux-expert")),
    ("design", IntentRoute(agent="ux-expert")),
    ("game", IntentRoute(agent="game-designer", workflow="gdd")),
    ("gdd", IntentRoute(agent="game-designer", workflow="gdd")),
    ("gameplay", IntentRoute(agent="game-designer")),
    ("game design", IntentRoute(agent="game-designer", workflow="gdd")),
    ("brainstorm", IntentRoute(workflow="brainstorming")),
    ("ideate", IntentRoute(workflow="brainstorming")),
    ("ideas", IntentRoute(workflow="brainstorming")),
    ("creative", IntentRoute(workflow="brainstorming")),
    ("research", IntentRoute(agent="analyst", workflow="research")),
    ("analyze", IntentRoute(agent="analyst")),
    ("market", IntentRoute(agent="analyst", workflow="research")),
    ("competitive", IntentRoute(agent="analyst", workflow="research")),
]


def match_intent(
    message: str, rules: list[tuple[str, IntentRoute]] = INTENT_RULES
) -> IntentRoute | None:
    lowered = message.lower().strip()
    for keyword, route in rules:
        if keyword in lowered:
            return route
    return None


def handle_command(
    service: BundleService,
    text: str,
    *,
    inputs: Mapping[str, object] | None = None,
    cwd: str | Path | None = None,
    target_path: str | Path | None = None,
    dry_run: bool = False,
) -> dict[str, object]:
    """Handle ``/bmad:master`` and ``/bmad:master *<core-workflow>``."""
    command = (text or "").strip()
    if not command.startswith("/"):
        return {"ok": False, "error": "commands must start with /, e.g. /bmad:master"}
    if not command.startswith(MASTER_COMMAND):
        return {"ok": False, "error": f"unknown command: {command}"}

    rest = command[len(MASTER_COMMAND):].strip()
    if not rest:
        return service.load_agent(MASTER_AGENT)

    trigger = rest.split()[0]
    if not trigger.startswith("*"):
        return {"ok": False, "error": f"unsupported master command: {rest}"}
    slug = trigger[1:]
    if service.index.find_workflow(CORE_MODULE, slug) is None:
        return {"ok": False, "error": f"unknown master trigger: {trigger}"}
    return service.run_workflow(
        f"{CORE_MODULE}:{slug}", inputs=inputs, cwd=cwd, target_path=target_path, dry_run=dry_run
    )


def handle_request(
    service: BundleService,
    *,
    workflow: str | None = None,
    agent: str | None = None,
    message: str | None = None,
    inputs: Mapping[str, object] | None = None,
    cwd: str | Path | None = None,
    target_path: str | Path | None = None,
    dry_run: bool = False,
) -> dict[str, object]:
    """Single entry point: workflow, then agent, then message, then the master agent."""
    run_kwargs = {"inputs": inputs, "cwd": cwd, "target_path": target_path, "dry_run": dry_run}
    if workflow:
        return service.run_workflow(workflow, **run_kwargs)
    if agent:
        return service.load_agent(agent)
    if message:
        route = match_intent(message)
        if route is not None:
            if route.workflow and inputs is not None:
                return service.run_workflow(route.workflow, **run_kwargs)
            if route.agent:
                return service.load_agent(route.agent)
            if route.workflow:
                return service.run_workflow(route.workflow, **run_kwargs)
        result = service.load_agent(MASTER_AGENT)
        result["user_request"] = message
        return result
    return service.load_agent(MASTER_AGENT)
