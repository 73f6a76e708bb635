from pathlib import Path

import pytest

from bmad_bundle.routing import (
    INTENT_RULES,
    IntentRoute,
    handle_command,
    handle_request,
    match_intent,
)
from bmad_bundle.service import BundleService


@pytest.fixture
def service(built_bundle: Path) -> BundleService:
    svc = BundleService(built_bundle)
    svc.start()
    return svc


def test_intent_rules_first_match_wins() -> None:
    # "plan" precedes "architecture" in the rule list
    assert match_intent("Plan the ARCHITECTURE") == IntentRoute(agent="pm", workflow="plan-project")
    assert match_intent("let's brainstorm") == IntentRoute(workflow="brainstorming")
    assert match_intent("hello there") is None


def test_intent_rules_respect_custom_order() -> None:
    rules = [("b", IntentRoute(agent="second")), ("a", IntentRoute(agent="first"))]
    assert match_intent("ab", rules) == IntentRoute(agent="second")
    assert [keyword for keyword, _ in INTENT_RULES][:3] == ["plan", "project", "prd"]


def test_command_requires_slash(service: BundleService) -> None:
    result = handle_command(service, "bmad:master")
    assert result["ok"] is False
    assert "must start with /" in result["error"]


def test_master_command_loads_master_agent(service: BundleService) -> None:
    result = handle_command(service, "/bmad:master")
    assert result["ok"] is True
    assert result["name"] == "bmad-master"


def test_master_trigger_runs_core_workflow(service: BundleService, tmp_path: Path) -> None:
    result = handle_command(service, "/bmad:master *party-mode", cwd=tmp_path, dry_run=True)
    assert result["ok"] is True
    assert result["slug"] == "party-mode"
    assert result["path"] is None


@pytest.mark.parametrize(
    ("text", "error"),
    [
        ("/bmad:master *prd", "unknown master trigger: *prd"),
        ("/bmad:master help", "unsupported master command: help"),
        ("/other", "unknown command: /other"),
    ],
)
def test_command_failures(service: BundleService, text: str, error: str) -> None:
    result = handle_command(service, text)
    assert result == {"ok": False, "error": error}


def test_request_priority(service: BundleService, tmp_path: Path) -> None:
    by_workflow = handle_request(
        service, workflow="bmm:prd", agent="pm", cwd=tmp_path, dry_run=True
    )
    assert by_workflow["slug"] == "prd"
    assert handle_request(service, agent="pm", message="brainstorm")["name"] == "pm"
    assert handle_request(service)["name"] == "bmad-master"


def test_message_routes_to_agent_without_inputs(service: BundleService) -> None:
    assert handle_request(service, message="help me write a PRD")["name"] == "pm"


def test_message_runs_workflow_with_inputs(service: BundleService, tmp_path: Path) -> None:
    result = handle_request(
        service, message="help me brainstorm", inputs={"topic": "x"}, cwd=tmp_path, dry_run=True
    )
    assert result["ok"] is True
    assert result["slug"] == "brainstorming"


def test_message_runs_workflow_with_empty_inputs(service: BundleService, tmp_path: Path) -> None:
    result = handle_request(
        service, message="let's write a prd", inputs={}, cwd=tmp_path, dry_run=True
    )
    assert result["ok"] is True
    assert (result["module"], result["slug"]) == ("bmm", "prd")


def test_unmatched_message_falls_back_to_master(service: BundleService) -> None:
    result = handle_request(service, message="hello there")
    assert result["name"] == "bmad-master"
    assert result["user_request"] == "hello there"
