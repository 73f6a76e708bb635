"""Click CLI group for building the bundle and running workflows from it."""

from __future__ import annotations

import json
from pathlib import Path

import click

from bmad_bundle.bundle.builder import build_bundle, validate_bundle
from bmad_bundle.config import Settings, get_settings, validate_settings
from bmad_bundle.errors import BuildValidationError, BundleError
from bmad_bundle.logging import configure_logging
from bmad_bundle.service import BundleService

_DIR = click.Path(path_type=Path, file_okay=False)


def _settings() -> Settings:
    settings = get_settings()
    try:
        validate_settings(settings)
    except BundleError as exc:
        raise click.ClickException(str(exc)) from exc
    return settings


def _service(embedded_root: Path | None) -> BundleService:
    service = BundleService.from_settings(_settings(), embedded_root=embedded_root)
    try:
        service.start()
    except BundleError as exc:
        raise click.ClickException(str(exc)) from exc
    return service


def _fail(result: dict[str, object]) -> click.ClickException:
    message = str(result.get("error", "unknown error"))
    available = result.get("available")
    if isinstance(available, list) and available:
        message += "\n\nAvailable:\n" + "\n".join(f"- {item}" for item in available)
    return click.ClickException(message)


def _echo_problems(exc: BuildValidationError) -> None:
    for problem in exc.problems:
        click.echo(f"  - {problem}", err=True)


def _parse_inputs(pairs: tuple[str, ...], inputs_json: str | None) -> dict[str, object]:
    inputs: dict[str, object] = {}
    if inputs_json:
        try:
            decoded = json.loads(inputs_json)
        except json.JSONDecodeError as exc:
            raise click.BadParameter(f"not valid JSON: {exc}", param_hint="--inputs-json")
        if not isinstance(decoded, dict):
            raise click.BadParameter("must be a JSON object", param_hint="--inputs-json")
        inputs.update(decoded)
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--input")
        inputs[key.strip()] = value
    return inputs


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run.")
def cli(log_level: str | None) -> None:
    """bmad-bundle: package agents and workflows, then render prompt packs."""
    settings = get_settings()
    configure_logging(log_level or settings.log_level, json_output=settings.app_env == "prod")


@cli.command()
@click.option("--clean", is_flag=True, help="Wipe the embedded store before building.")
@click.option("--force", is_flag=True, help="Copy every file regardless of mtimes.")
@click.option("--source-root", type=_DIR, default=None, help="Default: BMAD_SOURCE_ROOT.")
@click.option("--embedded-root", type=_DIR, default=None, help="Default: BMAD_EMBEDDED_ROOT.")
def build(
    clean: bool, force: bool, source_root: Path | None, embedded_root: Path | None
) -> None:
    """Package the source tree into the embedded store and validate it."""
    settings = _settings()
    try:
        result = build_bundle(
            source_root or settings.source_root_path(),
            embedded_root or settings.embedded_root_path(),
            clean=clean,
            force=force,
            min_agents=settings.min_agents,
        )
    except BuildValidationError as exc:
        _echo_problems(exc)
        raise click.ClickException("build validation failed") from exc
    except (BundleError, OSError) as exc:
        raise click.ClickException(f"build failed: {exc}") from exc

    stats = result.manifest.get("stats", {})
    click.echo(f"manifest: {result.manifest_path}")
    click.echo(
        f"agents={stats.get('totalAgents')} workflows={stats.get('totalWorkflows')} "
        f"copied={result.copied_files} up_to_date={result.skipped_files} "
        f"duration={result.duration_s:.2f}s"
    )
    if result.warnings:
        click.echo(f"warnings: {len(result.warnings)}", err=True)
        for warning in result.warnings:
            click.echo(f"  - {warning}", err=True)


@cli.command()
@click.option("--embedded-root", type=_DIR, default=None, help="Default: BMAD_EMBEDDED_ROOT.")
def validate(embedded_root: Path | None) -> None:
    """Validate an existing embedded store without rebuilding it."""
    settings = _settings()
    root = embedded_root or settings.embedded_root_path()
    try:
        validate_bundle(root, min_agents=settings.min_agents)
    except BuildValidationError as exc:
        _echo_problems(exc)
        raise click.ClickException("validation failed") from exc
    click.echo(f"ok: {root}")


@cli.command("list-workflows")
@click.option("--module", default=None, help="Only list workflows of this module.")
@click.option("--embedded-root", type=_DIR, default=None)
@click.option("--json", "json_output", is_flag=True, help="Print JSON.")
def list_workflows(module: str | None, embedded_root: Path | None, json_output: bool) -> None:
    """Enumerate packaged workflows."""
    rows = _service(embedded_root).list_workflows(module)
    if json_output:
        click.echo(json.dumps({"workflows": rows}, indent=2))
        return
    if not rows:
        click.echo("No workflows found")
        return
    for row in rows:
        click.echo(f"{row['module']}/{row['slug']} - {row['title']}")


@cli.command()
@click.option("--embedded-root", type=_DIR, default=None)
def operations(embedded_root: Path | None) -> None:
    """Print the per-workflow operation schemas as JSON."""
    schemas = _service(embedded_root).describe_operations()
    click.echo(json.dumps({"operations": schemas}, indent=2))


@cli.command()
@click.argument("workflow")
@click.option("--input", "input_pairs", multiple=True, help="Workflow input as key=value.")
@click.option("--inputs-json", default=None, help="Workflow inputs as a JSON object.")
@click.option("--cwd", type=_DIR, default=None, help="Working directory to write into.")
@click.option("--target-path", default=None, help="Explicit output path inside --cwd.")
@click.option("--dry-run", is_flag=True, help="Render without writing.")
@click.option("--embedded-root", type=_DIR, default=None)
@click.option("--json", "json_output", is_flag=True, help="Print the structured result.")
def run(
    workflow: str,
    input_pairs: tuple[str, ...],
    inputs_json: str | None,
    cwd: Path | None,
    target_path: str | None,
    dry_run: bool,
    embedded_root: Path | None,
    json_output: bool,
) -> None:
    """Render the prompt pack for WORKFLOW (slug or module:slug)."""
    inputs = _parse_inputs(input_pairs, inputs_json)
    result = _service(embedded_root).run_workflow(
        workflow, inputs=inputs, cwd=cwd, target_path=target_path, dry_run=dry_run
    )
    if not result["ok"]:
        raise _fail(result)
    if json_output:
        click.echo(json.dumps(result, indent=2))
        return
    click.echo(result["summary"])
    if result.get("path"):
        click.echo(f"path: {result['path']}")


@cli.command()
@click.argument("name")
@click.option("--embedded-root", type=_DIR, default=None)
def agent(name: str, embedded_root: Path | None) -> None:
    """Print the persona markdown of agent NAME."""
    result = _service(embedded_root).load_agent(name)
    if not result["ok"]:
        raise _fail(result)
    click.echo(f"Loaded agent: {result['displayName']}\n")
    click.echo(result["markdown"])


def main() -> None:
    cli()
