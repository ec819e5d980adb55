from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import click

from workplan.activity import ActivityLog
from workplan.config import CONFIG_FILENAME, WorkplanConfig, load_config, save_config
from workplan.errors import WorkplanError
from workplan.evaluator import WorkflowEvaluator
from workplan.repository import PlanRepository
from workplan.service import PlanningService
from workplan.state import PlanStore

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(slots=True)
class Runtime:
    repo_root: Path
    config_path: Path
    config: WorkplanConfig
    repository: PlanRepository
    service: PlanningService
    evaluator: WorkflowEvaluator


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _plans_dir(repo_root: Path, config: WorkplanConfig) -> Path:
    plans_dir = Path(config.store.plans_dir)
    if not plans_dir.is_absolute():
        plans_dir = repo_root / plans_dir
    return plans_dir


def _load_runtime(config_value: str) -> Runtime:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    try:
        config = load_config(config_path)
        repository = PlanRepository(
            PlanStore(_plans_dir(repo_root, config)),
            activity=ActivityLog(limit=config.store.log_limit),
        )
    except (TypeError, ValueError, WorkplanError) as exc:
        raise click.ClickException(f"Failed to load workplan: {exc}") from exc
    return Runtime(
        repo_root=repo_root,
        config_path=config_path,
        config=config,
        repository=repository,
        service=PlanningService(repository),
        evaluator=WorkflowEvaluator(repository, config),
    )


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def config_option(command):
    return click.option(
        "--config", "config_value", default=CONFIG_FILENAME, show_default=True
    )(command)


def point_fields_options(command):
    options = [
        click.option("--name", "short_name", default=None),
        click.option("--short", "short_description", default=None),
        click.option("--detail", "detailed_description", default=None),
        click.option("--review", "review_instructions", default=None),
        click.option("--testing", "testing_instructions", default=None),
        click.option("--outputs", "expected_outputs", default=None),
        click.option("--inputs", "expected_inputs", default=None),
        click.option("--depends", "depends_on", multiple=True),
        click.option("--care-on", "care_on_points", multiple=True),
    ]
    for option in reversed(options):
        command = option(command)
    return command


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
)
def cli(log_level: str) -> None:
    """Workplan CLI."""
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)


@cli.command("init")
@click.option("--plans-dir", default=None)
@config_option
def init_command(plans_dir: str | None, config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    try:
        config = load_config(config_path)
    except (TypeError, ValueError) as exc:
        raise click.ClickException(f"Failed to load workplan: {exc}") from exc
    if plans_dir:
        config.store.plans_dir = plans_dir
    save_config(config_path, config)
    resolved_plans_dir = _plans_dir(repo_root, config)
    resolved_plans_dir.mkdir(parents=True, exist_ok=True)

    click.echo(f"Initialized workplan in {repo_root}")
    click.echo(f"Config: {config_path}")
    click.echo(f"Plans: {resolved_plans_dir}")


@cli.command("new")
@click.argument("plan_id")
@click.argument("name")
@click.option("--short", "short_description", default="")
@click.option("--long", "long_description", default="")
@click.option("--request", "original_request", default=None)
@click.option("--translated", "translated_request", default=None)
@click.option("--language", "detected_language", default=None)
@config_option
def new_command(
    plan_id: str,
    name: str,
    short_description: str,
    long_description: str,
    original_request: str | None,
    translated_request: str | None,
    detected_language: str | None,
    config_value: str,
) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.create_plan(
            plan_id,
            name,
            short_description,
            long_description,
            original_request=original_request,
            translated_request=translated_request,
            detected_language=detected_language,
        )
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created plan {plan_id}")


@cli.command("list")
@click.option("--descriptions", is_flag=True, default=False)
@config_option
def list_command(descriptions: bool, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    plans = runtime.service.list_plans(include_short_description=descriptions)
    if not plans:
        click.echo("No plans found.")
        return
    for summary in plans:
        line = f"{summary['id']}  {summary['name']}"
        if descriptions and summary.get("short_description"):
            line += f"  - {summary['short_description']}"
        click.echo(line)


@cli.command("show")
@click.argument("plan_id")
@click.option("--descriptions", is_flag=True, default=False)
@config_option
def show_command(plan_id: str, descriptions: bool, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        payload = runtime.service.show_plan(plan_id, include_point_descriptions=descriptions)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(payload)


@cli.command("describe")
@click.argument("plan_id")
@click.option("--name", default=None)
@click.option("--short", "short_description", default=None)
@click.option("--long", "long_description", default=None)
@config_option
def describe_command(
    plan_id: str,
    name: str | None,
    short_description: str | None,
    long_description: str | None,
    config_value: str,
) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.update_plan_details(plan_id, name, short_description, long_description)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Updated plan {plan_id}")


@cli.command("architecture")
@click.argument("plan_id")
@click.argument("document", required=False)
@click.option(
    "--file",
    "document_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
)
@config_option
def architecture_command(
    plan_id: str,
    document: str | None,
    document_file: Path | None,
    config_value: str,
) -> None:
    if document_file is not None:
        document = document_file.read_text(encoding="utf-8")
    if not document:
        raise click.ClickException("Provide the architecture document or --file.")
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_architecture(plan_id, document)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Architecture set for plan {plan_id}")


@cli.command("state")
@click.argument("plan_id")
@config_option
def state_command(plan_id: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        state = runtime.service.plan_state(plan_id)
        done, pending = runtime.service.is_plan_done(plan_id)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    payload = asdict(state)
    payload["done"] = done
    payload["pending_points"] = pending
    _echo_json(payload)


@cli.command("logs")
@click.argument("plan_id")
@click.option("--limit", type=int, default=None)
@config_option
def logs_command(plan_id: str, limit: int | None, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        entries = runtime.service.get_logs(plan_id, limit)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    if not entries:
        click.echo("No log entries.")
        return
    for entry in entries:
        line = f"{entry.timestamp} {entry.kind}:{entry.action} {entry.target} {entry.message}"
        if entry.details:
            line += f" ({entry.details})"
        click.echo(line)


@cli.command("reviewed")
@click.argument("plan_id")
@click.option("--comment", default="")
@config_option
def reviewed_command(plan_id: str, comment: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_plan_reviewed(plan_id, comment)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Plan {plan_id} marked reviewed")


@cli.command("needs-work")
@click.argument("plan_id")
@click.argument("comments", nargs=-1, required=True)
@config_option
def needs_work_command(plan_id: str, comments: tuple[str, ...], config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_plan_needs_work(plan_id, comments)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Plan {plan_id} marked as needing work ({len(comments)} comment(s))")


@cli.command("accept")
@click.argument("plan_id")
@click.option("--comment", default="")
@config_option
def accept_command(plan_id: str, comment: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_plan_accepted(plan_id, comment)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Plan {plan_id} accepted")


@cli.command("delete")
@click.argument("plan_id")
@click.option("--force", is_flag=True, default=False)
@config_option
def delete_command(plan_id: str, force: bool, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.delete_plan(plan_id, force=force)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted plan {plan_id}")


@cli.command("evaluate")
@click.argument("plan_id")
@config_option
def evaluate_command(plan_id: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        action = runtime.evaluator.evaluate(plan_id)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(action.to_dict())


@cli.command("done")
@click.argument("plan_id")
@click.option("--success/--failure", default=True, show_default=True)
@click.option("--info", default=None)
@config_option
def done_command(plan_id: str, success: bool, info: str | None, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        action = runtime.evaluator.evaluate(plan_id)
        if action.done_callback is None:
            raise click.ClickException(
                f"Step '{action.failed_step or 'none'}' of plan {plan_id} has no continuation."
            )
        runtime.evaluator.complete(action.done_callback, success, info)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    outcome = "success" if success else "failure"
    click.echo(f"Recorded {outcome} for {action.done_callback.kind} on plan {plan_id}")


@cli.command("check")
@click.argument("plan_id")
@config_option
def check_command(plan_id: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        action = runtime.evaluator.evaluate(plan_id)
        check = action.completion_callback
        complete = runtime.evaluator.is_complete(check) if check is not None else None
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    if check is None:
        click.echo(f"Step '{action.failed_step or 'none'}' has no completion check.")
        return
    _echo_json({"binding": check.binding, "complete": complete})


@cli.group("point")
def point_group() -> None:
    """Manage plan points."""


@point_group.command("add")
@click.argument("plan_id")
@click.option("--after", "after_point_id", default=None)
@click.option(
    "--file",
    "drafts_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON list of point drafts.",
)
@point_fields_options
@config_option
def point_add_command(
    plan_id: str,
    after_point_id: str | None,
    drafts_file: Path | None,
    config_value: str,
    **fields: Any,
) -> None:
    if drafts_file is not None:
        try:
            drafts = json.loads(drafts_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"Invalid drafts file: {exc}") from exc
        if isinstance(drafts, dict):
            drafts = [drafts]
        if not isinstance(drafts, list) or not all(isinstance(item, dict) for item in drafts):
            raise click.ClickException("Drafts file must contain a JSON object or list of objects.")
    else:
        drafts = [{key: value for key, value in fields.items() if value}]

    runtime = _load_runtime(config_value)
    try:
        point_ids = runtime.service.add_points(plan_id, after_point_id, drafts)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Added point(s) {', '.join(point_ids)} to plan {plan_id}")


@point_group.command("show")
@click.argument("plan_id")
@click.argument("point_id")
@config_option
def point_show_command(plan_id: str, point_id: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        payload = runtime.service.show_point(plan_id, point_id)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(payload)


@point_group.command("change")
@click.argument("plan_id")
@click.argument("point_id")
@point_fields_options
@config_option
def point_change_command(plan_id: str, point_id: str, config_value: str, **fields: Any) -> None:
    changes = {key: value for key, value in fields.items() if value is not None and value != ()}
    if not changes:
        raise click.ClickException("Nothing to change.")
    runtime = _load_runtime(config_value)
    try:
        runtime.service.change_point(plan_id, point_id, **changes)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Changed point {point_id} in plan {plan_id}")


@point_group.command("depends")
@click.argument("plan_id")
@click.argument("point_id")
@click.argument("depends_on", nargs=-1, required=True)
@click.option("--care-on", "care_on", multiple=True)
@config_option
def point_depends_command(
    plan_id: str,
    point_id: str,
    depends_on: tuple[str, ...],
    care_on: tuple[str, ...],
    config_value: str,
) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_point_dependencies(plan_id, point_id, depends_on, care_on)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Point {point_id} depends on {', '.join(depends_on)}")


@point_group.command("comment")
@click.argument("plan_id")
@click.argument("point_id")
@click.argument("text")
@config_option
def point_comment_command(plan_id: str, point_id: str, text: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        comment = runtime.service.add_point_comment(plan_id, point_id, text)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(comment)


@point_group.command("implemented")
@click.argument("plan_id")
@click.argument("point_id")
@config_option
def point_implemented_command(plan_id: str, point_id: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_point_implemented(plan_id, point_id)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Point {point_id} marked implemented")


@point_group.command("reviewed")
@click.argument("plan_id")
@click.argument("point_id")
@click.option("--comment", default="")
@click.option("--skip-check", is_flag=True, default=False)
@config_option
def point_reviewed_command(
    plan_id: str, point_id: str, comment: str, skip_check: bool, config_value: str
) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_point_reviewed(plan_id, point_id, comment, skip_check)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Point {point_id} marked reviewed")


@point_group.command("tested")
@click.argument("plan_id")
@click.argument("point_id")
@click.option("--comment", default="")
@click.option("--skip-check", is_flag=True, default=False)
@config_option
def point_tested_command(
    plan_id: str, point_id: str, comment: str, skip_check: bool, config_value: str
) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_point_tested(plan_id, point_id, comment, skip_check)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Point {point_id} marked tested")


@point_group.command("rework")
@click.argument("plan_id")
@click.argument("point_id")
@click.argument("reason")
@config_option
def point_rework_command(plan_id: str, point_id: str, reason: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        runtime.service.set_point_need_rework(plan_id, point_id, reason)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Point {point_id} marked for rework")


@point_group.command("remove")
@click.argument("plan_id")
@click.argument("point_ids", nargs=-1, required=True)
@config_option
def point_remove_command(plan_id: str, point_ids: tuple[str, ...], config_value: str) -> None:
    runtime = _load_runtime(config_value)
    try:
        removed = runtime.service.remove_points(plan_id, point_ids)
    except WorkplanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Removed point(s) {', '.join(point.id for point in removed)}")
