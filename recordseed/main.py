from __future__ import annotations

import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console

from recordseed.config import get_settings
from recordseed.domain.errors import FatalSetupError
from recordseed.domain.models import GenerationConfig, ProgressEvent, RunStatus, SchemaDescriptor
from recordseed.infrastructure.store import (
    DryRunStoreClient,
    InMemoryStoreClient,
    RemoteStoreClient,
    discover_schemas,
)
from recordseed.orchestrator import RunOptions, new_session_id, start_run
from recordseed.planning.graph import build_graph
from recordseed.planning.sequencer import plan_sequence
from recordseed.reporter import print_restore_report, print_results, render_plan
from recordseed.rules.state import SessionStateStore
from recordseed.rules.suspension import ValidationRuleManager
from recordseed.utils.logging import configure_logging

app = typer.Typer(help="Dependency-ordered synthetic record loader.")

OBJECT_OPTION_HELP = "Entity type to load, optionally with a count (e.g. Account=25). Repeatable."


def parse_object_options(options: List[str], default_count: int) -> List[GenerationConfig]:
    """Turn ``NAME[=COUNT]`` options into generation configs in the given order."""
    configs: List[GenerationConfig] = []
    for priority, option in enumerate(options):
        name, _, count = option.partition("=")
        name = name.strip()
        if not name:
            raise typer.BadParameter(f"Invalid object option '{option}'")
        try:
            target = int(count) if count else default_count
        except ValueError as exc:
            raise typer.BadParameter(f"Invalid record count in '{option}'") from exc
        if target < 0:
            raise typer.BadParameter(f"Record count must be >= 0 in '{option}'")
        configs.append(
            GenerationConfig(entity_type=name, target_record_count=target, load_priority=priority)
        )
    return configs


def load_schema_file(path: Path) -> Dict[str, SchemaDescriptor]:
    """Read schema descriptors from a JSON list (or ``{"schemas": [...]}``)."""
    with path.open("r", encoding="utf-8") as f:
        document = json.load(f)
    entries = document.get("schemas", []) if isinstance(document, dict) else document
    schemas = [SchemaDescriptor.model_validate(entry) for entry in entries]
    return {schema.entity_type: schema for schema in schemas}


def _remote_client() -> RemoteStoreClient:
    from recordseed.infrastructure.salesforce import SalesforceStoreClient

    return SalesforceStoreClient.from_settings()


def _fail(message: str, code: int = 1) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(code)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"env={settings.app_env} instance={settings.sf_instance_url or '(unset)'} api=v{settings.sf_api_version} "
        f"token={'set' if settings.sf_access_token else 'unset'} | "
        f"logs={settings.logs_dir} state={settings.state_dir} "
        f"pause={settings.entity_pause_seconds}s seed={settings.seed} "
        f"suspend_rules={settings.suspend_validation_rules}"
    )


@app.command()
def plan(
    objects: List[str] = typer.Option(..., "--object", "-o", help=OBJECT_OPTION_HELP),
    schema_file: Optional[Path] = typer.Option(
        None, "--schema-file", help="Read schemas from a JSON file instead of describing them."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the plan as JSON."),
) -> None:
    """
    Show the load sequence for the selected entity types.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    configs = parse_object_options(objects, settings.default_record_count)
    names = [c.entity_type for c in configs]
    try:
        schemas = load_schema_file(schema_file) if schema_file else discover_schemas(_remote_client(), names)
    except FatalSetupError as exc:
        _fail(str(exc))

    sequence_plan = plan_sequence(names, schemas, configs)
    if as_json:
        graph = build_graph(names, schemas)
        typer.echo(json.dumps({"graph": graph.to_document(), **sequence_plan.to_document()}, indent=2))
        return
    Console().print(render_plan(sequence_plan))


@app.command()
def run(
    objects: List[str] = typer.Option(..., "--object", "-o", help=OBJECT_OPTION_HELP),
    session: Optional[str] = typer.Option(None, "--session", "-s", help="Session id (generated if omitted)."),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Describe remotely but create records in memory only."
    ),
    schema_file: Optional[Path] = typer.Option(
        None, "--schema-file", help="Offline schemas; implies an in-memory store."
    ),
    suspend_rules: Optional[bool] = typer.Option(
        None,
        "--suspend-rules/--no-suspend-rules",
        help="Deactivate validation rules during the load (default from settings).",
    ),
) -> None:
    """
    Generate and load records for the selected entity types.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    configs = parse_object_options(objects, settings.default_record_count)
    names = [c.entity_type for c in configs]

    client: RemoteStoreClient
    try:
        if schema_file:
            client = InMemoryStoreClient(schemas=load_schema_file(schema_file).values())
        elif dry_run:
            client = DryRunStoreClient(_remote_client())
        else:
            client = _remote_client()
        schemas = discover_schemas(client, names)
    except FatalSetupError as exc:
        _fail(str(exc))

    options = RunOptions.from_settings(settings)
    if suspend_rules is not None:
        options = replace(options, suspend_validation_rules=suspend_rules)

    def _echo_progress(event: ProgressEvent) -> None:
        if event.status.value in ("completed", "error"):
            suffix = f" ({event.error_message})" if event.error_message else ""
            typer.echo(
                f"  {event.entity_type}: {event.status.value} "
                f"{event.loaded_count}/{event.total_count}{suffix}"
            )

    session_id = session or new_session_id()
    typer.echo(f"Starting load session {session_id} for {', '.join(names)}.")
    handle = start_run(
        session_id, configs, schemas, client=client, options=options, listeners=[_echo_progress]
    )
    try:
        summary = handle.wait()
    except KeyboardInterrupt:
        typer.echo("Cancelling after the current entity type...", err=True)
        handle.cancel()
        summary = handle.wait()

    if summary is None:
        _fail("Load run did not produce a summary.")
    print_results(summary)
    if summary.status is RunStatus.ERRORED:
        raise typer.Exit(1)


@app.command("restore-rules")
def restore_rules(
    session: str = typer.Option(..., "--session", "-s", help="Session whose rules to restore."),
) -> None:
    """
    Re-run validation-rule restoration from a session's durable snapshot.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    store = SessionStateStore(settings.state_dir)
    if not store.load_rule_snapshot(session):
        typer.echo(f"No validation rules awaiting restoration for session {session}.")
        return
    try:
        client = _remote_client()
    except FatalSetupError as exc:
        _fail(str(exc))

    report = ValidationRuleManager(client, store, session).restore()
    print_restore_report(report)
    if report.failed:
        raise typer.Exit(1)


@app.command("pending-restores")
def pending_restores() -> None:
    """
    List sessions whose suspended validation rules were not all restored.
    """
    settings = get_settings()
    pending = SessionStateStore(settings.state_dir).pending_sessions()
    if not pending:
        typer.echo("No sessions awaiting validation-rule restoration.")
        return
    for session_id, count in pending.items():
        typer.echo(f"{session_id}: {count} rule(s)")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
