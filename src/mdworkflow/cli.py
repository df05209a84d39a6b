"""Command line interface for mdworkflow."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from mdworkflow.config import ConfigError, find_project_root, initialize_project, system_root
from mdworkflow.conversion import run_command
from mdworkflow.engine import Collection, WorkflowEngine, WorkflowError
from mdworkflow.environment import (
    FilesystemEnvironment,
    ResourceEnvironment,
    create_cli_environment,
    validate_environment,
)
from mdworkflow.errors import ResourceError

console = Console()

_USER_ERRORS = (WorkflowError, ResourceError, ConfigError)


def _configure_logging(level: str) -> None:
    """Route package logs to a rich handler at ``level``."""
    logger = logging.getLogger("mdworkflow")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    logger.handlers = []
    logger.addHandler(
        RichHandler(
            console=Console(stderr=True), rich_tracebacks=True, show_time=False, show_path=False
        )
    )


def _open_engine(ctx: click.Context) -> WorkflowEngine:
    """Build the engine for the enclosing project and configure logging from it.

    Raises:
        click.ClickException: If no project can be found or its config is invalid.
    """
    options = ctx.find_object(dict) or {}
    engine = options.get("engine")
    if engine is not None:
        return engine
    try:
        engine = WorkflowEngine.from_project(
            options.get("project_dir"),
            clock=options.get("clock"),
            command_runner=options.get("command_runner", run_command),
        )
        level = "DEBUG" if options.get("verbose") else engine.config.system.logging.level
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    _configure_logging(level)
    options["engine"] = engine
    return engine


def _resource_environment(ctx: click.Context) -> ResourceEnvironment:
    """Return the project environment, or the system root alone outside a project."""
    options = ctx.find_object(dict) or {}
    try:
        root = find_project_root(options.get("project_dir"))
        if root is None:
            return FilesystemEnvironment(system_root())
        return create_cli_environment(root, system_root())
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc


def _parse_assignments(values: Iterable[str]) -> dict[str, Any]:
    """Parse ``KEY=VALUE`` pairs; values are read as YAML literals.

    Raises:
        click.BadParameter: If a pair is malformed.
    """
    parsed: dict[str, Any] = {}
    for item in values:
        key, separator, raw = item.partition("=")
        key = key.strip()
        if not separator or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got {item!r}")
        try:
            parsed[key] = yaml.safe_load(raw) if raw.strip() else None
        except yaml.YAMLError as exc:
            raise click.BadParameter(f"Invalid value for {key}: {exc}") from exc
    return parsed


def _summary_fields(collection: Collection) -> str:
    fields = collection.metadata.custom_fields()
    parts = [str(fields[key]) for key in ("company", "role", "title") if fields.get(key)]
    return " / ".join(parts)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="mdworkflow")
@click.option(
    "-C",
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Start project discovery from this directory instead of the current one.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, project_dir: Path | None, verbose: bool) -> None:
    """Manage markdown document collections through their workflows."""
    options = ctx.ensure_object(dict)
    options.setdefault("project_dir", project_dir)
    options["verbose"] = verbose
    if verbose:
        _configure_logging("DEBUG")


@cli.command()
@click.argument("path", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.option("--force", is_flag=True, help="Overwrite an existing project configuration.")
def init(path: Path | None, force: bool) -> None:
    """Initialize a project in PATH (defaults to the current directory)."""
    try:
        paths = initialize_project(path or Path.cwd(), force=force)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Initialized project at {paths.project_root}[/green]")
    console.print(f"Edit {paths.config_file} to set your user profile.")


@cli.command()
@click.pass_context
def available(ctx: click.Context) -> None:
    """List the workflows available to this project."""
    environment = _resource_environment(ctx)
    table = Table(title="Available workflows")
    table.add_column("Workflow")
    table.add_column("Description")
    table.add_column("Stages")
    for name in environment.list_workflows():
        try:
            workflow = environment.get_workflow(name)
        except ResourceError as exc:
            table.add_row(name, f"[red]{exc}[/red]", "")
            continue
        table.add_row(name, workflow.description, ", ".join(workflow.stage_names()))
    console.print(table)


@cli.command()
@click.argument("workflow")
@click.argument("values", nargs=-1)
@click.option("--url", help="Source URL recorded in the collection metadata.")
@click.option("--template-variant", help="Template variant to instantiate.")
@click.option("--field", "fields", multiple=True, help="Extra metadata as KEY=VALUE.")
@click.option("--force", is_flag=True, help="Replace an existing collection with the same id.")
@click.pass_context
def create(
    ctx: click.Context,
    workflow: str,
    values: tuple[str, ...],
    url: str | None,
    template_variant: str | None,
    fields: tuple[str, ...],
    force: bool,
) -> None:
    """Create a collection; VALUES fill the workflow's required fields in order."""
    engine = _open_engine(ctx)
    try:
        action = engine.get_workflow(workflow).get_action("create")
        names = [param.name for param in action.required_parameters()] if action else []
        if len(values) > len(names):
            raise click.UsageError(
                f"Too many values for {workflow}; expected: {' '.join(names) or '(none)'}"
            )
        data: dict[str, Any] = dict(zip(names, values))
        data.update(_parse_assignments(fields))
        if url:
            data["url"] = url
        collection = engine.create_collection(
            workflow, data, template_variant=template_variant, force=force
        )
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Created {workflow} collection {collection.collection_id}[/green]")
    console.print(f"Location: {collection.path}")
    for artifact in collection.artifacts:
        console.print(f"  {artifact}")


@cli.command("list")
@click.argument("workflow")
@click.option("--status", help="Only list collections in this stage.")
@click.pass_context
def list_collections(ctx: click.Context, workflow: str, status: str | None) -> None:
    """List the collections of WORKFLOW."""
    engine = _open_engine(ctx)
    try:
        collections = engine.get_collections(workflow, status)
        stages = {stage.name: stage for stage in engine.get_workflow(workflow).stages}
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    if not collections:
        console.print(f"[yellow]No {workflow} collections found.[/yellow]")
        return
    table = Table(title=f"{workflow} collections")
    table.add_column("ID")
    table.add_column("Status")
    table.add_column("Details")
    table.add_column("Modified")
    for collection in collections:
        stage = stages.get(collection.status)
        color = stage.color if stage else "red"
        table.add_row(
            collection.collection_id,
            f"[{color}]{collection.status}[/{color}]",
            _summary_fields(collection),
            collection.metadata.date_modified.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@cli.command()
@click.argument("workflow")
@click.argument("collection_id")
@click.argument("new_status")
@click.pass_context
def status(ctx: click.Context, workflow: str, collection_id: str, new_status: str) -> None:
    """Move COLLECTION_ID to NEW_STATUS."""
    engine = _open_engine(ctx)
    try:
        collection = engine.update_status(workflow, collection_id, new_status)
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]{collection.collection_id} is now {collection.status}[/green]")


@cli.command()
@click.argument("workflow")
@click.argument("collection_id")
@click.argument("template")
@click.argument("prefix", required=False)
@click.option("--var", "variables", multiple=True, help="Extra template variable as KEY=VALUE.")
@click.pass_context
def add(
    ctx: click.Context,
    workflow: str,
    collection_id: str,
    template: str,
    prefix: str | None,
    variables: tuple[str, ...],
) -> None:
    """Add a file rendered from TEMPLATE to COLLECTION_ID."""
    engine = _open_engine(ctx)
    parameters = _parse_assignments(variables)
    parameters.update(template=template, prefix=prefix)
    try:
        written = engine.execute_action(workflow, collection_id, "add", parameters)
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    for path in written:
        console.print(f"[green]Created {path.name}[/green]")


@cli.command("format")
@click.argument("workflow")
@click.argument("collection_id", required=False)
@click.option(
    "-f",
    "--format",
    "output_format",
    default="docx",
    show_default=True,
    help="Output format or 'all'.",
)
@click.option("-a", "--artifacts", multiple=True, help="Only convert files of these templates.")
@click.option("--status", help="When formatting every collection, only those in this stage.")
@click.pass_context
def format_command(
    ctx: click.Context,
    workflow: str,
    collection_id: str | None,
    output_format: str,
    artifacts: tuple[str, ...],
    status: str | None,
) -> None:
    """Convert collection documents; formats every collection when no ID is given."""
    engine = _open_engine(ctx)
    parameters: dict[str, Any] = {"format": output_format, "artifacts": list(artifacts) or None}
    try:
        if collection_id:
            written = engine.execute_action(workflow, collection_id, "format", parameters)
            for path in written:
                console.print(f"[green]Wrote {path}[/green]")
            return
        result = engine.format_collections(workflow, parameters, status=status)
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc

    console.print(
        f"[green]Formatted {len(result.succeeded)} collection(s)[/green]"
        + (f", [red]{len(result.failed)} failed[/red]" if result.failed else "")
    )
    for failed_id, message in result.failed.items():
        console.print(f"[red]{failed_id}[/red]: {message}")
    if not result.ok:
        raise click.ClickException("Some collections could not be formatted")


@cli.command()
@click.argument("workflow")
@click.argument("collection_id")
@click.option(
    "--field",
    "fields",
    multiple=True,
    required=True,
    help="Metadata as KEY=VALUE; empty VALUE removes KEY.",
)
@click.pass_context
def update(ctx: click.Context, workflow: str, collection_id: str, fields: tuple[str, ...]) -> None:
    """Update workflow-specific metadata of COLLECTION_ID."""
    engine = _open_engine(ctx)
    try:
        engine.update_metadata(workflow, collection_id, _parse_assignments(fields))
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Updated {collection_id}[/green]")


@cli.command()
@click.argument("workflow")
@click.argument("collection_id")
@click.pass_context
def repair(ctx: click.Context, workflow: str, collection_id: str) -> None:
    """Reconcile COLLECTION_ID's metadata with the stage directory holding it."""
    engine = _open_engine(ctx)
    try:
        collection = engine.repair_collection(workflow, collection_id)
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(
        f"[green]{collection.collection_id} is consistent with stage {collection.status}[/green]"
    )


@cli.command()
@click.argument("workflow")
@click.argument("collection_id")
@click.option(
    "-p",
    "--processor",
    "processors",
    multiple=True,
    help="Only remove files written by this processor.",
)
@click.option("--dry-run", is_flag=True, help="Show what would be removed without deleting it.")
@click.pass_context
def clean(
    ctx: click.Context,
    workflow: str,
    collection_id: str,
    processors: tuple[str, ...],
    dry_run: bool,
) -> None:
    """Remove intermediate files left in COLLECTION_ID by formatting."""
    engine = _open_engine(ctx)
    try:
        removed = engine.clean_collection(
            workflow, collection_id, processors=processors or None, dry_run=dry_run
        )
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    if not removed:
        console.print("Nothing to clean.")
        return
    verb = "Would remove" if dry_run else "Removed"
    for path in removed:
        console.print(f"{verb} {escape(path.name)}")
    console.print(f"[green]{verb} {len(removed)} intermediate file(s)[/green]")


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check that every workflow, template and definition loads cleanly."""
    environment = _resource_environment(ctx)
    report = validate_environment(environment)
    for warning in report.warnings:
        console.print(f"[yellow]warning[/yellow]: {escape(warning)}")
    for issue in report.issues:
        console.print(f"[red]error[/red]: {escape(issue)}")
    if not report.is_valid:
        raise click.ClickException(f"{len(report.issues)} problem(s) found")
    console.print("[green]Environment is valid.[/green]")


@cli.group()
def config() -> None:
    """Inspect the project configuration."""


@config.command("view")
@click.pass_context
def config_view(ctx: click.Context) -> None:
    """Display the effective configuration after merging project and system files."""
    engine = _open_engine(ctx)
    try:
        effective = engine.config
    except _USER_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    yaml_text = yaml.safe_dump(effective.model_dump(mode="json"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
