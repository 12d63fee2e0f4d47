"""Objects CLI commands: create, update, delete and list."""

import asyncio
from pathlib import Path

import click
import yaml

from schemaforge.errors import NotFoundError, SchemaForgeError, ValidationError
from schemaforge.metadata.catalog import MetadataCatalog
from schemaforge.metadata.models import CreateObjectInput, ObjectMetadata, UpdateObjectPatch
from schemaforge.metadata.sql_store import SQLAlchemyCatalogStore
from schemaforge.migrations.executor import SQLAlchemySchemaExecutor
from schemaforge.persistence.config import DatabaseConfig, ServiceSettings, create_engine_for
from schemaforge.services.object_metadata import ObjectMetadataService


def _resolve_base_path() -> Path:
    cwd = Path.cwd()
    return cwd.parent if cwd.name == "backend" else cwd


def build_service() -> ObjectMetadataService:
    """Service wired to the configured database."""
    db_config = DatabaseConfig.from_env(_resolve_base_path())

    if db_config.sqlite_path is not None:
        db_config.sqlite_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine_for(db_config)
    catalog = MetadataCatalog(SQLAlchemyCatalogStore(engine))
    return ObjectMetadataService(
        catalog,
        SQLAlchemySchemaExecutor(engine),
        settings=ServiceSettings.from_env(),
    )


def _run(coro):
    """Run a service call, turning pipeline errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except ValidationError as e:
        click.echo(f"Error: {e.message}", err=True)
        for issue in e.issues[1:]:
            click.echo(f"  - {issue.field}: {issue.message}", err=True)
        raise SystemExit(1)
    except SchemaForgeError as e:
        click.echo(f"Error [{e.code}]: {e.message}", err=True)
        raise SystemExit(1)


def _load_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        click.echo(f"Error: {path} is not valid YAML: {e}", err=True)
        raise SystemExit(1)
    if not isinstance(data, dict):
        click.echo(f"Error: {path} must contain a mapping", err=True)
        raise SystemExit(1)
    return data


async def _resolve_object(service: ObjectMetadataService, workspace: str, ref: str) -> ObjectMetadata:
    """Look an object up by id, then by singular name."""
    obj = await service.find_one_in_workspace(workspace, id=ref)
    if obj is None:
        obj = await service.find_one_in_workspace(workspace, name_singular=ref)
    if obj is None:
        raise NotFoundError(f"Object '{ref}' not found in workspace {workspace}", code="OBJECT_NOT_FOUND")
    return obj


def _echo_applied(service: ObjectMetadataService, since: int) -> None:
    runs = list(service.runner.history)[since:]
    for run in runs:
        for step in run.applied_steps:
            prefix = "!" if step.destructive else "+"
            click.echo(f"  {prefix} {step.describe()}")


def _replay_post_commit(service: ObjectMetadataService) -> None:
    """Give failed collaborator calls one more try before the process exits."""
    if not service.post_commit.pending:
        return
    remaining = _run(service.retry_post_commit())
    for task in service.post_commit.pending:
        click.echo(f"Warning: '{task.name}' did not complete: {task.last_error}", err=True)
    if remaining:
        click.echo(f"Warning: {remaining} post-commit task(s) left unfinished", err=True)


workspace_option = click.option(
    "--workspace", "-w", required=True, envvar="SCHEMAFORGE_WORKSPACE", help="Workspace id."
)


@click.group()
def objects():
    """Object metadata commands."""
    pass


@objects.command()
@workspace_option
@click.option(
    "--file", "-f", "file_path", required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file describing the object (nameSingular, namePlural, labelSingular, labelPlural, ...).",
)
def create(workspace: str, file_path: Path):
    """Create an object and its table."""
    data = _load_yaml(file_path)
    try:
        payload = CreateObjectInput.from_dict(data, workspace_id=workspace)
    except KeyError as e:
        click.echo(f"Error: missing key {e} in {file_path}", err=True)
        raise SystemExit(1)

    service = build_service()
    obj = _run(service.create_object(payload))
    click.echo(f"Created object '{obj.name_singular}' ({obj.id}) with {len(obj.fields)} field(s)")
    _echo_applied(service, 0)
    _replay_post_commit(service)


@objects.command()
@workspace_option
@click.argument("object_ref")
@click.option(
    "--file", "-f", "file_path", required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with the attributes to change (camelCase keys).",
)
def update(workspace: str, object_ref: str, file_path: Path):
    """Update an object, by id or singular name."""
    data = _load_yaml(file_path)
    try:
        patch = UpdateObjectPatch.from_dict(data)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    service = build_service()

    async def _update():
        obj = await _resolve_object(service, workspace, object_ref)
        return await service.update_object(obj.id, patch, workspace)

    obj = _run(_update())
    click.echo(f"Updated object '{obj.name_singular}' ({obj.id})")
    _echo_applied(service, 0)
    _replay_post_commit(service)


@objects.command()
@workspace_option
@click.argument("object_ref")
@click.option("--yes", "-y", is_flag=True, default=False, help="Do not ask for confirmation.")
def delete(workspace: str, object_ref: str, yes: bool):
    """Delete an object, its fields, relations and table."""
    if not yes:
        click.confirm(f"Delete object '{object_ref}' and all of its data?", abort=True)

    service = build_service()

    async def _delete():
        obj = await _resolve_object(service, workspace, object_ref)
        return await service.delete_object(obj.id, workspace)

    obj = _run(_delete())
    click.echo(f"Deleted object '{obj.name_singular}' ({obj.id})")
    _echo_applied(service, 0)
    _replay_post_commit(service)


@objects.command("list")
@workspace_option
@click.option("--yaml", "as_yaml", is_flag=True, default=False, help="Print full definitions as YAML.")
def list_objects(workspace: str, as_yaml: bool):
    """List the objects of a workspace."""
    service = build_service()
    found = _run(service.find_many_in_workspace(workspace))

    if as_yaml:
        click.echo(yaml.safe_dump([o.to_dict() for o in found], sort_keys=False), nl=False)
        return
    if not found:
        click.echo("No objects.")
        return
    for obj in found:
        flags = []
        if obj.is_remote:
            flags.append("remote")
        if not obj.is_active:
            flags.append("inactive")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(
            f"{obj.name_singular:<24} {obj.target_table_name:<26} {len(obj.fields):>3} field(s){suffix}"
        )
