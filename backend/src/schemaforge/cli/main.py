"""SchemaForge CLI entry point."""

import asyncio

import click

from schemaforge import __version__
from schemaforge.logging_config import configure_logging
from schemaforge.persistence.config import ServiceSettings


@click.group()
@click.version_option(__version__, prog_name="schemaforge")
@click.option(
    "--log-level",
    default=None,
    help="Logging level (defaults to SCHEMAFORGE_LOG_LEVEL or INFO).",
)
def cli(log_level: str | None):
    """SchemaForge workspace object metadata CLI."""
    configure_logging(log_level or ServiceSettings.from_env().log_level)


@cli.command()
@click.option("--workspace", "-w", required=True, envvar="SCHEMAFORGE_WORKSPACE", help="Workspace id.")
def version(workspace: str):
    """Show the metadata version of a workspace."""
    from schemaforge.cli.objects_cmd import build_service

    service = build_service()
    click.echo(asyncio.run(service.versions.current(workspace)))


# Register subcommand groups
from schemaforge.cli.objects_cmd import objects  # noqa: E402

cli.add_command(objects)
