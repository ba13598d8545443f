"""CLI entry point for oasgraph."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from dotenv import load_dotenv
from graphql import print_schema
from rich.logging import RichHandler

from oasgraph.console import console, print_report
from oasgraph.formats.options import Options
from oasgraph.loader import load_oas
from oasgraph.translate.assemble import create_graphql_schema
from oasgraph.translate.warnings import OasGraphError

load_dotenv()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_all(specs: tuple[str, ...]) -> list[dict]:
    try:
        return [load_oas(spec) for spec in specs]
    except OasGraphError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version="0.1.0", prog_name="oasgraph")
def cli():
    """Translate OpenAPI 3 documents into GraphQL schemas."""


@cli.command()
@click.argument("specs", nargs=-1, required=True)
@click.option("-o", "--output", default=None, help="Write the schema (SDL) to this file")
@click.option("--strict", is_flag=True, envvar="OASGRAPH_STRICT", help="Fail on the first warning")
@click.option("--no-viewer", is_flag=True, help="Do not wrap authenticated operations in viewers")
@click.option("--base-url", envvar="OASGRAPH_BASE_URL", default=None, help="Base URL overriding the servers of every document")
@click.option("--fill-empty-responses", is_flag=True, help="Create placeholders for empty responses")
@click.option("--operation-id-field-names", is_flag=True, help="Name query fields after operation ids")
@click.option("--add-limit-argument", is_flag=True, help="Add a 'limit' argument to list fields")
@click.option("--simple-names", is_flag=True, help="Only strip illegal characters from names")
@click.option("--subscriptions", is_flag=True, help="Create subscriptions from callbacks")
@click.option("--report", "show_report", is_flag=True, help="Print the translation report")
@click.option("-v", "--verbose", is_flag=True, help="Log translation steps")
def build(
    specs: tuple[str, ...],
    output: str | None,
    strict: bool,
    no_viewer: bool,
    base_url: str | None,
    fill_empty_responses: bool,
    operation_id_field_names: bool,
    add_limit_argument: bool,
    simple_names: bool,
    subscriptions: bool,
    show_report: bool,
    verbose: bool,
):
    """Build a GraphQL schema from one or more OpenAPI documents (files or URLs)."""
    _setup_logging(verbose)
    options = Options(
        strict=strict,
        viewer=not no_viewer,
        base_url=base_url or None,
        fill_empty_responses=fill_empty_responses,
        operation_id_field_names=operation_id_field_names,
        add_limit_argument=add_limit_argument,
        simple_names=simple_names,
        create_subscriptions_from_callbacks=subscriptions,
    )

    oass = _load_all(specs)
    try:
        schema, report = create_graphql_schema(oass, options)
    except OasGraphError as e:
        raise click.ClickException(str(e)) from e

    sdl = print_schema(schema)
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(sdl + "\n")
        console.print(f"[green]Schema written to {output}[/green]")
    else:
        click.echo(sdl)

    if show_report:
        print_report(report)


@cli.command()
@click.argument("specs", nargs=-1, required=True)
@click.option("-v", "--verbose", is_flag=True, help="Log translation steps")
def report(specs: tuple[str, ...], verbose: bool):
    """Print what a translation would create, and its warnings."""
    _setup_logging(verbose)
    oass = _load_all(specs)
    try:
        _, build_report = create_graphql_schema(oass, Options())
    except OasGraphError as e:
        raise click.ClickException(str(e)) from e
    print_report(build_report)


if __name__ == "__main__":
    cli()
