"""CLI interface for dqgate using Typer framework."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from dqgate import __description__, __version__
from dqgate.config import LogLevel, OutputFormat, load_config
from dqgate.errors import DqgateError
from dqgate.loader import load_document, to_dataset
from dqgate.report import render, render_text
from dqgate.schemas import SchemaValidator
from dqgate.validation import DEFAULT_JURISDICTION_TABLE, Domain, ValidationEngine, aggregate, rule_sets_for

app = typer.Typer(
    name="dqgate",
    help=__description__,
    add_completion=False,
    rich_markup_mode="rich"
)

console = Console()

LOG_LEVELS = {
    LogLevel.ERROR.value: logging.ERROR,
    LogLevel.WARN.value: logging.WARNING,
    LogLevel.INFO.value: logging.INFO,
    LogLevel.DEBUG.value: logging.DEBUG,
}


def version_callback(value: bool) -> None:
    """Show version information and exit."""
    if value:
        console.print(f"dqgate version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, help="Show version and exit")
    ] = False,
) -> None:
    """dqgate - Data quality gate for securities-lending datasets."""


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=LOG_LEVELS.get(level, logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@app.command()
def validate(
    domain: Annotated[
        Domain,
        typer.Argument(help="Dataset domain: market, position, calculation, reference, inventory")
    ],
    file: Annotated[
        Optional[Path],
        typer.Option("--file", "-f", help="JSON data file (default: bundled sample for the domain)")
    ] = None,
    schema: Annotated[
        Optional[Path],
        typer.Option("--schema", "-s", help="JSON schema to check the data file against first")
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the report to this file")
    ] = None,
    format: Annotated[
        Optional[str],
        typer.Option("--format", help="Output format: table, json, markdown (default: from config)")
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .dqgate.json)")
    ] = None,
    silent: Annotated[
        bool,
        typer.Option("--silent", help="Print nothing; only the exit code reports the outcome")
    ] = False,
) -> None:
    """Validate a dataset for schema and cross-record consistency.

    Exits 0 when every check passes and 1 otherwise.
    """
    valid_formats = [f.value for f in OutputFormat]
    if format is not None and format not in valid_formats:
        console.print(f"[red]Error:[/red] Invalid format '{format}'. Must be one of: {', '.join(valid_formats)}")
        raise typer.Exit(1)

    try:
        dqgate_config = load_config(config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _configure_logging(dqgate_config.logging.level)
    output_format = format or dqgate_config.output.format

    try:
        document, source = load_document(file, domain)
        schema_result = SchemaValidator.from_file(schema).validate(document) if schema else None
        dataset = to_dataset(document, source)
    except DqgateError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    engine = ValidationEngine(dqgate_config)
    consistency = engine.validate(dataset, rule_sets_for([domain], dqgate_config))
    report = aggregate(consistency, schema_result)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(render_text(report, domain, output_format, dataset), encoding="utf-8")

    if not silent:
        out = console if dqgate_config.output.colour else Console(no_color=True)
        if output_format == OutputFormat.TABLE:
            out.print(f"[green]Validating {domain.value} data:[/green] {source}")
        render(report, domain, output_format, out, dataset)
        if output and output_format == OutputFormat.TABLE:
            out.print(f"[dim]Report written to {output}[/dim]")

    raise typer.Exit(report.exit_code)


@app.command()
def rules(
    domain: Annotated[
        Optional[Domain],
        typer.Argument(help="Only list rules for this domain")
    ] = None,
) -> None:
    """List consistency rules and jurisdiction registrations."""
    domains = [domain] if domain else list(Domain)

    table = Table(title="Consistency Rules")
    table.add_column("Domain", style="magenta")
    table.add_column("Rule", style="cyan")
    table.add_column("Category", style="white")
    for rule_set in rule_sets_for(domains):
        for rule in rule_set.rules:
            table.add_row(rule_set.domain.value, rule.name, rule.category)
    console.print(table)

    jurisdiction_table = Table(title="Jurisdiction Rules")
    jurisdiction_table.add_column("Market", style="magenta")
    jurisdiction_table.add_column("Domain", style="cyan")
    jurisdiction_table.add_column("Rule", style="white")
    jurisdiction_table.add_column("Description", style="dim")
    for market, rule_domain in DEFAULT_JURISDICTION_TABLE.keys():
        if rule_domain not in domains:
            continue
        for rule in DEFAULT_JURISDICTION_TABLE.get(market, rule_domain):
            jurisdiction_table.add_row(market.value, rule_domain.value, rule.name, rule.__doc__ or "")
    console.print(jurisdiction_table)


if __name__ == "__main__":
    app()
