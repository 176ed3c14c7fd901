"""Validation report rendering: rich table, JSON and Markdown."""

import io
import json
from datetime import UTC, datetime

from rich.console import Console
from rich.table import Table

from .config import OutputFormat
from .validation.aggregator import ValidationReport
from .validation.framework import Dataset, Domain, Layer


def _status(success: bool) -> str:
    return "PASSED" if success else "FAILED"


def _title(domain: Domain) -> str:
    return f"{Domain(domain).value.title()} Data Validation Report"


def collection_summary(dataset: Dataset | None) -> dict[str, int]:
    """Record count per collection, in dataset order."""
    if dataset is None:
        return {}
    return {name: len(records) for name, records in dataset.items()}


def to_json(report: ValidationReport, domain: Domain, dataset: Dataset | None = None) -> str:
    data = {
        "domain": Domain(domain).value,
        "timestamp": datetime.now(UTC).isoformat(),
        "summary": collection_summary(dataset),
        **report.to_dict(),
    }
    return json.dumps(data, indent=2)


def to_markdown(report: ValidationReport, domain: Domain, dataset: Dataset | None = None) -> str:
    lines = [
        f"# {_title(domain)}",
        "",
        f"**Status:** {_status(report.success)}",
        f"**Exit Code:** {report.exit_code}",
        "",
    ]

    summary = collection_summary(dataset)
    if summary:
        lines.append("## Summary")
        lines.extend(f"- {name}: {count}" for name, count in summary.items())
        lines.append("")

    for layer, success in ((Layer.SCHEMA, report.schema_success), (Layer.CONSISTENCY, report.consistency_success)):
        if layer == Layer.SCHEMA and not report.schema_checked:
            lines.append("## Schema Validation: SKIPPED")
            lines.append("")
            continue
        lines.append(f"## {layer.value.title()} Validation: {_status(success)}")
        violations = report.for_layer(layer)
        lines.extend(f"{i}. {violation}" for i, violation in enumerate(violations, 1))
        lines.append("")

    lines.append(f"**Total Errors:** {len(report.violations)}")
    return "\n".join(lines) + "\n"


def print_table(report: ValidationReport, domain: Domain, console: Console, dataset: Dataset | None = None) -> None:
    status_color = "green" if report.success else "red"
    console.print(f"[bold]{_title(domain)}[/bold]")
    console.print(f"[{status_color}]Overall Validation: {_status(report.success)}[/{status_color}]")
    console.print(f"Exit Code: {report.exit_code}")

    summary = collection_summary(dataset)
    if summary:
        console.print("\n[blue]Summary:[/blue]")
        summary_table = Table()
        summary_table.add_column("Collection", style="cyan")
        summary_table.add_column("Records", style="white", justify="right")
        for name, count in summary.items():
            summary_table.add_row(name, str(count))
        console.print(summary_table)

    if report.violations:
        console.print("\n[blue]Violations Found:[/blue]")
        violations_table = Table()
        violations_table.add_column("#", style="dim", justify="right")
        violations_table.add_column("Layer", style="magenta")
        violations_table.add_column("Category", style="cyan")
        violations_table.add_column("Message", style="white")
        violations_table.add_column("Location", style="dim")
        for i, violation in enumerate(report.violations, 1):
            violations_table.add_row(
                str(i),
                violation.layer.value,
                violation.category,
                violation.message,
                str(violation.record) if violation.record else "",
            )
        console.print(violations_table)

    schema_status = _status(report.schema_success) if report.schema_checked else "SKIPPED"
    console.print("\n[blue]Validation Summary:[/blue]")
    console.print(f"  - Schema Validation: {schema_status}")
    console.print(f"  - Consistency Validation: {_status(report.consistency_success)}")
    console.print(f"  - Total Errors: {len(report.violations)}")


def render(report: ValidationReport, domain: Domain, output_format: OutputFormat | str,
           console: Console, dataset: Dataset | None = None) -> None:
    """Print a report to the console in the requested format."""
    output_format = OutputFormat(output_format)
    if output_format == OutputFormat.JSON:
        console.print_json(to_json(report, domain, dataset))
    elif output_format == OutputFormat.MARKDOWN:
        console.print(to_markdown(report, domain, dataset), markup=False, highlight=False)
    else:
        print_table(report, domain, console, dataset)


def render_text(report: ValidationReport, domain: Domain, output_format: OutputFormat | str,
                dataset: Dataset | None = None) -> str:
    """Render a report as plain text for writing to a file."""
    output_format = OutputFormat(output_format)
    if output_format == OutputFormat.JSON:
        return to_json(report, domain, dataset) + "\n"
    if output_format == OutputFormat.MARKDOWN:
        return to_markdown(report, domain, dataset)
    console = Console(file=io.StringIO(), record=True, width=120, color_system=None)
    print_table(report, domain, console, dataset)
    return console.export_text()
