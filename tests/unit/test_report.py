"""Unit tests for report rendering."""

import io
import json

from rich.console import Console

from dqgate.report import collection_summary, print_table, render_text, to_json, to_markdown
from dqgate.validation.aggregator import aggregate
from dqgate.validation.framework import Dataset, Domain, RecordRef, ValidationResult, Violation


def failing_report():
    consistency = ValidationResult(
        [Violation("Position Consistency", "Duplicate positionId found: P-1", "position_duplicate_id",
                   Domain.POSITION, RecordRef("positions", 1))],
        {"records": 2},
    )
    return aggregate(consistency, {"success": False, "errors": ["$.positions[0]: bad"]})


def dataset():
    return Dataset.from_dict({"positions": [{}, {}], "settlementLadders": []})


class TestReport:
    """Test report renderers."""

    def test_collection_summary(self):
        assert collection_summary(dataset()) == {"positions": 2, "settlementLadders": 0}
        assert collection_summary(None) == {}

    def test_json(self):
        data = json.loads(to_json(failing_report(), Domain.POSITION, dataset()))

        assert data["domain"] == "position"
        assert data["success"] is False
        assert data["exit_code"] == 1
        assert data["summary"] == {"positions": 2, "settlementLadders": 0}
        assert data["schema"]["violations"][0]["message"] == "$.positions[0]: bad"
        assert data["consistency"]["violations"][0]["record"] == "/positions[1]"

    def test_markdown(self):
        markdown = to_markdown(failing_report(), Domain.POSITION, dataset())

        assert markdown.startswith("# Position Data Validation Report")
        assert "**Status:** FAILED" in markdown
        assert "- positions: 2" in markdown
        assert "## Schema Validation: FAILED" in markdown
        assert "1. Position Consistency: Duplicate positionId found: P-1" in markdown
        assert "**Total Errors:** 2" in markdown

    def test_markdown_without_schema(self):
        report = aggregate(ValidationResult())
        markdown = to_markdown(report, Domain.MARKET)

        assert "## Schema Validation: SKIPPED" in markdown
        assert "## Consistency Validation: PASSED" in markdown

    def test_table(self):
        console = Console(file=io.StringIO(), width=200, color_system=None)

        print_table(failing_report(), Domain.POSITION, console, dataset())
        output = console.file.getvalue()

        assert "Overall Validation: FAILED" in output
        assert "Duplicate positionId found: P-1" in output
        assert "Total Errors: 2" in output

    def test_render_text_table_has_no_markup(self):
        text = render_text(failing_report(), Domain.POSITION, "table", dataset())

        assert "Overall Validation: FAILED" in text
        assert "[red]" not in text

    def test_render_text_json(self):
        text = render_text(failing_report(), "position", "json")
        assert json.loads(text)["domain"] == "position"
