from __future__ import annotations

from typing import Any

from nestspec.core import ids
from nestspec.core.runner import ExampleResult, RunReport
from nestspec.core.selector import Selection


def result_rows(report: RunReport) -> list[tuple[str, str, str | None]]:
    """Ordered (full description, verdict, message) tuples, one per example that ran."""
    return [result.as_row() for result in report.results]


def _example_data(result: ExampleResult) -> dict[str, Any]:
    example = result.example
    return {
        "id": ids.example_id(path=example.location.path, line=example.location.line, description=result.description),
        "description": result.description,
        "status": result.status.value,
        "message": result.message,
        "location": str(example.location),
        "duration_ms": round(result.duration * 1000, 3),
        "cleanup_failures": [str(failure) for failure in result.cleanup_failures],
    }


def report_data(report: RunReport) -> dict[str, Any]:
    return {
        "run_id": report.run_id,
        "started_at": report.started_at.isoformat(),
        "aborted": report.aborted,
        "summary": {"total": len(report.results), **report.counts()},
        "examples": [_example_data(result) for result in report.results],
    }


def selection_data(selection: list[Selection]) -> dict[str, Any]:
    return {
        "examples": [
            {
                "id": ids.example_id(
                    path=s.example.location.path,
                    line=s.example.location.line,
                    description=s.description,
                ),
                "description": s.description,
                "location": str(s.example.location),
                "tags": sorted(s.example.tags.union(*(g.tags for g in s.chain))),
            }
            for s in selection
        ]
    }
