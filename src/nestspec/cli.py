from __future__ import annotations

from pathlib import Path
import typer

from nestspec.core import (
    config as config_core,
    envelope,
    loader,
    log,
    report as report_core,
    selector,
)
from nestspec.core.jsonio import dumps
from nestspec.core.runner import Runner
from nestspec.core.shared import UnknownTemplateError
from nestspec.core.tree import SuiteFinalizedError

VERSION = "0.1.0"

app = typer.Typer(add_completion=False, help="nestspec - nested describe/let/shared-examples spec runner")


def _emit(out: dict) -> None:
    typer.echo(dumps(out))
    if out.get("ok") is True:
        raise typer.Exit(code=0)
    raise typer.Exit(code=1)


def _settings(command: str, log_level: str | None) -> config_core.RunSettings:
    try:
        settings = config_core.load_run_settings()
        log.configure_logging(log_level or settings.log_level, json_format=settings.log_format == "json")
    except ValueError as exc:
        _emit(envelope.err(command=command, error_type="INVALID_ARGUMENT", message=str(exc)))
    return settings


def _select(
    *,
    command: str,
    settings: config_core.RunSettings,
    targets: list[str],
    examples: list[str],
    tags: list[str],
    pattern: str | None,
) -> list[selector.Selection]:
    """Load the spec files named by `targets` and apply the selection.

    Location targets (`path`, `path:line`) are OR-ed together, as are name filters
    (`--example`, `--tag`, non-path targets); an example must satisfy both sets.
    """
    load_paths: list[Path] = []
    location_criteria: list[selector.Criterion] = []
    name_criteria: list[selector.Criterion] = []
    try:
        for raw in targets:
            target = selector.parse_target(raw)
            if target.path is None:
                name_criteria.extend(target.criteria)
            else:
                load_paths.append(target.path)
                location_criteria.extend(target.criteria)
    except ValueError as exc:
        _emit(envelope.err(command=command, error_type="INVALID_ARGUMENT", message=str(exc), details={"targets": targets}))
    name_criteria.extend(selector.DescriptionCriterion(substring=s) for s in examples)
    name_criteria.extend(selector.TagCriterion(tag=t) for t in tags)

    glob = pattern or settings.pattern
    roots = load_paths or [Path(settings.default_path)]
    try:
        files: list[Path] = []
        for root in roots:
            for path in loader.discover(root, pattern=glob):
                if path not in files:
                    files.append(path)
        suite = loader.load_suite(files)
    except FileNotFoundError as exc:
        _emit(
            envelope.err(
                command=command,
                error_type="NOT_FOUND",
                message=str(exc),
                details={"paths": [str(p) for p in roots]},
            )
        )
    except loader.SpecLoadError as exc:
        _emit(
            envelope.err(
                command=command,
                error_type="LOAD_FAILED",
                message=str(exc),
                details={"path": str(exc.path), "cause": type(exc.cause).__name__},
            )
        )
    except UnknownTemplateError as exc:
        _emit(
            envelope.err(
                command=command,
                error_type="UNKNOWN_TEMPLATE",
                message=str(exc),
                details={"template": exc.name},
            )
        )
    except SuiteFinalizedError as exc:
        _emit(envelope.err(command=command, error_type="LOAD_FAILED", message=str(exc)))

    selected = selector.select(suite, location_criteria)
    return selector.refine(selected, name_criteria)


@app.command()
def version(json_output: bool = typer.Option(False, "--json", help="Output JSON envelope")):
    if json_output:
        _emit(envelope.ok(command="version", data={"version": VERSION}))
    typer.echo(f"nestspec {VERSION}")


@app.command("list")
def list_examples(
    targets: list[str] | None = typer.Argument(None, help="<path>[:<line>] or a description substring"),
    example: list[str] | None = typer.Option(None, "--example", "-e", help="Description substring"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t"),
    pattern: str | None = typer.Option(None, "--pattern", help="Spec file glob, e.g. *_spec.py"),
    log_level: str | None = typer.Option(None, "--log-level"),
    json_output: bool = typer.Option(True, "--json"),
):
    """Show which examples a run would execute, without running them."""
    settings = _settings("list", log_level)
    selected = _select(
        command="list",
        settings=settings,
        targets=targets or [],
        examples=example or [],
        tags=tag or [],
        pattern=pattern,
    )
    _emit(envelope.ok(command="list", data=report_core.selection_data(selected), limits={"pattern": pattern or settings.pattern}))


@app.command()
def run(
    targets: list[str] | None = typer.Argument(None, help="<path>[:<line>] or a description substring"),
    example: list[str] | None = typer.Option(None, "--example", "-e", help="Description substring"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t"),
    pattern: str | None = typer.Option(None, "--pattern", help="Spec file glob, e.g. *_spec.py"),
    fail_fast: int | None = typer.Option(None, "--fail-fast", min=0, help="Stop after N failures (0 = never)"),
    log_level: str | None = typer.Option(None, "--log-level"),
    json_output: bool = typer.Option(True, "--json"),
):
    settings = _settings("run", log_level)
    selected = _select(
        command="run",
        settings=settings,
        targets=targets or [],
        examples=example or [],
        tags=tag or [],
        pattern=pattern,
    )
    threshold = settings.fail_fast if fail_fast is None else fail_fast
    result = Runner(fail_fast=threshold).run(selected)
    data = report_core.report_data(result)
    limits = {"fail_fast": threshold, "selected": len(selected)}
    if result.ok:
        _emit(envelope.ok(command="run", data=data, limits=limits))
    summary = data["summary"]
    bad = summary["failed"] + summary["errored"]
    _emit(
        envelope.err(
            command="run",
            error_type="EXAMPLES_FAILED",
            message=f"{bad} of {summary['total']} examples failed",
            details=data,
        )
    )


if __name__ == "__main__":
    app()
