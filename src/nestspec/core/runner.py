from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Sequence

from nestspec.core import clock, ids
from nestspec.core.bindings import ExampleContext, SkipExample
from nestspec.core.log import get_logger
from nestspec.core.selector import Selection
from nestspec.core.tree import NOT_IMPLEMENTED_REASON, Example, Group, Location

logger = get_logger(__name__)


class Status(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    ERRORED = "errored"


class HookFailure(Exception):
    """A before/after hook raised; the original exception is the `__cause__`."""

    def __init__(self, phase: str, group: Group, cause: BaseException) -> None:
        super().__init__(
            f"{phase} hook in {group.description!r} ({group.location}) raised {type(cause).__name__}: {cause}"
        )
        self.phase = phase
        self.group_description = group.description
        self.location = group.location
        self.cause = cause


@dataclass
class ExampleResult:
    example: Example
    description: str
    status: Status
    message: str | None = None
    exception: BaseException | None = None
    cleanup_failures: list[HookFailure] = field(default_factory=list)
    duration: float = 0.0

    @property
    def location(self) -> Location:
        return self.example.location

    def as_row(self) -> tuple[str, str, str | None]:
        return (self.description, self.status.value, self.message)


@dataclass
class RunReport:
    run_id: str
    started_at: datetime
    results: list[ExampleResult] = field(default_factory=list)
    aborted: bool = False

    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in Status}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    @property
    def ok(self) -> bool:
        return all(r.status in (Status.PASSED, Status.PENDING) for r in self.results)


def _describe_exception(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def _pending_reason(example: Example, chain: Sequence[Group]) -> str | None:
    if example.pending:
        return example.pending
    for group in chain:
        if group.pending:
            return group.pending
    return None


class Runner:
    """Runs selected examples one at a time, in selection order.

    Each example gets a fresh binding cache. `before` hooks run root first and stop at
    the first failure; `after` hooks always run, innermost group first and, within a
    group, in reverse order of definition.
    """

    def __init__(
        self,
        *,
        failure_types: tuple[type[BaseException], ...] = (AssertionError,),
        fail_fast: int = 0,
    ) -> None:
        if fail_fast < 0:
            raise ValueError("fail_fast must be >= 0")
        self.failure_types = failure_types
        self.fail_fast = fail_fast
        self._abort_requested = False

    def abort(self) -> None:
        """Stop before the next example; the running one still finishes its after hooks."""
        self._abort_requested = True

    def run(self, selection: Iterable[Selection]) -> RunReport:
        report = RunReport(run_id=ids.run_id(), started_at=clock.now_utc())
        self._abort_requested = False
        failures = 0
        logger.info("run.started", run_id=report.run_id)

        for selected in selection:
            if self._abort_requested:
                report.aborted = True
                break
            result, interrupted = self._run_example(selected)
            report.results.append(result)
            if result.status in (Status.FAILED, Status.ERRORED):
                failures += 1
            if interrupted:
                report.aborted = True
                break
            if self.fail_fast and failures >= self.fail_fast:
                logger.info("run.fail_fast", failures=failures)
                report.aborted = True
                break

        logger.info("run.finished", run_id=report.run_id, aborted=report.aborted, **report.counts())
        return report

    def _run_example(self, selected: Selection) -> tuple[ExampleResult, bool]:
        example, chain = selected.example, selected.chain
        result = ExampleResult(example=example, description=selected.description, status=Status.PASSED)

        reason = _pending_reason(example, chain)
        if reason is not None or example.body is None:
            result.status = Status.PENDING
            result.message = reason or NOT_IMPLEMENTED_REASON
            logger.debug("example.pending", description=selected.description, reason=result.message)
            return result, False

        body = example.body
        ctx = ExampleContext(example, chain)
        interrupted = False
        started = time.perf_counter()
        try:
            self._run_before_hooks(chain, ctx)
            body(ctx)
        except HookFailure as failure:
            result.status, result.message, result.exception = Status.ERRORED, str(failure), failure
        except SkipExample as skip:
            result.status, result.message = Status.PENDING, skip.reason
        except self.failure_types as exc:
            result.status, result.message, result.exception = Status.FAILED, str(exc) or type(exc).__name__, exc
        except KeyboardInterrupt as exc:
            interrupted = True
            result.status, result.message, result.exception = Status.ERRORED, "Interrupted", exc
        except BaseException as exc:
            # SystemExit, GeneratorExit and test-framework outcomes are contained like any other error.
            result.status, result.message, result.exception = Status.ERRORED, _describe_exception(exc), exc

        result.cleanup_failures, cleanup_interrupted = self._run_after_hooks(chain, ctx)
        result.duration = time.perf_counter() - started

        if result.cleanup_failures and result.status is Status.PASSED:
            first = result.cleanup_failures[0]
            result.status, result.message, result.exception = Status.ERRORED, str(first), first

        log = logger.warning if result.status in (Status.FAILED, Status.ERRORED) else logger.debug
        log(
            "example.finished",
            description=selected.description,
            status=result.status.value,
            location=str(example.location),
            cleanup_failures=len(result.cleanup_failures),
        )
        return result, interrupted or cleanup_interrupted

    def _run_before_hooks(self, chain: Sequence[Group], ctx: ExampleContext) -> None:
        for group in chain:
            for hook in group.before_hooks:
                try:
                    hook(ctx)
                except (SkipExample, KeyboardInterrupt):
                    raise
                except BaseException as exc:
                    logger.warning("hook.failed", phase="before", group=group.description, error=_describe_exception(exc))
                    raise HookFailure("before", group, exc) from exc

    def _run_after_hooks(self, chain: Sequence[Group], ctx: ExampleContext) -> tuple[list[HookFailure], bool]:
        """Run every after hook, innermost first. Returns the failures and whether one was an interrupt."""
        failures: list[HookFailure] = []
        interrupted = False
        for group in reversed(chain):
            for hook in reversed(group.after_hooks):
                try:
                    hook(ctx)
                except BaseException as exc:
                    interrupted = interrupted or isinstance(exc, KeyboardInterrupt)
                    logger.warning("hook.failed", phase="after", group=group.description, error=_describe_exception(exc))
                    failure = HookFailure("after", group, exc)
                    failure.__cause__ = exc
                    failures.append(failure)
        return failures, interrupted
