"""Module-level DSL for spec files.

    from nestspec.dsl import describe, shared_examples

    @describe("Account")
    def _(g):
        g.let("balance", lambda: 0)

        @g.it("starts empty")
        def _(ctx):
            assert ctx.balance == 0

Definitions go to the active suite: the one installed by `using()` (the loader does
this per run), otherwise a process-wide default.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator

from nestspec.core.shared import TemplateBuilder
from nestspec.core.tree import XDESCRIBE_REASON, Builder, Suite, caller_location

_ACTIVE_SUITE: Suite | None = None


def active_suite() -> Suite:
    global _ACTIVE_SUITE
    if _ACTIVE_SUITE is None:
        _ACTIVE_SUITE = Suite()
    return _ACTIVE_SUITE


def reset_active_suite() -> None:
    global _ACTIVE_SUITE
    _ACTIVE_SUITE = None


@contextmanager
def using(suite: Suite) -> Iterator[Suite]:
    global _ACTIVE_SUITE
    previous = _ACTIVE_SUITE
    _ACTIVE_SUITE = suite
    try:
        yield suite
    finally:
        _ACTIVE_SUITE = previous


def describe(target: object, builder: Builder | None = None, *, tags: Iterable[str] = ()) -> Any:
    return active_suite().describe(target, builder, tags=tags, location=caller_location())


context = describe


def xdescribe(
    target: object,
    builder: Builder | None = None,
    *,
    reason: str = XDESCRIBE_REASON,
    tags: Iterable[str] = (),
) -> Any:
    return active_suite().describe(target, builder, tags=tags, pending=reason, location=caller_location())


def shared_examples(name: str, builder: TemplateBuilder | None = None) -> Any:
    return active_suite().shared_examples(name, builder)
