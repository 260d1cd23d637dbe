from __future__ import annotations

import sys
from pathlib import Path

import pytest

from nestspec.core.tree import NOT_IMPLEMENTED_REASON, Group, Suite, SuiteFinalizedError


def test_builder_runs_immediately_without_executing_examples():
    events: list[str] = []

    def build(g):
        events.append("built")
        g.before(lambda: events.append("before"))
        g.let("x", lambda: events.append("let"))
        g.it("body", lambda: events.append("body"))

    suite = Suite()
    group = suite.describe("Immediate", build)

    assert events == ["built"]
    assert isinstance(group, Group)
    assert [e.description for e in group.examples] == ["body"]


def test_decorator_forms_build_the_same_tree():
    suite = Suite()

    @suite.describe("Account")
    def account(g):
        @g.describe("#balance")
        def _(g):
            @g.let
            def balance():
                return 0

            @g.it("is zero initially")
            def _(ctx):
                assert ctx.balance == 0

    assert isinstance(account, Group)
    child = suite.groups[account.children[0]]
    assert child.description == "#balance"
    assert "balance" in child.bindings
    assert child.examples[0].body is not None
    assert suite.full_description(child.examples[0]) == "Account #balance is zero initially"


def test_same_group_redefinition_last_writer_wins():
    def build(g):
        g.let("x", lambda: 1)
        g.let("x", lambda: 2)

    suite = Suite()
    group = suite.describe("Twice", build)

    assert group.bindings["x"].fn() == 2


def test_walk_follows_definition_order():
    def build(g):
        g.it("first")

        @g.describe("nested")
        def _(g):
            g.it("second")

        g.it("third")

    suite = Suite()
    suite.describe("Order", build)
    suite.describe("Another", lambda g: g.it("fourth"))

    assert [suite.full_description(e) for e, _ in suite.walk()] == [
        "Order first",
        "Order nested second",
        "Order third",
        "Another fourth",
    ]


def test_chain_is_root_first():
    def build(g):
        @g.describe("B")
        def _(g):
            g.describe("C", lambda g: g.it("leaf"))

    suite = Suite()
    suite.describe("A", build)
    example, chain = next(suite.walk())

    assert [group.description for group in chain] == ["A", "B", "C"]
    assert suite.chain(example.group) == chain


def test_empty_example_description_uses_ancestors_only():
    suite = Suite()
    suite.describe("Widget", lambda g: g.it(body=lambda: None))
    example, _ = next(suite.walk())

    assert example.description == ""
    assert suite.full_description(example) == "Widget"


def test_locations_point_at_the_definition_line():
    lines: list[int] = []

    def build(g):
        lines.append(sys._getframe().f_lineno + 1)
        g.it("here", lambda: None)

    suite = Suite()
    group_line = sys._getframe().f_lineno + 1
    group = suite.describe("Located", build)

    example = group.examples[0]
    assert example.location.path == str(Path(__file__).resolve())
    assert example.location.line == lines[0]
    assert group.location.line == group_line


def test_example_without_body_is_pending_until_decorated():
    suite = Suite()

    def build(g):
        g.it("someday")

        @g.it("today")
        def _():
            pass

    group = suite.describe("Pending", build)

    assert group.examples[0].body is None
    assert group.examples[1].body is not None
    assert NOT_IMPLEMENTED_REASON == "Not yet implemented"


def test_tags_are_recorded_on_groups_and_examples():
    suite = Suite()
    group = suite.describe("Tagged", lambda g: g.it("slow one", lambda: None, tags=["slow"]), tags=["db"])

    assert group.tags == frozenset({"db"})
    assert group.examples[0].tags == frozenset({"slow"})


def test_binding_names_must_be_identifiers():
    suite = Suite()
    with pytest.raises(ValueError):
        suite.describe("Bad", lambda g: g.let("not a name", lambda: 1))


@pytest.mark.parametrize("name", ["example", "chain", "cache", "resolve", "skip", "_private"])
def test_binding_names_hidden_by_the_context_are_rejected(name):
    suite = Suite()
    with pytest.raises(ValueError, match="reserved"):
        suite.describe("Bad", lambda g: g.let(name, lambda: 1))


def test_definitions_after_finalize_are_rejected():
    suite = Suite()
    group = suite.describe("Frozen", lambda g: g.it("x", lambda: None))
    suite.finalize()

    with pytest.raises(SuiteFinalizedError):
        suite.describe("Late", lambda g: None)
    with pytest.raises(SuiteFinalizedError):
        suite.shared_examples("late", lambda g: None)

    from nestspec.core.tree import GroupHandle

    with pytest.raises(SuiteFinalizedError):
        GroupHandle(suite, group).it("late", lambda: None)


def test_finalize_is_idempotent():
    suite = Suite()
    suite.describe("Once", lambda g: g.it("x", lambda: None))

    assert suite.finalize() is suite
    assert suite.finalize() is suite
    assert suite.finalized
