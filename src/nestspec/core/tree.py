from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from nestspec.core.bindings import RESERVED_NAMES, SUBJECT, Computation
from nestspec.core.log import get_logger
from nestspec.core.shared import Inclusion, Template, TemplateBuilder, TemplateCycleError, TemplateRegistry
from nestspec.core.subjects import ClassConvention, SubjectConvention, describe_target

logger = get_logger(__name__)

Builder = Callable[["GroupHandle"], Any]

XDESCRIBE_REASON = "Temporarily skipped with xdescribe"
XIT_REASON = "Temporarily skipped with xit"
NOT_IMPLEMENTED_REASON = "Not yet implemented"


class SuiteFinalizedError(RuntimeError):
    def __init__(self, what: str) -> None:
        super().__init__(f"Cannot define {what} after the suite has been finalized")


@dataclass(frozen=True)
class Location:
    path: str
    line: int

    def __str__(self) -> str:
        return f"{self.path}:{self.line}"


def caller_location(depth: int = 2) -> Location:
    """Location of the frame `depth` levels above this call (2 = the caller's caller)."""
    frame = sys._getframe(depth)
    return Location(path=str(Path(frame.f_code.co_filename).resolve()), line=frame.f_lineno)


@dataclass
class Example:
    description: str
    location: Location
    group: int
    body: Computation | None = None
    tags: frozenset[str] = frozenset()
    pending: str | None = None


@dataclass
class Group:
    index: int
    description: str
    location: Location
    parent: int | None = None
    target: object | None = None
    children: list[int] = field(default_factory=list)
    examples: list[Example] = field(default_factory=list)
    bindings: dict[str, Computation] = field(default_factory=dict)
    subject: Computation | None = None
    default_subject: Computation | None = None
    before_hooks: list[Computation] = field(default_factory=list)
    after_hooks: list[Computation] = field(default_factory=list)
    tags: frozenset[str] = frozenset()
    pending: str | None = None
    inclusion: Inclusion | None = None
    expanded: bool = False
    # Definition order across children and examples: ("group", arena index) or ("example", position).
    order: list[tuple[str, int]] = field(default_factory=list)


class Suite:
    """Arena of groups plus the shared-example registry.

    Assembly is two-phase: describe/register everything, then `finalize()` expands
    shared-example inclusions and freezes the tree.
    """

    def __init__(
        self,
        *,
        convention: SubjectConvention | None = None,
        registry: TemplateRegistry | None = None,
    ) -> None:
        self.groups: list[Group] = []
        self.roots: list[int] = []
        self.registry = registry or TemplateRegistry()
        self.convention: SubjectConvention = convention or ClassConvention()
        self.finalized = False
        self._expanding = False

    # ---- assembly ----
    def describe(
        self,
        target: object,
        builder: Builder | None = None,
        *,
        tags: Iterable[str] = (),
        pending: str | None = None,
        location: Location | None = None,
    ) -> Any:
        return self._define_group(
            target,
            builder,
            parent=None,
            location=location or caller_location(),
            tags=tags,
            pending=pending,
        )

    def shared_examples(self, name: str, builder: TemplateBuilder | None = None) -> Any:
        self._check_open("shared examples")
        if builder is not None:
            return self.registry.register(name, builder)

        def register(fn: TemplateBuilder) -> Template:
            return self.registry.register(name, fn)

        return register

    def _check_open(self, what: str) -> None:
        if self.finalized and not self._expanding:
            raise SuiteFinalizedError(what)

    def _new_group(
        self,
        target: object,
        *,
        parent: Group | None,
        location: Location,
        tags: Iterable[str],
        pending: str | None = None,
    ) -> Group:
        self._check_open("a group")
        group = Group(
            index=len(self.groups),
            description=describe_target(target),
            location=location,
            parent=parent.index if parent else None,
            target=target,
            tags=frozenset(tags),
            pending=pending,
        )
        factory = self.convention.factory_for(target)
        if factory is not None:
            group.default_subject = Computation(fn=factory, takes_context=False)
        self.groups.append(group)
        if parent is None:
            self.roots.append(group.index)
        else:
            parent.children.append(group.index)
            parent.order.append(("group", group.index))
        return group

    def _define_group(
        self,
        target: object,
        builder: Builder | None,
        *,
        parent: Group | None,
        location: Location,
        tags: Iterable[str],
        pending: str | None = None,
    ) -> Any:
        group = self._new_group(target, parent=parent, location=location, tags=tags, pending=pending)
        handle = GroupHandle(self, group)
        if builder is not None:
            builder(handle)
            return group

        def build(fn: Builder) -> Group:
            fn(handle)
            return group

        return build

    def finalize(self) -> "Suite":
        """Expand every shared-example inclusion and freeze the tree. Idempotent."""
        if self.finalized:
            return self
        self._expanding = True
        try:
            # Expansion appends groups to the arena; the index walk picks those up too.
            i = 0
            while i < len(self.groups):
                group = self.groups[i]
                if group.inclusion is not None and not group.expanded:
                    self._expand(group, group.inclusion)
                i += 1
        finally:
            self._expanding = False
        self.finalized = True
        logger.info(
            "suite.finalized",
            groups=len(self.groups),
            examples=sum(len(g.examples) for g in self.groups),
            templates=len(self.registry.names()),
        )
        return self

    def _expand(self, group: Group, inclusion: Inclusion) -> None:
        included = [g.inclusion.name for g in self.chain(group.index) if g.inclusion is not None]
        if inclusion.name in included[:-1]:
            raise TemplateCycleError(included)
        template = self.registry.get(inclusion.name)
        template.builder(GroupHandle(self, group))
        for name, computation in inclusion.overrides.items():
            if name == SUBJECT:
                group.subject = computation
            else:
                group.bindings[name] = computation
        group.expanded = True
        logger.debug("shared_examples.expanded", template=inclusion.name, group=group.index)

    # ---- queries ----
    def chain(self, group_index: int) -> tuple[Group, ...]:
        """Ancestor chain of a group, root first, the group itself last."""
        chain: list[Group] = []
        current: int | None = group_index
        while current is not None:
            group = self.groups[current]
            chain.append(group)
            current = group.parent
        return tuple(reversed(chain))

    def walk(self) -> Iterator[tuple[Example, tuple[Group, ...]]]:
        """Every example with its ancestor chain, in definition order."""
        for root in self.roots:
            yield from self._walk_group(self.groups[root])

    def _walk_group(self, group: Group) -> Iterator[tuple[Example, tuple[Group, ...]]]:
        chain = self.chain(group.index)
        for kind, position in group.order:
            if kind == "example":
                yield group.examples[position], chain
            else:
                yield from self._walk_group(self.groups[position])

    def full_description(self, example: Example) -> str:
        parts = [g.description for g in self.chain(example.group)]
        parts.append(example.description)
        return " ".join(part for part in parts if part)


def _check_binding_name(name: str) -> None:
    if not name.isidentifier():
        raise ValueError(f"Binding names must be identifiers, got {name!r}")
    if name in RESERVED_NAMES or name.startswith("_"):
        raise ValueError(f"Binding name {name!r} is reserved by the example context")


class GroupHandle:
    """Mutable view of one group, passed to `describe` builders and shared-example templates."""

    def __init__(self, suite: Suite, group: Group) -> None:
        self._suite = suite
        self.group = group

    def describe(self, target: object, builder: Builder | None = None, *, tags: Iterable[str] = ()) -> Any:
        return self._suite._define_group(target, builder, parent=self.group, location=caller_location(), tags=tags)

    context = describe

    def xdescribe(
        self,
        target: object,
        builder: Builder | None = None,
        *,
        reason: str = XDESCRIBE_REASON,
        tags: Iterable[str] = (),
    ) -> Any:
        return self._suite._define_group(
            target,
            builder,
            parent=self.group,
            location=caller_location(),
            tags=tags,
            pending=reason,
        )

    def _add_example(
        self,
        description: str,
        body: Callable[..., Any] | None,
        *,
        location: Location,
        tags: Iterable[str],
        pending: str | None = None,
    ) -> Any:
        self._suite._check_open("an example")
        example = Example(
            description=description,
            location=location,
            group=self.group.index,
            body=Computation.wrap(body) if body is not None else None,
            tags=frozenset(tags),
            pending=pending,
        )
        self.group.order.append(("example", len(self.group.examples)))
        self.group.examples.append(example)
        if body is not None:
            return example

        # Decorator form; left unapplied, the example stays pending.
        def attach(fn: Callable[..., Any]) -> Example:
            example.body = Computation.wrap(fn)
            return example

        return attach

    def it(self, description: str = "", body: Callable[..., Any] | None = None, *, tags: Iterable[str] = ()) -> Any:
        return self._add_example(description, body, location=caller_location(), tags=tags)

    specify = it
    example = it

    def xit(
        self,
        description: str = "",
        body: Callable[..., Any] | None = None,
        *,
        reason: str = XIT_REASON,
        tags: Iterable[str] = (),
    ) -> Any:
        return self._add_example(description, body, location=caller_location(), tags=tags, pending=reason)

    def let(self, name: Any, computation: Callable[..., Any] | None = None, *, eager: bool = False) -> Any:
        """Define a lazily evaluated, per-example memoized binding.

        `g.let("x", fn)`, `@g.let("x")` and bare `@g.let` (named after the function) all work.
        With `eager=True` the binding is also resolved by a before hook, like RSpec's `let!`.
        """
        if callable(name):
            return self._set_binding(name.__name__, name, eager=eager)
        if computation is not None:
            return self._set_binding(name, computation, eager=eager)

        def define(fn: Callable[..., Any]) -> Callable[..., Any]:
            return self._set_binding(name, fn, eager=eager)

        return define

    def _set_binding(self, name: str, fn: Callable[..., Any], *, eager: bool) -> Callable[..., Any]:
        self._suite._check_open("a binding")
        _check_binding_name(name)
        computation = Computation.wrap(fn)
        # Same group, same name: last writer wins.
        if name == SUBJECT:
            self.group.subject = computation
        else:
            self.group.bindings[name] = computation
        if eager:
            self.group.before_hooks.append(Computation(fn=lambda ctx: ctx.resolve(name), takes_context=True))
        return fn

    def subject(self, computation: Callable[..., Any] | None = None, *, name: str | None = None) -> Any:
        """Define the group's subject; `name=` also exposes it under that binding name."""
        if computation is None:

            def define(fn: Callable[..., Any]) -> Callable[..., Any]:
                return self.subject(fn, name=name)

            return define

        if name and name != SUBJECT:
            self._set_binding(name, computation, eager=False)
            self.group.subject = Computation(fn=lambda ctx: ctx.resolve(name), takes_context=True)
            return computation
        return self._set_binding(SUBJECT, computation, eager=False)

    def before(self, hook: Callable[..., Any]) -> Callable[..., Any]:
        self._suite._check_open("a before hook")
        self.group.before_hooks.append(Computation.wrap(hook))
        return hook

    def after(self, hook: Callable[..., Any]) -> Callable[..., Any]:
        self._suite._check_open("an after hook")
        self.group.after_hooks.append(Computation.wrap(hook))
        return hook

    def include_shared(self, name: str, **overrides: Any) -> Group:
        """Include the shared examples registered as `name` in a nested group.

        Overrides become bindings of that nested group; plain values are wrapped as constants.
        """
        for key in overrides:
            _check_binding_name(key)
        group = self._suite._new_group(
            f"behaves like {name}",
            parent=self.group,
            location=caller_location(),
            tags=(),
        )
        group.inclusion = Inclusion.create(name, overrides)
        return group

    it_behaves_like = include_shared
