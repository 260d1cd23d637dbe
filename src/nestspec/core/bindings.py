from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Sequence

from nestspec.core.log import get_logger

if TYPE_CHECKING:
    from nestspec.core.tree import Example, Group

SUBJECT = "subject"
# Attributes of ExampleContext that would hide a binding of the same name.
RESERVED_NAMES = frozenset({"example", "chain", "cache", "resolve", "skip"})

logger = get_logger(__name__)

CacheKey = tuple[int, str]


class UndefinedBindingError(AttributeError):
    """No group in the example's ancestor chain defines the requested name.

    Subclasses AttributeError so `ctx.<name>` behaves like a normal missing attribute.
    """

    def __init__(self, name: str, group_description: str) -> None:
        super().__init__(f"Undefined binding {name!r} (looked up from group {group_description!r} to the root)")
        self.name = name
        self.group_description = group_description


class CircularBindingError(RuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Binding {name!r} depends on itself")
        self.name = name


class SkipExample(Exception):
    """Raised from a hook or body to mark the running example pending."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason or "skipped")
        self.reason = reason or "skipped"


def _accepts_argument(fn: Callable[..., Any]) -> bool:
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return False
    for param in params:
        if param.kind is param.VAR_POSITIONAL:
            return True
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD) and param.default is param.empty:
            return True
    return False


@dataclass(frozen=True)
class Computation:
    """A binding, hook or example body.

    Callables take either no arguments or the `ExampleContext`; which one is decided
    once, when the computation is defined.
    """

    fn: Callable[..., Any]
    takes_context: bool

    @classmethod
    def wrap(cls, fn: Callable[..., Any]) -> "Computation":
        if not callable(fn):
            raise TypeError(f"Expected a callable, got {type(fn).__name__}")
        return cls(fn=fn, takes_context=_accepts_argument(fn))

    @classmethod
    def constant(cls, value: Any) -> "Computation":
        return cls(fn=lambda: value, takes_context=False)

    def __call__(self, ctx: "ExampleContext") -> Any:
        if self.takes_context:
            return self.fn(ctx)
        return self.fn()


class BindingCache:
    """Per-example memo table keyed by (defining group, name)."""

    def __init__(self) -> None:
        self._values: dict[CacheKey, Any] = {}
        self._in_progress: set[CacheKey] = set()

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def is_resolving(self, key: CacheKey) -> bool:
        return key in self._in_progress

    def begin(self, key: CacheKey) -> None:
        self._in_progress.add(key)

    def end(self, key: CacheKey) -> None:
        self._in_progress.discard(key)

    def get(self, key: CacheKey) -> Any:
        return self._values[key]

    def store(self, key: CacheKey, value: Any) -> None:
        self._values[key] = value


def lookup(chain: Sequence["Group"], name: str) -> tuple[CacheKey, Computation]:
    """Find the definition of `name` visible from the innermost group of `chain`.

    Explicit definitions are searched innermost first. For `subject`, when nothing in
    the chain declares one, the outermost convention-derived default is used.
    """
    for group in reversed(chain):
        if name == SUBJECT and group.subject is not None:
            return (group.index, name), group.subject
        computation = group.bindings.get(name)
        if computation is not None:
            return (group.index, name), computation
    if name == SUBJECT:
        for group in chain:
            if group.default_subject is not None:
                return (group.index, name), group.default_subject
    raise UndefinedBindingError(name, chain[-1].description if chain else "")


def resolve(name: str, ctx: "ExampleContext") -> Any:
    key, computation = lookup(ctx.chain, name)
    cache = ctx.cache
    if key in cache:
        return cache.get(key)
    if cache.is_resolving(key):
        raise CircularBindingError(name)

    cache.begin(key)
    try:
        value = computation(ctx)
    finally:
        cache.end(key)
    cache.store(key, value)
    logger.debug("binding.resolved", name=name, group=key[0])
    return value


class ExampleContext:
    """What hooks, bindings and example bodies receive while one example runs.

    `ctx.name` first returns instance state assigned by hooks (`ctx.name = ...`), then
    falls back to `resolve(name, ctx)`.
    """

    def __init__(self, example: "Example", chain: Sequence["Group"]) -> None:
        object.__setattr__(self, "example", example)
        object.__setattr__(self, "chain", tuple(chain))
        object.__setattr__(self, "cache", BindingCache())
        object.__setattr__(self, "_vars", {})

    def resolve(self, name: str) -> Any:
        return resolve(name, self)

    @property
    def subject(self) -> Any:
        return resolve(SUBJECT, self)

    def skip(self, reason: str = "") -> None:
        raise SkipExample(reason)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        variables = self.__dict__["_vars"]
        if name in variables:
            return variables[name]
        return resolve(name, self)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in ("example", "chain", "cache"):
            raise AttributeError(f"{name!r} is read-only")
        self._vars[name] = value
