from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol

SubjectFactory = Callable[[], Any]


class SubjectConvention(Protocol):
    """Maps the target passed to `describe` onto a default subject factory (or None)."""

    def factory_for(self, target: object) -> SubjectFactory | None: ...


class NoDefaultSubject:
    """Opt-out convention: `subject` is only defined where a group declares it."""

    def factory_for(self, target: object) -> SubjectFactory | None:
        return None


class ClassConvention:
    """`describe(Widget)` or `describe("Widget")` with `Widget` registered gives `Widget()` as the subject.

    Names are never looked up by reflection; a string target only resolves through `types`.
    """

    def __init__(self, types: Mapping[str, type] | None = None) -> None:
        self._types: dict[str, type] = dict(types or {})

    def register(self, cls: type, name: str | None = None) -> type:
        self._types[name or cls.__name__] = cls
        return cls

    def factory_for(self, target: object) -> SubjectFactory | None:
        if isinstance(target, type):
            return target
        if isinstance(target, str):
            return self._types.get(target)
        return None


def describe_target(target: object) -> str:
    """Description string for whatever was passed to `describe`."""
    if isinstance(target, str):
        return target
    if isinstance(target, type):
        return target.__name__
    name = getattr(target, "__name__", None)
    return name if isinstance(name, str) else str(target)
