from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from nestspec.core.bindings import Computation

TemplateBuilder = Callable[..., Any]


class UnknownTemplateError(LookupError):
    def __init__(self, name: str, known: list[str] | None = None) -> None:
        hint = f" (registered: {', '.join(sorted(known))})" if known else ""
        super().__init__(f"No shared examples registered under {name!r}{hint}")
        self.name = name


class DuplicateTemplateError(ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Shared examples {name!r} are already registered")
        self.name = name


class TemplateCycleError(UnknownTemplateError):
    def __init__(self, chain: list[str]) -> None:
        LookupError.__init__(self, f"Shared examples include themselves: {' -> '.join(chain)}")
        self.name = chain[-1]
        self.chain = chain


@dataclass(frozen=True)
class Template:
    name: str
    builder: TemplateBuilder


@dataclass
class Inclusion:
    """A pending `include_shared` call, expanded when the suite is finalized."""

    name: str
    overrides: dict[str, Computation] = field(default_factory=dict)

    @classmethod
    def create(cls, name: str, overrides: Mapping[str, Any]) -> "Inclusion":
        wrapped = {
            key: Computation.wrap(value) if callable(value) else Computation.constant(value)
            for key, value in overrides.items()
        }
        return cls(name=name, overrides=wrapped)


class TemplateRegistry:
    """Named shared-example builders.

    Registration must be complete before the suite is finalized: inclusions are only
    looked up at finalize time, so a spec file may include a template that a later file
    registers.
    """

    def __init__(self) -> None:
        self._templates: dict[str, Template] = {}

    def register(self, name: str, builder: TemplateBuilder) -> Template:
        if not name:
            raise ValueError("Shared examples need a name")
        if name in self._templates:
            raise DuplicateTemplateError(name)
        template = Template(name=name, builder=builder)
        self._templates[name] = template
        return template

    def get(self, name: str) -> Template:
        template = self._templates.get(name)
        if template is None:
            raise UnknownTemplateError(name, list(self._templates))
        return template

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def names(self) -> list[str]:
        return list(self._templates)
