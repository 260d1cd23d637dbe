from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple, Protocol, Sequence

from nestspec.core.tree import Example, Group, Suite

_LINES_RE = re.compile(r"^(?P<path>.+?)(?P<lines>(?::[0-9]+)+)$")


class Selection(NamedTuple):
    example: Example
    chain: tuple[Group, ...]
    description: str


class Criterion(Protocol):
    def matches(self, selection: Selection) -> bool: ...


def _resolved(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


@dataclass(frozen=True)
class LineCriterion:
    """Exact source line of the example, or of one of its enclosing groups."""

    path: Path
    line: int

    def matches(self, selection: Selection) -> bool:
        locations = [selection.example.location, *(group.location for group in selection.chain)]
        return any(Path(loc.path) == self.path and loc.line == self.line for loc in locations)


@dataclass(frozen=True)
class PathCriterion:
    path: Path

    def matches(self, selection: Selection) -> bool:
        example_path = Path(selection.example.location.path)
        return example_path == self.path or example_path.is_relative_to(self.path)


@dataclass(frozen=True)
class DescriptionCriterion:
    """Case-sensitive substring of the fully qualified description."""

    substring: str

    def matches(self, selection: Selection) -> bool:
        return self.substring in selection.description


@dataclass(frozen=True)
class TagCriterion:
    tag: str

    def matches(self, selection: Selection) -> bool:
        if self.tag in selection.example.tags:
            return True
        return any(self.tag in group.tags for group in selection.chain)


@dataclass(frozen=True)
class Target:
    """One CLI target: the path to load (if any) and the criteria it contributes."""

    path: Path | None
    criteria: list[Criterion] = field(default_factory=list)


def parse_target(target: str) -> Target:
    """Parse `<path>[:<line>[:<line>...]]`; anything that is not an existing path is a description substring."""
    if not target:
        raise ValueError("Empty target")
    m = _LINES_RE.match(target)
    if m and Path(m.group("path")).expanduser().exists():
        path = _resolved(m.group("path"))
        lines = [int(n) for n in m.group("lines").split(":") if n]
        return Target(path=path, criteria=[LineCriterion(path=path, line=n) for n in lines])
    if Path(target).expanduser().exists():
        path = _resolved(target)
        return Target(path=path, criteria=[PathCriterion(path=path)])
    return Target(path=None, criteria=[DescriptionCriterion(substring=target)])


def select(suite: Suite, criteria: Sequence[Criterion] = ()) -> list[Selection]:
    """Examples matching ANY criterion, in definition order. No criteria selects everything."""
    suite.finalize()
    selected: list[Selection] = []
    for example, chain in suite.walk():
        selection = Selection(example=example, chain=chain, description=suite.full_description(example))
        if not criteria or any(criterion.matches(selection) for criterion in criteria):
            selected.append(selection)
    return selected


def refine(selection: Sequence[Selection], criteria: Sequence[Criterion]) -> list[Selection]:
    """Narrow an existing selection to entries matching ANY of `criteria` (no criteria keeps all)."""
    if not criteria:
        return list(selection)
    return [s for s in selection if any(criterion.matches(s) for criterion in criteria)]
