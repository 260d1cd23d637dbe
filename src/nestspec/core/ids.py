from __future__ import annotations

import hashlib
import re

import ulid

EXAMPLE_ID_RE = re.compile(r"^ex_[0-9a-f]{12}$")
RUN_ID_RE = re.compile(r"^run_[0-9A-Z]{26}$")


def _hex12(payload: str) -> str:
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:12]


def example_id(*, path: str, line: int, description: str) -> str:
    """Stable id for an example: same file, line and full description give the same id across runs."""
    return f"ex_{_hex12(f'example|{path}|{line}|{description}')}"


def run_id() -> str:
    return f"run_{ulid.new()}"


def is_example_id(value: str) -> bool:
    return bool(EXAMPLE_ID_RE.fullmatch(value))


def is_run_id(value: str) -> bool:
    return bool(RUN_ID_RE.fullmatch(value))
