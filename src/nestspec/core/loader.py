from __future__ import annotations

import hashlib
import importlib.util
import sys
from pathlib import Path
from typing import Iterable

from nestspec import dsl
from nestspec.core.log import get_logger
from nestspec.core.subjects import SubjectConvention
from nestspec.core.tree import Suite

logger = get_logger(__name__)


class SpecLoadError(RuntimeError):
    def __init__(self, path: Path, cause: BaseException) -> None:
        super().__init__(f"Failed to load {path}: {type(cause).__name__}: {cause}")
        self.path = path
        self.cause = cause


def discover(path: str | Path, *, pattern: str) -> list[Path]:
    """Spec files at `path`: the file itself, or every file under a directory matching `pattern`."""
    root = Path(path).expanduser()
    if not root.exists():
        raise FileNotFoundError(f"No such file or directory: {root}")
    if root.is_file():
        return [root.resolve()]
    return sorted((p.resolve() for p in root.rglob(pattern) if p.is_file()), key=lambda p: str(p))


def _module_name(path: Path) -> str:
    digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:12]
    return f"nestspec_spec_{digest}"


def _import_file(path: Path) -> None:
    name = _module_name(path)
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise SpecLoadError(path, ImportError(f"cannot import {path}"))
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(name, None)
        raise SpecLoadError(path, exc) from exc


def load_suite(files: Iterable[Path], *, convention: SubjectConvention | None = None) -> Suite:
    """Import every spec file into a fresh suite, then finalize it.

    All files are imported before finalizing so shared examples may be registered in any file.
    """
    suite = Suite(convention=convention)
    loaded = 0
    with dsl.using(suite):
        for path in files:
            logger.debug("spec.loading", path=str(path))
            _import_file(path)
            loaded += 1
    suite.finalize()
    logger.info("spec.loaded", files=loaded, groups=len(suite.groups))
    return suite
