from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
FIXTURES_DIR = REPO_ROOT / "tests" / "fixtures"


def cli_env(**extra: str) -> dict[str, str]:
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT / "src"), env.get("PYTHONPATH")]))
    env.update(extra)
    return env


def run_cli(*args: str, cwd: Path, env: dict[str, str] | None = None, expect_ok: bool = True) -> dict:
    p = subprocess.run(
        [sys.executable, "-m", "nestspec.cli", *args],
        env=env or cli_env(),
        cwd=cwd,
        capture_output=True,
        text=True,
    )
    out = json.loads(p.stdout)
    if expect_ok:
        assert p.returncode == 0, p.stderr
        assert out["ok"] is True
    else:
        assert p.returncode == 1, p.stderr
        assert out["ok"] is False
    return out


def copy_fixture(name: str, dest: Path) -> Path:
    dest.mkdir(parents=True, exist_ok=True)
    target = dest / name
    shutil.copy(FIXTURES_DIR / name, target)
    return target


def line_of(path: Path, needle: str) -> int:
    for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if needle in line:
            return number
    raise AssertionError(f"{needle!r} not found in {path}")
