# pytest configuration hooks.
#
# Policy: No skipped tests. Skips hide real problems; if something cannot run in this
# environment, use xfail with a clear reason (and fix it later).

from __future__ import annotations

import os
from pathlib import Path
import pytest
import structlog

from nestspec import dsl
from nestspec.core import config

# Register pytest-bdd step definitions as a pytest plugin so fixtures are discoverable.
pytest_plugins = ["tests.bdd.steps"]

_SKIP_COUNT = 0

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


def pytest_configure() -> None:
    if "NESTSPEC_CONFIG_PATH" not in os.environ:
        path = Path(__file__).resolve().parents[1] / ".nestspec-test-config.toml"
        os.environ["NESTSPEC_CONFIG_PATH"] = str(path)


def pytest_runtest_logreport(report: pytest.TestReport) -> None:
    global _SKIP_COUNT
    if report.when == "setup" and report.outcome == "skipped":
        _SKIP_COUNT += 1


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    if _SKIP_COUNT > 0:
        pytest.exit(f"Skipped tests are not allowed (skipped={_SKIP_COUNT}).", returncode=2)


@pytest.fixture(autouse=True)
def _isolate_process_state():
    config.reset_config_cache()
    dsl.reset_active_suite()
    yield
    config.reset_config_cache()
    dsl.reset_active_suite()
    structlog.reset_defaults()


@pytest.fixture()
def fixtures_dir() -> Path:
    return FIXTURES_DIR
