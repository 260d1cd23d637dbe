from tests.integration._cli import cli_env, copy_fixture, line_of, run_cli


def test_run_default_spec_directory(tmp_path):
    copy_fixture("account_spec.py", tmp_path / "spec")

    out = run_cli("run", "--json", cwd=tmp_path, env=cli_env(NESTSPEC_TEST_NOW_ISO="2025-01-02T03:04:05+00:00"))

    assert out["command"] == "run"
    assert out["data"]["started_at"] == "2025-01-02T03:04:05+00:00"
    assert out["data"]["summary"] == {"total": 4, "passed": 3, "failed": 0, "pending": 1, "errored": 0}
    assert [e["status"] for e in out["data"]["examples"]] == ["passed", "passed", "passed", "pending"]


def test_run_single_line(tmp_path):
    spec = copy_fixture("account_spec.py", tmp_path / "spec")
    line = line_of(spec, '@g.it("is zero initially")')

    out = run_cli("run", f"{spec}:{line}", cwd=tmp_path)

    assert [e["description"] for e in out["data"]["examples"]] == ["Account #balance is zero initially"]
    assert out["data"]["examples"][0]["location"] == f"{spec.resolve()}:{line}"


def test_run_include_line_selects_the_shared_examples(tmp_path):
    spec = copy_fixture("account_spec.py", tmp_path / "spec")
    line = line_of(spec, 'g.include_shared("a non-negative balance")')

    out = run_cli("run", f"{spec}:{line}", cwd=tmp_path)

    assert [e["description"] for e in out["data"]["examples"]] == [
        "Account #deposit behaves like a non-negative balance never goes below zero"
    ]


def test_run_failures_report_messages_verbatim(tmp_path):
    spec = copy_fixture("failing_spec.py", tmp_path / "spec")

    out = run_cli("run", str(spec), cwd=tmp_path, expect_ok=False)

    error = out["error"]
    assert error["type"] == "EXAMPLES_FAILED"
    assert error["message"] == "2 of 3 examples failed"
    rows = [(e["description"], e["status"], e["message"]) for e in error["details"]["examples"]]
    assert rows == [
        ("Failures passes", "passed", None),
        ("Failures fails with a message", "failed", "expected 1 to equal 2"),
        ("Failures raises", "errored", "RuntimeError: boom"),
    ]


def test_run_fail_fast(tmp_path):
    spec = copy_fixture("failing_spec.py", tmp_path / "spec")

    out = run_cli("run", str(spec), "--fail-fast", "1", cwd=tmp_path, expect_ok=False)

    details = out["error"]["details"]
    assert details["aborted"] is True
    assert details["summary"]["total"] == 2


def test_run_fail_fast_from_config(tmp_path):
    spec = copy_fixture("failing_spec.py", tmp_path / "spec")
    config = tmp_path / "config.toml"
    config.write_text("[run]\nfail_fast = 1\n", encoding="utf-8")

    out = run_cli("run", str(spec), cwd=tmp_path, env=cli_env(NESTSPEC_CONFIG_PATH=str(config)), expect_ok=False)

    assert out["error"]["details"]["summary"]["total"] == 2


def test_run_unknown_template(tmp_path):
    copy_fixture("missing_template_spec.py", tmp_path / "spec")

    out = run_cli("run", cwd=tmp_path, expect_ok=False)

    assert out["error"]["type"] == "UNKNOWN_TEMPLATE"
    assert out["error"]["details"] == {"template": "a thing nobody registered"}


def test_run_load_failure(tmp_path):
    spec_dir = tmp_path / "spec"
    spec_dir.mkdir()
    (spec_dir / "broken_spec.py").write_text("raise ImportError('no such helper')\n", encoding="utf-8")

    out = run_cli("run", cwd=tmp_path, expect_ok=False)

    assert out["error"]["type"] == "LOAD_FAILED"
    assert out["error"]["details"]["cause"] == "ImportError"


def test_run_missing_default_directory(tmp_path):
    out = run_cli("run", cwd=tmp_path, expect_ok=False)

    assert out["error"]["type"] == "NOT_FOUND"


def test_run_invalid_log_level(tmp_path):
    out = run_cli("run", "--log-level", "chatty", cwd=tmp_path, expect_ok=False)

    assert out["error"]["type"] == "INVALID_ARGUMENT"


def test_run_tag_filter(tmp_path):
    spec_dir = tmp_path / "spec"
    spec_dir.mkdir()
    (spec_dir / "tagged_spec.py").write_text(
        "from nestspec.dsl import describe\n"
        "\n"
        "@describe('Tagged')\n"
        "def _(g):\n"
        "    g.it('fast', lambda: None)\n"
        "    g.it('slow', lambda: None, tags=['slow'])\n",
        encoding="utf-8",
    )

    out = run_cli("run", "--tag", "slow", cwd=tmp_path)

    assert [e["description"] for e in out["data"]["examples"]] == ["Tagged slow"]
