"""Integration tests for the docpublish command line."""

import json

import pytest

from docpublish.cli import EXIT_FAILED, EXIT_OK, main


@pytest.fixture
def cli_env(monkeypatch, repo, fake_sphinx, tmp_path):
    monkeypatch.setenv("DOCS_REPO_ROOT", str(repo))
    monkeypatch.setenv("DOCS_SPHINX_BUILD", str(fake_sphinx))
    monkeypatch.setenv("DOCS_INSTALL_DEPENDENCIES", "false")
    monkeypatch.setenv("DOCS_ARTIFACT_DIR", str(tmp_path / "artifacts"))
    for name in ("GITHUB_REF", "GITHUB_EVENT_NAME", "GITHUB_EVENT_PATH", "DOCS_WATCH_PATHS"):
        monkeypatch.delenv(name, raising=False)
    return repo


def test_version_for_tag(cli_env, capsys):
    assert main(["version", "--ref", "refs/tags/concrete-core-1.4.0"]) == EXIT_OK
    assert capsys.readouterr().out.strip() == "1.4.0"


def test_version_from_github_ref(cli_env, monkeypatch, capsys):
    monkeypatch.setenv("GITHUB_REF", "refs/heads/main")
    assert main(["version"]) == EXIT_OK
    assert capsys.readouterr().out.strip() == "main"


def test_evaluate(cli_env, capsys):
    code = main(["evaluate", "--ref", "refs/heads/main", "--changed", "concrete-core/docs/index.rst"])
    assert code == EXIT_OK
    decision = json.loads(capsys.readouterr().out)
    assert decision["should_build"] is True
    assert decision["should_publish"] is True


def test_evaluate_reads_event_payload(cli_env, tmp_path, capsys):
    payload = tmp_path / "event.json"
    payload.write_text(json.dumps({
        "ref": "refs/heads/main",
        "commits": [{"added": [], "modified": ["concrete-core/src/lib.rs"], "removed": []}],
    }))
    code = main(["evaluate", "--ref", "refs/heads/main", "--event-path", str(payload)])
    assert code == EXIT_OK
    assert json.loads(capsys.readouterr().out)["should_build"] is False


def test_run_feature_branch_builds_only(cli_env, capsys):
    code = main(["run", "--ref", "refs/heads/docs-fix", "--changed", "concrete-core/docs/index.rst"])
    assert code == EXIT_OK
    result = json.loads(capsys.readouterr().out)
    assert result["state"] == "COMPLETED"
    assert result["artifact"]["name"] == "docs-core"
    assert result["publish"] is None
    assert (cli_env / "concrete-core" / "docs" / "build" / "main" / "index.html").is_file()


def test_run_build_failure_exit_code(cli_env, monkeypatch, capsys):
    monkeypatch.setenv("FAKE_SPHINX_FAIL", "1")
    code = main(["run", "--ref", "refs/heads/docs-fix", "--changed", "concrete-core/docs/index.rst"])
    assert code == EXIT_FAILED
    result = json.loads(capsys.readouterr().out)
    assert result["state"] == "FAILED"
    assert result["errors"][0]["error_code"] == "SPHINX_BUILD_FAILED"


def test_run_skipped(cli_env, capsys):
    code = main(["run", "--ref", "refs/heads/main", "--changed", "README.md"])
    assert code == EXIT_OK
    assert json.loads(capsys.readouterr().out)["state"] == "SKIPPED"


def test_missing_ref(cli_env):
    with pytest.raises(SystemExit):
        main(["evaluate"])


def test_evaluate_tag_deletion_payload(cli_env, tmp_path, capsys):
    payload = tmp_path / "event.json"
    payload.write_text(json.dumps({
        "ref": "refs/tags/concrete-core-1.4.0",
        "after": "0" * 40,
        "deleted": True,
        "commits": [],
        "head_commit": None,
    }))
    code = main(["evaluate", "--ref", "refs/tags/concrete-core-1.4.0", "--event-path", str(payload)])
    assert code == EXIT_OK
    decision = json.loads(capsys.readouterr().out)
    assert decision["should_build"] is False
    assert decision["should_publish"] is False
