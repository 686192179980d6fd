"""CLI tests using Click's CliRunner. Each test gets its own repo root under tmp_path."""

from __future__ import annotations

import json
import shutil
import subprocess

import pytest
from click.testing import CliRunner

from actions_workflow_tools.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def repo(tmp_path, templates_dir, monkeypatch):
    """A repo root with the fixture templates in .github/workflow-templates."""
    monkeypatch.delenv("ACTIONS_WORKFLOW_TEMPLATES_DIR", raising=False)
    shutil.copytree(templates_dir, tmp_path / ".github" / "workflow-templates")
    return tmp_path


@pytest.fixture
def local_repo(tmp_path, monkeypatch):
    """A repo root whose templates only run local shell commands; git is stubbed out."""
    monkeypatch.delenv("ACTIONS_WORKFLOW_TEMPLATES_DIR", raising=False)
    monkeypatch.setenv("GITHUB_BASE_REF", "main")
    monkeypatch.setattr("actions_workflow_tools.runner.git.changed_files", lambda base, root: ["src/a.py"])
    templates = tmp_path / ".github" / "workflow-templates"
    templates.mkdir(parents=True)
    (templates / "checks.yml").write_text(
        "on: [pull_request]\n"
        "jobs:\n"
        "  py-lint:\n"
        "    steps:\n"
        "    - name: lint\n"
        "      paths: 'src/**'\n"
        "      run: touch linted\n"
        "  unit:\n"
        "    steps:\n"
        "    - name: report\n"
        "      run: \"echo ':error: broken test'\"\n"
    )
    return tmp_path


def test_compile_writes_workflows(runner, repo):
    result = runner.invoke(main, ["--root", str(repo), "compile"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert [row["output"] for row in data] == [
        str(repo / ".github" / "workflows" / "lint.yml"),
        str(repo / ".github" / "workflows" / "unit.yml"),
    ]
    text = (repo / ".github" / "workflows" / "lint.yml").read_text()
    assert text.startswith(
        "# AUTOGENERATED by actions-workflow-tools from .github/workflow-templates/lint.yml"
    )


def test_compile_human(runner, repo):
    result = runner.invoke(main, ["--root", str(repo), "--human", "compile"])
    assert result.exit_code == 0
    assert "TEMPLATE" in result.output
    assert "OUTPUT" in result.output


def test_compile_error_exits_1(runner, repo):
    bad = repo / ".github" / "workflow-templates" / "bad.yml"
    bad.write_text("jobs:\n  a:\n    steps:\n    - run: x\n      setup: missing\n")
    result = runner.invoke(main, ["--root", str(repo), "compile"])
    assert result.exit_code == 1
    assert "missing" in result.output


def test_show(runner, repo):
    template = repo / ".github" / "workflow-templates" / "unit.yml"
    result = runner.invoke(main, ["show", str(template)])
    assert result.exit_code == 0
    assert result.output.startswith("# AUTOGENERATED by actions-workflow-tools from unit.yml")
    assert "bail_if_1" in result.output


def test_list_templates(runner, repo):
    result = runner.invoke(main, ["--root", str(repo), "list-templates"])
    assert result.exit_code == 0
    assert json.loads(result.output) == ["lint.yml", "unit.yml"]


def test_list_templates_missing_dir(runner, tmp_path):
    result = runner.invoke(main, ["--root", str(tmp_path), "list-templates"])
    assert result.exit_code == 1
    assert "error" in result.output


def test_run_clean_job(runner, local_repo):
    result = runner.invoke(main, ["--root", str(local_repo), "run", "lint"])
    assert result.exit_code == 0, result.output
    assert (local_repo / "linted").exists()
    assert "All clear" in result.output


def test_run_error_marker_fails(runner, local_repo):
    result = runner.invoke(main, ["--root", str(local_repo), "run", "unit"])
    assert result.exit_code == 1
    assert "1 issue found" in result.output


def test_step_by_name(runner, local_repo):
    result = runner.invoke(main, ["--root", str(local_repo), "step", "nothing"])
    assert result.exit_code == 0
    assert "No steps matching nothing" in result.output


def test_run_missing_templates_dir(runner, local_repo):
    result = runner.invoke(
        main, ["--root", str(local_repo), "run", "lint", "--templates-dir", str(local_repo / "nope")]
    )
    assert result.exit_code == 1
    assert "Templates directory not found" in result.output


def test_run_malformed_template(runner, local_repo):
    (local_repo / ".github" / "workflow-templates" / "broken.yml").write_text("jobs: [a\n")
    result = runner.invoke(main, ["--root", str(local_repo), "run", "lint"])
    assert result.exit_code == 1
    assert '"error"' in result.output


def test_run_git_failure(runner, local_repo, monkeypatch):
    def fail(base, root):
        raise subprocess.CalledProcessError(129, ["git", "diff", "--name-only", base])

    monkeypatch.setattr("actions_workflow_tools.runner.git.changed_files", fail)
    result = runner.invoke(main, ["--root", str(local_repo), "run", "lint"])
    assert result.exit_code == 1
    assert "exit status 129" in result.output


def test_step_missing_workflow_file(runner, local_repo):
    result = runner.invoke(main, ["--root", str(local_repo), "step", "nope.yml:lint"])
    assert result.exit_code == 1
    assert "Workflow template not found" in result.output
