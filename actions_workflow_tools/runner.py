"""Run workflow-template jobs locally.

Only as much of the workflow syntax as local checks need is supported:
- `setup` references are ignored; the dev machine is assumed to be set up
- `uses` steps run node actions only, fetched once into an actions cache
- `paths` are matched against the changed files computed once per run
- `local: false` and `local_env_flag: VAR` opt steps out of local runs

A failing step stops its own job. Other jobs still run, and every failure
and every `:error:` line is counted toward the final tally.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import click
import yaml

from . import git
from ._schema import (
    ACTION_FILES,
    ACTIONS_CACHE_DIR,
    DEFAULT_TYPE,
    ERROR_MARKER,
    TRIGGER,
    TYPE_ALIASES,
)
from .loader import list_templates, load_workflow
from .paths import BASE_REF_ENV, match_paths, normalize_paths

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    errors: int = 0
    failed: bool = False


@dataclass
class LocalJob:
    id: str
    workflow: str
    steps: list[dict] = field(default_factory=list)


def plural(num: int, single: str, many: str) -> str:
    return single if num == 1 else many


def matches(job_id: str, job_type: str) -> bool:
    """`lint` selects `lint`, `js-lint` and `js_lint`."""
    return job_id == job_type or job_id.endswith("-" + job_type) or job_id.endswith("_" + job_type)


def expand_types(args: list[str] | tuple[str, ...]) -> list[str]:
    types: list[str] = []
    for arg in args or [DEFAULT_TYPE]:
        types.extend(TYPE_ALIASES.get(arg, [arg]))
    return types


def triggered(data: dict, changed_files: list[str], trigger: str = TRIGGER) -> bool:
    """Would this workflow run on `trigger` given the changed files?"""
    on = data.get("on")
    if not on:
        return False
    if isinstance(on, str):
        return on == trigger
    if isinstance(on, list):
        return trigger in on
    if trigger not in on:
        return False
    paths = (on[trigger] or {}).get("paths")
    return not paths or match_paths(normalize_paths(paths), changed_files)


def select_jobs(template: Path, job_type: str, changed_files: list[str]) -> list[LocalJob]:
    data = load_workflow(template)
    if not triggered(data, changed_files):
        logger.debug("[workflow:%s] skipping, not triggered by changed paths", template.name)
        return []
    jobs = [
        LocalJob(id=job_id, workflow=template.name, steps=list((job or {}).get("steps") or []))
        for job_id, job in data["jobs"].items()
        if matches(job_id, job_type)
    ]
    if jobs:
        logger.debug("[workflow:%s] %d %s", template.name, len(jobs), plural(len(jobs), "job", "jobs"))
    else:
        logger.debug("[workflow:%s] no jobs matched '%s'", template.name, job_type)
    return jobs


def run_shell(command: str | list[str], cwd: Path, env: dict[str, str] | None = None) -> StepResult:
    """Run one command, echoing merged output and counting error markers.

    A string goes through the shell; an argument list runs directly.
    """
    shell = isinstance(command, str)
    click.echo(f"{click.style('$', fg='magenta')} {command if shell else ' '.join(command)}")
    result = StepResult()
    env = {**os.environ, "FORCE_COLOR": "1", **(env or {})}
    with subprocess.Popen(
        command,
        shell=shell,
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
    ) as proc:
        for line in proc.stdout:
            if line.startswith(ERROR_MARKER):
                result.errors += 1
            click.echo("|  " + line.rstrip("\n"))
        code = proc.wait()
    if code != 0:
        click.echo(f"child process exited with code {code}")
        result.failed = True
    return result


def _cache_name(uses: str) -> str:
    return re.sub(r"[^a-zA-Z_-]", "-", uses.replace("@", "#"))


def _input_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def ensure_action(uses: str, cache_root: Path) -> Path:
    """Directory holding the action's metadata, fetching the repo on first use.

    `owner/repo/sub/dir@ref` is cloned once per ref into the actions cache;
    the sub directory (if any) is where its action.yml lives.
    """
    repo_path, _, ref = uses.partition("@")
    parts = repo_path.split("/")
    target = cache_root / ACTIONS_CACHE_DIR / _cache_name(uses)
    if not target.exists():
        click.echo(f"Fetching {uses}")
        git.clone("/".join(parts[:2]), target, ref or None)
        click.echo("Fetched")
    return target.joinpath(*parts[2:])


def load_action(action_dir: Path, uses: str) -> dict:
    for name in ACTION_FILES:
        path = action_dir / name
        if path.exists():
            with open(path, encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
    raise FileNotFoundError(f"No action.yml found in {uses} (downloaded to {action_dir})")


def run_uses(step: dict, root: Path) -> StepResult:
    """Run a node action locally with its `with` values as INPUT_* variables."""
    uses = step["uses"]
    if uses.startswith("docker://"):
        raise ValueError(f"Can only run node actions: {uses} is a docker image")
    if uses.startswith("./"):
        action_dir = (root / uses).resolve()
    else:
        cache = step.get("local_cache_directory")
        action_dir = ensure_action(uses, (root / cache).resolve() if cache else root)
    runs = load_action(action_dir, uses).get("runs") or {}
    if not str(runs.get("using", "")).startswith("node") or not runs.get("main"):
        raise ValueError(f"Can only run node actions: {uses} uses {runs.get('using')!r}")
    inputs = {
        f"INPUT_{str(key).replace(' ', '_').upper()}": _input_value(value)
        for key, value in (step.get("with") or {}).items()
    }
    return run_shell(["node", str(action_dir / runs["main"])], root, inputs)


def run_step(step: dict, root: Path, changed_files: list[str]) -> StepResult | None:
    """Run one template step. None means the step was skipped."""
    name = step.get("name") or step.get("uses") or step.get("run")
    if step.get("local") is False:
        logger.debug("[step] skipping %s: not run locally", name)
        return None
    if step.get("paths") and not match_paths(normalize_paths(step["paths"]), changed_files):
        logger.debug("[step] skipping %s: no matching paths", name)
        return None
    flag = step.get("local_env_flag")
    if flag and not os.getenv(flag):
        click.secho(f"[step] Skipping step \"{name}\" because env flag {flag} is missing.", dim=True)
        return None
    if not step.get("run") and not step.get("uses"):
        logger.debug("[step] skipping non-run non-uses step %s", name)
        return None

    click.echo(f"{click.style('[step]', fg='yellow')} {name}")
    if not step.get("run"):
        return run_uses(step, root)
    working_dir = step.get("working-directory")
    cwd = (root / working_dir).resolve() if working_dir else root
    return run_shell(step["run"], cwd)


def run_jobs(jobs: list[LocalJob], root: Path, changed_files: list[str]) -> int:
    """Run jobs in order. Returns the number of issues found."""
    total = 0
    for job in jobs:
        label = f"{click.style(job.workflow, fg='cyan')}:{click.style(job.id, fg='yellow')}"
        click.echo(f"🚜  Running job {label}")
        errors = 0
        for step in job.steps:
            result = run_step(step, root, changed_files)
            if result is None:
                continue
            errors += result.errors
            if result.failed:
                click.secho(f"---- ❌ Job {job.id} Failed ----", fg="red", err=True)
                errors += 1
                break
        if errors == 0:
            click.echo(f"✅  Finished job {job.id}")
        else:
            click.echo(f"❗ Finished job {job.id} with {errors} {plural(errors, 'issue', 'issues')}")
        click.echo()
        total += errors
    return total


def run_type(job_type: str, templates_dir: Path, root: Path, changed_files: list[str]) -> int:
    click.secho(f"----- Running jobs matching '{job_type}' -----", fg="green")
    jobs: list[LocalJob] = []
    for name in list_templates(templates_dir):
        jobs.extend(select_jobs(templates_dir / name, job_type, changed_files))
    if not jobs:
        click.secho(f"No jobs matching {job_type}", dim=True, err=True)
        click.echo()
        return 0
    click.echo()
    return run_jobs(jobs, root, changed_files)


def find_steps(workflow: dict, needle: str) -> list[tuple[int, dict]]:
    """Candidate steps for `needle` with a rank; lower is a better match.

    An exact `id` wins, then the action's `owner/repo`, then its repo name,
    then repo names starting with the needle (shorter names first).
    """
    needle = needle.lower()
    found = []
    for job in workflow["jobs"].values():
        for step in (job or {}).get("steps") or []:
            if step.get("id") is not None and str(step["id"]).lower() == needle:
                found.append((0, step))
            elif step.get("uses"):
                repo = step["uses"].split("@")[0].lower()
                name = repo.split("/")[-1]
                if repo == needle:
                    found.append((1, step))
                elif name == needle:
                    found.append((2, step))
                elif name.startswith(needle):
                    found.append((2 + len(name), step))
    return found


def find_named_steps(name: str, templates_dir: Path) -> list[tuple[int, dict]]:
    parts = name.split(":")
    if len(parts) == 2 and parts[0].endswith(".yml"):
        return find_steps(load_workflow(templates_dir / parts[0]), parts[1])
    found = []
    for template in list_templates(templates_dir):
        found.extend(find_steps(load_workflow(templates_dir / template), name))
    return found


def run_named_step(name: str, templates_dir: Path, root: Path, changed_files: list[str]) -> int:
    found = find_named_steps(name, templates_dir)
    if not found:
        click.secho(f"No steps matching {name}", dim=True, err=True)
        return 0
    if len(found) > 1:
        click.secho(f"{len(found)} steps found matching {name}, selecting the best match.", dim=True)
    _, step = min(found, key=lambda item: item[0])
    result = run_step(step, root, changed_files)
    if result is None:
        return 0
    return result.errors + (1 if result.failed else 0)


def prepare_changed_files(root: Path, base: str | None = None) -> list[str]:
    """Resolve the base ref, export it for child processes, and diff against it."""
    base = base or git.base_ref(root)
    if not base:
        click.echo(
            click.style("Warning: ", fg="yellow")
            + "Unable to determine the base ref for this branch. Using HEAD",
            err=True,
        )
        base = "HEAD"
    os.environ[BASE_REF_ENV] = base
    return git.changed_files(base, root)
