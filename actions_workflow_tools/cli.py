"""Click CLI entrypoint — `awt <subcommand>`.

JSON output by default, --human for tables.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import time
from pathlib import Path

import click
import yaml


def _output(data, human: bool = False) -> None:
    """Route output: JSON (default) or human (tables). Errors go to stderr, exit 1."""
    if isinstance(data, dict) and "error" in data:
        click.echo(json.dumps(data, indent=2, default=str), err=True)
        sys.exit(1)
    if human:
        _print_human(data)
    else:
        click.echo(json.dumps(data, indent=2, default=str))


def _print_human(data) -> None:
    if isinstance(data, list):
        if not data:
            click.echo("(none)")
            return
        if isinstance(data[0], dict):
            keys = list(data[0].keys())
            widths = {k: max(len(k), *(len(str(row.get(k, ""))) for row in data)) for k in keys}
            header = "  ".join(k.upper().ljust(widths[k]) for k in keys)
            click.echo(header)
            for row in data:
                click.echo("  ".join(str(row.get(k, "")).ljust(widths[k]) for k in keys))
        else:
            for item in data:
                click.echo(item)
    else:
        click.echo(data)


def _get_root(ctx) -> Path:
    """Lazy repo root: --root, else ask git. Cached in ctx.obj."""
    if "root" not in ctx.obj:
        from actions_workflow_tools.git import repo_root

        ctx.obj["root"] = repo_root()
    return ctx.obj["root"]


def _templates_dir(ctx, override: str | None = None) -> Path:
    from actions_workflow_tools.loader import find_templates_dir

    if override:
        return Path(override)
    return find_templates_dir(_get_root(ctx))


@click.group()
@click.option("--human", is_flag=True, help="Human-readable table output")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose (DEBUG) logging")
@click.option("--root", type=click.Path(file_okay=False), default=None, help="Repository root (defaults to git toplevel)")
@click.pass_context
def main(ctx, human, verbose, root):
    """awt: compile extended GitHub Actions workflows and run them locally."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s - %(name)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["human"] = human
    if root:
        ctx.obj["root"] = Path(root).resolve()


# --- Compile Commands ---


@main.command("compile")
@click.option("--templates-dir", default=None, help="Directory of workflow templates")
@click.option("--output-dir", default=None, help="Directory compiled workflows are written to")
@click.pass_context
def compile_cmd(ctx, templates_dir, output_dir):
    """Compile every template into a plain workflow file."""
    from actions_workflow_tools.loader import compile_templates, find_output_dir

    root = _get_root(ctx)
    out = Path(output_dir) if output_dir else find_output_dir(root)
    try:
        result = compile_templates(_templates_dir(ctx, templates_dir), out, root=root)
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        _output({"error": str(e)})
        return
    _output(result, ctx.obj["human"])


@main.command("show")
@click.argument("template", type=click.Path(dir_okay=False))
@click.pass_context
def show(ctx, template):
    """Print one compiled workflow to stdout."""
    from actions_workflow_tools.loader import compile_file

    try:
        text = compile_file(template, root=ctx.obj.get("root"))
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        _output({"error": str(e)})
        return
    click.echo(text, nl=False)


@main.command("list-templates")
@click.option("--templates-dir", default=None, help="Directory of workflow templates")
@click.pass_context
def list_templates_cmd(ctx, templates_dir):
    """List compilable templates."""
    from actions_workflow_tools.loader import list_templates

    try:
        result = list_templates(_templates_dir(ctx, templates_dir))
    except FileNotFoundError as e:
        _output({"error": str(e)})
        return
    _output(result, ctx.obj["human"])


# --- Local Run Commands ---


def _finish(errors: int, started: float) -> None:
    from actions_workflow_tools.runner import plural

    elapsed = f"Finished in {time.monotonic() - started:.2f}s"
    if errors == 0:
        click.secho(f"✅  All clear! {elapsed}  ✅", fg="green")
        return
    click.secho(f"❌  {errors} {plural(errors, 'issue', 'issues')} found. {elapsed}  ❌", fg="red")
    sys.exit(1)


_RUN_ERRORS = (ValueError, FileNotFoundError, yaml.YAMLError, subprocess.CalledProcessError)


@main.command("run")
@click.argument("types", nargs=-1)
@click.option("--templates-dir", default=None, help="Directory of workflow templates")
@click.option("--base-ref", default=None, help="Ref to diff against (defaults to GITHUB_BASE_REF or upstream)")
@click.pass_context
def run(ctx, types, templates_dir, base_ref):
    """Run jobs whose id ends with each TYPE (default: prepare)."""
    from actions_workflow_tools.runner import expand_types, prepare_changed_files, run_type

    started = time.monotonic()
    try:
        root = _get_root(ctx)
        templates = _templates_dir(ctx, templates_dir)
        changed = prepare_changed_files(root, base_ref)
        errors = 0
        for job_type in expand_types(types):
            errors += run_type(job_type, templates, root, changed)
    except _RUN_ERRORS as e:
        _output({"error": str(e)})
        return
    _finish(errors, started)


@main.command("step")
@click.argument("name")
@click.option("--templates-dir", default=None, help="Directory of workflow templates")
@click.option("--base-ref", default=None, help="Ref to diff against (defaults to GITHUB_BASE_REF or upstream)")
@click.pass_context
def step(ctx, name, templates_dir, base_ref):
    """Run the single step best matching NAME (`id`, action repo, or FILE.yml:NAME)."""
    from actions_workflow_tools.runner import prepare_changed_files, run_named_step

    started = time.monotonic()
    try:
        root = _get_root(ctx)
        changed = prepare_changed_files(root, base_ref)
        errors = run_named_step(name, _templates_dir(ctx, templates_dir), root, changed)
    except _RUN_ERRORS as e:
        _output({"error": str(e)})
        return
    _finish(errors, started)
