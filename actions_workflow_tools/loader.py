"""YAML loading, include resolution, validation, and emission of workflow templates."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import yaml

from ._schema import HEADER, REQUIRED_TOP_KEYS, TEMPLATE_SUFFIX, TEMPLATES_DIR, WORKFLOWS_DIR
from .compiler import CompileContext, compile_workflow

logger = logging.getLogger(__name__)

_BOOL_TAG = "tag:yaml.org,2002:bool"


def _yaml_1_2_booleans(resolvers: dict) -> dict:
    """Keep only YAML 1.2 booleans so a workflow's `on:` key stays a string."""
    return {
        first: [(tag, rx) for tag, rx in entries if tag != _BOOL_TAG]
        for first, entries in resolvers.items()
    }


class _Loader(yaml.SafeLoader):
    pass


class _Dumper(yaml.SafeDumper):
    def ignore_aliases(self, data):
        return True


for _cls in (_Loader, _Dumper):
    _cls.yaml_implicit_resolvers = _yaml_1_2_booleans(yaml.SafeLoader.yaml_implicit_resolvers)
    _cls.add_implicit_resolver(
        _BOOL_TAG, re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"), list("tTfF")
    )


def _represent_str(dumper: yaml.SafeDumper, data: str):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_Dumper.add_representer(str, _represent_str)


# Search order: env var, then .github/workflow-templates under the repo root
def find_templates_dir(root: str | Path) -> Path:
    env = os.getenv("ACTIONS_WORKFLOW_TEMPLATES_DIR")
    if env:
        return Path(env)
    return Path(root) / TEMPLATES_DIR


def find_output_dir(root: str | Path) -> Path:
    return Path(root) / WORKFLOWS_DIR


def _load_yaml(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        return yaml.load(f, Loader=_Loader)


def _resolve_includes(raw: dict, path: Path) -> dict:
    """Merge the `setup` mappings of every `include`d file into this one."""
    includes = raw.pop("include", None)
    if not includes:
        return raw
    setups = dict(raw.get("setup") or {})
    for other in includes:
        other_path = path.parent / other
        if not other_path.exists():
            raise FileNotFoundError(f"Included file {other} not found (from {path})")
        parsed = _load_yaml(other_path) or {}
        setups.update(parsed.get("setup") or {})
        logger.debug("included %s into %s", other_path, path.name)
    raw["setup"] = setups
    return raw


def _validate(raw, name: str) -> None:
    """Basic validation: jobs present, every step a mapping, no step that both runs and uses."""
    if not isinstance(raw, dict) or REQUIRED_TOP_KEYS - set(raw.keys()):
        raise ValueError(f"Not a valid workflow file {name}")
    jobs = raw["jobs"]
    if not isinstance(jobs, dict):
        raise ValueError(f"Workflow '{name}': 'jobs' must be a mapping")
    for job_id, job in jobs.items():
        if not isinstance(job, dict):
            raise ValueError(f"Workflow '{name}', job '{job_id}': must be a mapping")
        steps = job.get("steps") or []
        for i, step in enumerate(steps):
            if not isinstance(step, dict):
                raise ValueError(f"Workflow '{name}', job '{job_id}', step {i}: must be a mapping")
            if "run" in step and "uses" in step:
                raise ValueError(
                    f"Workflow '{name}', job '{job_id}', step {i}: can't have both 'run' and 'uses'"
                )
    for setup_name, definition in (raw.get("setup") or {}).items():
        if not isinstance(definition, (list, dict)):
            raise ValueError(
                f"Workflow '{name}', setup '{setup_name}': must be a list of steps or a mapping"
            )


def load_workflow(path: str | Path) -> dict:
    """Load a template with its includes resolved. Extended keys are left in place."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Workflow template not found at {path}")
    raw = _load_yaml(path)
    if isinstance(raw, dict):
        raw = _resolve_includes(raw, path)
    _validate(raw, str(path))
    return raw


def dump_workflow(doc: dict, source: str) -> str:
    body = yaml.dump(doc, Dumper=_Dumper, sort_keys=False, allow_unicode=True, width=1000)
    return HEADER.format(source=source) + body


def compile_file(
    infile: str | Path,
    outfile: str | Path | None = None,
    root: str | Path | None = None,
    ctx: CompileContext | None = None,
) -> str:
    """Compile one template; write it to `outfile` when given. Returns the text."""
    infile = Path(infile)
    logger.info("Processing %s", infile)
    doc = compile_workflow(load_workflow(infile), ctx)
    source = os.path.relpath(infile, root) if root else infile.name
    text = dump_workflow(doc, Path(source).as_posix())
    if outfile is not None:
        outfile = Path(outfile)
        outfile.parent.mkdir(parents=True, exist_ok=True)
        outfile.write_text(text, encoding="utf-8")
    return text


def list_templates(templates_dir: str | Path) -> list[str]:
    """Compilable template file names. `_`-prefixed files are include-only."""
    templates_path = Path(templates_dir)
    if not templates_path.is_dir():
        raise FileNotFoundError(f"Templates directory not found at {templates_path}")
    return [
        p.name
        for p in sorted(templates_path.glob(f"*{TEMPLATE_SUFFIX}"))
        if not p.name.startswith("_")
    ]


def compile_templates(
    templates_dir: str | Path,
    output_dir: str | Path,
    root: str | Path | None = None,
) -> list[dict]:
    templates_path = Path(templates_dir)
    output_path = Path(output_dir)
    written = []
    for name in list_templates(templates_path):
        compile_file(templates_path / name, output_path / name, root=root)
        written.append({"template": str(templates_path / name), "output": str(output_path / name)})
    return written
