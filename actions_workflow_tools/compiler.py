"""Compile extended jobs into plain, linear GitHub Actions steps.

Three additions over the stock workflow syntax:

- `setup`: named, reusable step groups (which may need other groups),
  referenced from a job or from any step. Each group is emitted once per
  job, ahead of everything that needs it.
- `paths`: per-step glob patterns. The step only runs when a matching file
  changed, and the condition carries over to the setup groups it needs.
  A group needed both with and without conditions runs unconditionally.
- `bail_if`: once a step's bail condition holds, every later step is
  skipped and the job still succeeds.
"""

from __future__ import annotations

import copy
import logging
import re
import threading

from ._schema import FINISH_SETUP_NAME, SINGLE_SETUP_NAME, START_SETUP_NAME
from .errors import CompileError
from .graph import DependencyGraph, linearize, setup_steps
from .paths import compile_paths, paths_output_name

logger = logging.getLogger(__name__)

_OUTPUTS_REF = re.compile(r"(?<!\.)outputs\.")
_MAX_ID_SUFFIX = 1000


class CompileContext:
    """Per-compilation state shared by all jobs of one workflow document.

    Path-check step ids are claimed here, so the same pattern set gets the
    same id in every job and different sets never collide.
    """

    def __init__(self):
        self._path_ids: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def path_output_id(self, paths: list[str]) -> str:
        text = paths_output_name(paths)
        with self._lock:
            for num in range(_MAX_ID_SUFFIX):
                key = text if num == 0 else f"{text}-{num}"
                claimed = self._path_ids.get(key)
                if claimed is None:
                    self._path_ids[key] = list(paths)
                    return key
                if claimed == list(paths):
                    return key
        raise CompileError(f"Could not assign a step id for paths {paths}")


def and_ifs(one: str, two: str) -> str:
    return f"({one}) && ({two})"


def with_if(condition: str | None, step: dict) -> dict:
    if not condition:
        return step
    if step.get("if"):
        condition = and_ifs(condition, step["if"])
    return {**step, "if": condition}


def compile_if(path_deps: dict[str, None] | None, output_ids: dict[str, str]) -> str | None:
    if path_deps is None:
        return None
    return " || ".join(
        f"steps.{output_ids[path_id]}.outputs.changed == 'true'" for path_id in path_deps
    )


def _setup_block(name: str, definition, condition: str | None) -> list[dict]:
    steps = setup_steps(definition)
    if not steps:
        return []
    if len(steps) == 1:
        step = steps[0]
        label = SINGLE_SETUP_NAME.format(setup=name, step=step.get("name") or "")
        return [with_if(condition, {**step, "name": label})]
    start = {"name": START_SETUP_NAME.format(setup=name), "run": 'echo "Setting something up"'}
    finish = {"name": FINISH_SETUP_NAME.format(setup=name), "run": 'echo "Finished setting it up"'}
    return [with_if(condition, step) for step in [start, *(dict(s) for s in steps), finish]]


def weave(graph: DependencyGraph, order: list[str], ctx: CompileContext) -> list[dict]:
    """Emit the steps of each node in order, gated by its path conditions."""
    output_ids: dict[str, str] = {}
    steps: list[dict] = []
    for node_id in order:
        node = graph.nodes[node_id]
        condition = compile_if(node.path_deps, output_ids)
        if node.kind == "paths":
            output_ids[node_id] = ctx.path_output_id(node.content)
            steps.append(with_if(condition, compile_paths(output_ids[node_id], node.content)))
        elif node.kind == "setup":
            name = node_id[len("setup-") :]
            steps.extend(_setup_block(name, node.content, condition))
        else:
            steps.append(with_if(condition, node.content))
    return steps


def rewrite_bails(steps: list[dict]) -> None:
    """Turn every `bail_if` into a negated gate on all later steps, in place."""
    positions = [i for i, step in enumerate(steps) if step.get("bail_if")]
    for n, position in enumerate(positions, start=1):
        bail = steps[position]
        if not bail.get("id"):
            bail["id"] = f"bail_if_{n}"
        cond = "!(" + _OUTPUTS_REF.sub(f"steps.{bail['id']}.outputs.", bail.pop("bail_if")) + ")"
        for step in steps[position + 1 :]:
            step["if"] = and_ifs(cond, step["if"]) if step.get("if") else cond
    for step in steps:
        step.pop("bail_if", None)


def compile_steps(job: dict, setups: dict | None = None, ctx: CompileContext | None = None) -> dict:
    """Rewrite `job["steps"]` into its compiled, linear form. Mutates `job`."""
    ctx = ctx or CompileContext()
    graph = DependencyGraph.from_job(job, setups)
    order = linearize(graph)
    logger.debug("linearized %d nodes: %s", len(order), order)
    steps = weave(graph, order, ctx)
    rewrite_bails(steps)
    job["steps"] = steps
    return job


def compile_workflow(data: dict, ctx: CompileContext | None = None) -> dict:
    """Compile every job of a parsed workflow. The input is left untouched."""
    ctx = ctx or CompileContext()
    doc = copy.deepcopy(data)
    setups = doc.pop("setup", None) or {}
    for job_id, job in (doc.get("jobs") or {}).items():
        logger.debug("compiling job %s", job_id)
        compile_steps(job, setups, ctx)
    return doc
