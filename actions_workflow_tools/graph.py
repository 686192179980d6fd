"""Dependency graph of one job: its steps, setup groups and path checks.

Nodes are addressed by string id in a flat mapping; edges are kept on both
ends (`before` = what a node waits for, `after` = who waits for it). Dicts
stand in for ordered sets so traversal follows insertion order and every
compile of the same input yields the same linearization.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from ._schema import CHECKOUT_SETUP, STEP_EXTENSION_KEYS
from .errors import CycleError, MissingCheckoutError, UnknownSetupError
from .paths import normalize_paths, paths_node_id

logger = logging.getLogger(__name__)

CHECKOUT_ID = f"setup-{CHECKOUT_SETUP}"


def setup_list(setup: str | list[str] | None) -> list[str]:
    if not setup:
        return []
    if isinstance(setup, str):
        return [setup]
    return list(setup)


def setup_steps(definition: list | dict | None) -> list[dict]:
    """Steps of a setup definition, in either the bare-list or record form."""
    if definition is None:
        return []
    if isinstance(definition, list):
        return list(definition)
    return list(definition.get("steps") or [])


@dataclass
class Node:
    id: str
    kind: str  # "step" | "setup" | "paths"
    content: Any
    path_deps: dict[str, None] | None = None  # None = unconditional
    before: dict[str, None] = field(default_factory=dict)
    after: dict[str, None] = field(default_factory=dict)


class DependencyGraph:
    def __init__(self, setups: dict[str, list | dict] | None = None):
        self.setups = setups or {}
        self.nodes: dict[str, Node] = {}

    def add_edge(self, node_id: str, dep_id: str) -> None:
        """`node_id` must run after `dep_id`."""
        self.nodes[node_id].before[dep_id] = None
        self.nodes[dep_id].after[node_id] = None

    def add_node(self, node_id: str, kind: str, content: Any, path_ids: list[str]) -> None:
        if node_id in self.nodes:
            return
        path_deps = dict.fromkeys(path_ids) if path_ids else None
        self.nodes[node_id] = Node(id=node_id, kind=kind, content=content, path_deps=path_deps)
        for path_id in path_ids:
            self.add_edge(node_id, path_id)

    def add_paths(self, paths: list[str]) -> str:
        patterns = sorted(paths)
        node_id = paths_node_id(patterns)
        self.add_node(node_id, "paths", patterns, [])
        return node_id

    def add_setup(self, name: str, path_ids: list[str]) -> str:
        """Resolve a setup reference, creating or re-conditioning its node."""
        node_id = f"setup-{name}"
        if name == CHECKOUT_SETUP:
            path_ids = []
        if node_id in self.nodes:
            self.propagate(node_id, path_ids)
            return node_id
        if name not in self.setups:
            raise UnknownSetupError(name)
        definition = self.setups[name]
        self.add_node(node_id, "setup", definition, path_ids)
        logger.debug("setup %s added (paths: %s)", name, path_ids or "unconditional")
        if isinstance(definition, dict):
            self.require_setups(node_id, definition.get("setup"), path_ids)
        return node_id

    def require_setups(self, node_id: str, setup: str | list[str] | None, path_ids: list[str]) -> None:
        for name in setup_list(setup):
            self.add_edge(node_id, self.add_setup(name, path_ids))

    def propagate(self, node_id: str, path_ids: list[str]) -> None:
        """Push a new reference's path conditions down through a node's dependencies.

        An unconditional reference clears conditions on the whole subtree.
        Nodes that are already unconditional stay that way.
        """
        stack = [node_id]
        seen: set[str] = set()
        while stack:
            key = stack.pop()
            if key in seen:
                continue
            seen.add(key)
            node = self.nodes[key]
            if not path_ids:
                node.path_deps = None
            elif key == CHECKOUT_ID:
                continue
            elif node.path_deps is not None:
                for path_id in path_ids:
                    node.path_deps[path_id] = None
                    self.add_edge(key, path_id)
            stack.extend(reversed(list(node.before)))

    def add_step(self, index: int, step: dict) -> None:
        node_id = f"step-{index}"
        paths = normalize_paths(step.pop("paths", None))
        path_ids = [self.add_paths(paths)] if paths else []
        self.add_node(node_id, "step", step, path_ids)
        self.require_setups(node_id, step.pop("setup", None), path_ids)
        for key in STEP_EXTENSION_KEYS:
            step.pop(key, None)
        if index > 0:
            self.add_edge(node_id, f"step-{index - 1}")

    def require_checkout(self) -> None:
        """Every path check diffs the working tree, so it runs after checkout."""
        for node_id, node in list(self.nodes.items()):
            if node.kind != "paths":
                continue
            if CHECKOUT_ID not in self.nodes:
                raise MissingCheckoutError()
            self.add_edge(node_id, CHECKOUT_ID)

    @classmethod
    def from_job(cls, job: dict, setups: dict[str, list | dict] | None = None) -> DependencyGraph:
        graph = cls(setups)
        steps = job.get("steps") or []
        for i, step in enumerate(steps):
            graph.add_step(i, step)
        job_setup = job.pop("setup", None)
        if steps:
            graph.require_setups("step-0", job_setup, [])
        else:
            for name in setup_list(job_setup):
                graph.add_setup(name, [])
        graph.require_checkout()
        return graph


def linearize(graph: DependencyGraph) -> list[str]:
    """Kahn's algorithm. Ready nodes are taken in discovery order.

    Raises CycleError listing every edge left once nothing is ready.
    """
    before = {node_id: dict(node.before) for node_id, node in graph.nodes.items()}
    after = {node_id: dict(node.after) for node_id, node in graph.nodes.items()}
    ready = deque(node_id for node_id in graph.nodes if not before[node_id])
    order: list[str] = []

    while ready:
        node_id = ready.popleft()
        order.append(node_id)
        for dependent in list(after[node_id]):
            del after[node_id][dependent]
            del before[dependent][node_id]
            if not before[dependent]:
                ready.append(dependent)

    edges = [f"{node_id}:{dependent}" for node_id in graph.nodes for dependent in after[node_id]]
    if edges:
        raise CycleError(edges)
    return order
