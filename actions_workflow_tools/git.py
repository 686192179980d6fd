"""Thin wrapper around the git CLI: repo root, base ref, changed files."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from .paths import BASE_REF_ENV

logger = logging.getLogger(__name__)

_FALLBACK_BASES = ("origin/main", "origin/master")


def _git(args: list[str], cwd: str | Path | None = None) -> str:
    """Run git and return stripped stdout. Raises CalledProcessError on failure."""
    out = subprocess.check_output(["git", *args], cwd=cwd, text=True, stderr=subprocess.DEVNULL)
    return out.strip()


def repo_root(cwd: str | Path | None = None) -> Path:
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def base_ref(cwd: str | Path | None = None) -> str | None:
    """Best guess at the branch this one will merge into.

    GITHUB_BASE_REF wins, then the upstream branch, then the merge-base with
    origin/main or origin/master. None if nothing resolves.
    """
    env = os.getenv(BASE_REF_ENV)
    if env:
        return env
    try:
        return _git(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"], cwd=cwd)
    except subprocess.CalledProcessError:
        logger.debug("no upstream branch configured")
    for candidate in _FALLBACK_BASES:
        try:
            return _git(["merge-base", "HEAD", candidate], cwd=cwd)
        except subprocess.CalledProcessError:
            logger.debug("no merge-base with %s", candidate)
    return None


def changed_files(base: str, root: str | Path) -> list[str]:
    """Files changed since `base` plus untracked files, relative to `root`."""
    files = dict.fromkeys(_git(["diff", "--name-only", base, "--relative"], cwd=root).splitlines())
    files.update(dict.fromkeys(_git(["ls-files", "--others", "--exclude-standard"], cwd=root).splitlines()))
    return [f for f in files if f]


def clone(repo: str, target: str | Path, ref: str | None = None) -> None:
    """Shallow-clone `owner/repo` from GitHub at `ref` into `target`."""
    args = ["clone", "--quiet", "--depth", "1"]
    if ref:
        args += ["--branch", ref]
    _git([*args, f"https://github.com/{repo}.git", str(target)])
