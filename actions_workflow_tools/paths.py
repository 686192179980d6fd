"""Path conditions — glob patterns compiled into a change-detection step.

Supported glob subset:
- `**` and `**/*` match anything, including `/`
- `*` matches a run of characters within one path segment

The same translation backs both the generated shell check and the local
matcher, so a pattern selects the same files in CI and on a dev machine.
"""

from __future__ import annotations

import re
from functools import lru_cache

from .errors import InvalidPatternError

_STAR_RUN = re.compile(r"\*\*/\*|\*+")
# Characters special to POSIX ERE or Python re; a backslash makes them literal in both.
_SPECIAL = re.compile(r"([.^$+?()\[\]{}|\\])")

BASE_REF_ENV = "GITHUB_BASE_REF"


def normalize_paths(paths: str | list[str] | None) -> list[str]:
    if not paths:
        return []
    if isinstance(paths, str):
        return [paths]
    return list(paths)


def _translate_stars(run: str, pattern: str) -> str:
    if run in ("**/*", "**"):
        return ".*"
    if run == "*":
        return "[^/]*"
    raise InvalidPatternError(pattern)


def glob_to_regex(pattern: str) -> str:
    """Translate one glob pattern into an anchored regex (`^...$`)."""
    parts = []
    pos = 0
    for m in _STAR_RUN.finditer(pattern):
        parts.append(_SPECIAL.sub(r"\\\1", pattern[pos : m.start()]))
        parts.append(_translate_stars(m.group(0), pattern))
        pos = m.end()
    parts.append(_SPECIAL.sub(r"\\\1", pattern[pos:]))
    return "^" + "".join(parts) + "$"


def paths_node_id(paths: list[str]) -> str:
    """Graph identity for a pattern set. Identical sets share one node."""
    return "paths-" + "#".join(sorted(paths))


def paths_output_name(paths: list[str]) -> str:
    """Canonical step id for a pattern set, before collision suffixing."""
    return "paths_" + "__".join(re.sub(r"\W+", "_", p, flags=re.ASCII) for p in paths)


def _shell_quote(text: str) -> str:
    return "'" + text.replace("'", "'\\''") + "'"


def _check_pattern(regex: str) -> str:
    return (
        "if [[ -n $(git diff --name-only refs/remotes/origin/$"
        + BASE_REF_ENV
        + " --relative | grep -E "
        + _shell_quote(regex)
        + ") ]]\n"
        "then\n"
        'echo "changed=true" >> "$GITHUB_OUTPUT"\n'
        "exit 0\n"
        "fi"
    )


def compile_paths(step_id: str, paths: list[str]) -> dict:
    """Build the step that sets `outputs.changed` to whether any pattern matched."""
    checks = "\n\n".join(_check_pattern(glob_to_regex(p)) for p in paths)
    return {
        "id": step_id,
        "name": "Check paths: " + ", ".join(paths),
        "run": checks + '\necho "changed=false" >> "$GITHUB_OUTPUT"\nexit 0',
    }


@lru_cache(maxsize=256)
def _regex(pattern: str) -> re.Pattern:
    return re.compile(glob_to_regex(pattern))


def match_path(pattern: str, file: str) -> bool:
    return _regex(pattern).search(file) is not None


def match_paths(patterns: list[str], files: list[str]) -> bool:
    """True if any changed file matches any pattern."""
    for file in files:
        for pattern in patterns:
            if match_path(pattern, file):
                return True
    return False
