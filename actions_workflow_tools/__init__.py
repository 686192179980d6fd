"""actions-workflow-tools — compile extended GitHub Actions workflows, run them locally."""

from .compiler import CompileContext, compile_steps, compile_workflow
from .errors import CompileError, CycleError
from .loader import compile_file, compile_templates, list_templates, load_workflow
from .paths import compile_paths, match_paths

__all__ = [
    "CompileContext",
    "CompileError",
    "CycleError",
    "compile_file",
    "compile_paths",
    "compile_steps",
    "compile_templates",
    "compile_workflow",
    "list_templates",
    "load_workflow",
    "match_paths",
]
