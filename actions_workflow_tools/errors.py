"""Compile-time failures. All of them abort the compile with no output."""

from __future__ import annotations


class CompileError(ValueError):
    pass


class UnknownSetupError(CompileError):
    def __init__(self, name: str):
        super().__init__(f"Invalid setup reference: '{name}' is not defined")
        self.name = name


class InvalidPatternError(CompileError):
    def __init__(self, pattern: str):
        super().__init__(f"Invalid pattern: {pattern} - only * and ** replacements are supported")
        self.pattern = pattern


class MissingCheckoutError(CompileError):
    def __init__(self):
        super().__init__(
            "You must have a 'checkout' setup if you are using step- or job-level paths"
        )


class CycleError(CompileError):
    """Raised by the linearizer; `edges` lists every unresolved `from:to` pair."""

    def __init__(self, edges: list[str]):
        super().__init__(f"Cycle in setup dependencies: {', '.join(edges)}")
        self.edges = edges
