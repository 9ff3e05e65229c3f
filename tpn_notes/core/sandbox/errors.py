from __future__ import annotations


class SandboxError(Exception):
    """Base for every failure raised while compiling or running dynamic code."""

    kind = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class SandboxSyntaxError(SandboxError):
    kind = "SyntaxError"

    def __init__(self, message: str, line: int = 0, column: int = 0):
        if line:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message)
        self.line = line
        self.column = column


class SandboxReferenceError(SandboxError):
    kind = "ReferenceError"


class SandboxTypeError(SandboxError):
    kind = "TypeError"


class SandboxRangeError(SandboxError):
    kind = "RangeError"


class ExecutionTimeout(SandboxError):
    kind = "TimeoutError"
