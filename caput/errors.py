"""Error taxonomy for the agent core."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONNECTIVITY = "connectivity"
    CRITICAL = "critical"
    TOOL = "tool"
    VALIDATION = "validation"
    PERMISSION = "permission"
    GENERIC = "generic"


class AgentError(Exception):
    """Base error. ``kind`` decides how each boundary treats it."""

    kind: ErrorKind = ErrorKind.GENERIC

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def message(self) -> str:
        return str(self)


class ConnectivityError(AgentError):
    """Network failure or timeout. Queued at stage boundaries."""

    kind = ErrorKind.CONNECTIVITY


class CriticalError(AgentError):
    """Credential or authorization failure. Always aborts plan execution."""

    kind = ErrorKind.CRITICAL

    def __init__(self, message: str, results: list | None = None) -> None:
        super().__init__(message)
        self.results = results or []


class ToolError(AgentError):
    kind = ErrorKind.TOOL


class ToolNotFoundError(ToolError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Tool "{name}" not found')
        self.tool_name = name


class DependenciesNotMetError(ToolError):
    def __init__(self, step_number: int, missing: list[int]) -> None:
        super().__init__(
            f"Dependencies not met for step {step_number}: {missing}"
        )
        self.step_number = step_number
        self.missing = missing


class PermissionDeniedError(AgentError):
    kind = ErrorKind.PERMISSION

    def __init__(self, name: str) -> None:
        super().__init__(f'High-risk tool "{name}" requires explicit permission')
        self.tool_name = name


class ValidationError(AgentError):
    """Malformed plan or collaborator. Fatal to the whole goal."""

    kind = ErrorKind.VALIDATION
