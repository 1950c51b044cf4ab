"""Base tool interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Protocol

from caput.core.sinks import NotificationSink, TraceSink
from caput.core.usage import UsageAccountant

RiskLevel = Literal["low", "medium", "high"]


@dataclass
class ToolContext:
    """Capabilities handed to a tool body on every call."""
    high_risk_enabled: bool = False
    trace: TraceSink | None = None
    notifier: NotificationSink | None = None
    usage: UsageAccountant | None = None


@dataclass
class ToolOutcome:
    success: bool
    data: Any = None
    error: str = ""
    error_kind: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseTool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    def category(self) -> str:
        return "general"

    @property
    def risk_level(self) -> RiskLevel:
        return "low"

    @property
    def requires_connectivity(self) -> bool:
        """True when the tool cannot run at all without network access."""
        return False

    @abstractmethod
    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> Any:
        """Run the tool. Raise on failure; the registry records the outcome."""
        ...


ToolFn = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]


class FunctionTool(BaseTool):
    """Adapts a plain coroutine function to :class:`BaseTool`."""

    def __init__(
        self,
        name: str,
        fn: ToolFn,
        description: str = "",
        category: str = "general",
        risk_level: RiskLevel = "low",
        requires_connectivity: bool = False,
    ) -> None:
        self._name = name
        self._fn = fn
        self._description = description
        self._category = category
        self._risk_level = risk_level
        self._requires_connectivity = requires_connectivity

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def category(self) -> str:
        return self._category

    @property
    def risk_level(self) -> RiskLevel:
        return self._risk_level

    @property
    def requires_connectivity(self) -> bool:
        return self._requires_connectivity

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> Any:
        return await self._fn(parameters, context)


class ToolModule(Protocol):
    """A group of related tools registered together."""

    def get_tools(self) -> list[BaseTool]: ...
