"""Tool catalog with a uniform execution wrapper and usage history."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from caput.errors import AgentError, ErrorKind, PermissionDeniedError, ToolNotFoundError
from caput.tools.base import BaseTool, FunctionTool, ToolContext, ToolFn, ToolModule, ToolOutcome
from caput.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class _Entry:
    tool: BaseTool
    risk_level: str
    module: str = ""
    call_count: int = 0
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ToolRegistry:
    def __init__(self, high_risk_tools: Iterable[str] = ()) -> None:
        self._entries: dict[str, _Entry] = {}
        self._high_risk = set(high_risk_tools)
        self._history: list[dict[str, Any]] = []
        self._modules: dict[str, ToolModule] = {}

    # --- Registration ---

    def register(self, tool: BaseTool, module: str = "") -> None:
        """Add or replace a tool by name. Replacing resets its call counter."""
        risk = "high" if tool.name in self._high_risk else tool.risk_level
        if tool.name in self._entries:
            log.debug("tool_replaced", tool=tool.name)
        self._entries[tool.name] = _Entry(tool=tool, risk_level=risk, module=module)

    def register_function(self, name: str, fn: ToolFn, **kwargs: Any) -> None:
        self.register(FunctionTool(name, fn, **kwargs))

    def load_module(self, name: str, module: ToolModule) -> int:
        tools = module.get_tools()
        for tool in tools:
            self.register(tool, module=name)
        self._modules[name] = module
        log.info("tool_module_loaded", module=name, tools=len(tools))
        return len(tools)

    def has(self, name: str) -> bool:
        return name in self._entries

    def requires_connectivity(self, name: str) -> bool:
        entry = self._entries.get(name)
        return entry is not None and entry.tool.requires_connectivity

    # --- Execution ---

    async def execute(
        self,
        name: str,
        parameters: dict[str, Any] | None = None,
        context: ToolContext | None = None,
    ) -> ToolOutcome:
        """Run a tool. Never raises; failures come back as ``success=False``."""
        context = context or ToolContext()
        parameters = parameters or {}

        entry = self._entries.get(name)
        if entry is None:
            err = ToolNotFoundError(name)
            return ToolOutcome(
                success=False, error=str(err), error_kind=err.kind.value,
                metadata={"tool_name": name},
            )

        if entry.risk_level == "high" and not context.high_risk_enabled:
            err = PermissionDeniedError(name)
            log.warning("tool_permission_denied", tool=name)
            return ToolOutcome(
                success=False, error=str(err), error_kind=err.kind.value,
                metadata={"tool_name": name, "call_count": entry.call_count},
            )

        # Counted before the body runs so the counter reflects attempts
        entry.call_count += 1
        start = time.perf_counter()
        try:
            data = await entry.tool.execute(parameters, context)
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            kind = e.kind if isinstance(e, AgentError) else ErrorKind.TOOL
            self._record(name, entry, parameters, elapsed, success=False, error=str(e))
            log.warning("tool_failed", tool=name, error=str(e), kind=kind.value)
            return ToolOutcome(
                success=False,
                error=str(e),
                error_kind=kind.value,
                metadata=self._metadata(name, entry, elapsed),
            )

        elapsed = (time.perf_counter() - start) * 1000
        self._record(name, entry, parameters, elapsed, success=True)
        return ToolOutcome(success=True, data=data, metadata=self._metadata(name, entry, elapsed))

    def _metadata(self, name: str, entry: _Entry, elapsed: float) -> dict[str, Any]:
        return {
            "tool_name": name,
            "module": entry.module,
            "category": entry.tool.category,
            "execution_time": elapsed,
            "call_count": entry.call_count,
        }

    def _record(
        self,
        name: str,
        entry: _Entry,
        parameters: dict[str, Any],
        elapsed: float,
        success: bool,
        error: str | None = None,
    ) -> None:
        self._history.append({
            "tool_name": name,
            "category": entry.tool.category,
            "module": entry.module,
            "parameters": parameters,
            "success": success,
            "error": error,
            "execution_time": elapsed,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    # --- Catalog ---

    def get_all_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "name": name,
                "description": entry.tool.description,
                "category": entry.tool.category,
                "risk_level": entry.risk_level,
                "requires_connectivity": entry.tool.requires_connectivity,
                "module": entry.module,
                "call_count": entry.call_count,
            }
            for name, entry in self._entries.items()
        ]

    get_tool_list = get_all_tools

    def get_tools_by_category(self, category: str) -> list[dict[str, Any]]:
        return [t for t in self.get_all_tools() if t["category"] == category]

    def get_categories(self) -> list[str]:
        return sorted({e.tool.category for e in self._entries.values()})

    def get_execution_history(self) -> list[dict[str, Any]]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def get_usage_stats(self) -> dict[str, Any]:
        total = len(self._history)
        successful = sum(1 for h in self._history if h["success"])

        tools: dict[str, dict[str, float]] = {}
        categories: dict[str, dict[str, float]] = {}
        for h in self._history:
            for bucket, key in ((tools, h["tool_name"]), (categories, h["category"])):
                agg = bucket.setdefault(key, {"calls": 0, "total_time": 0.0, "errors": 0})
                agg["calls"] += 1
                agg["total_time"] += h["execution_time"]
                if not h["success"]:
                    agg["errors"] += 1

        def _most_used(bucket: dict[str, dict[str, float]]) -> str | None:
            if not bucket:
                return None
            return max(bucket.items(), key=lambda kv: kv[1]["calls"])[0]

        avg = sum(h["execution_time"] for h in self._history) / total if total else 0.0
        return {
            "total": {
                "calls": total,
                "successful": successful,
                "failed": total - successful,
                "success_rate": successful / total if total else 0.0,
                "avg_execution_time": round(avg),
            },
            "tools": tools,
            "categories": categories,
            "most_used_tool": _most_used(tools),
            "most_used_category": _most_used(categories),
        }

    def health_check(self) -> dict[str, Any]:
        modules: dict[str, Any] = {}
        for name in self._modules:
            entries = [e for e in self._entries.values() if e.module == name]
            modules[name] = {
                "tool_count": len(entries),
                "total_calls": sum(e.call_count for e in entries),
                "status": "healthy" if entries else "empty",
            }
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_modules": len(self._modules),
            "total_tools": len(self._entries),
            "modules": modules,
        }
