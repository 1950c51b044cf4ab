"""External integration tools. High risk: they reach third-party endpoints."""

from __future__ import annotations

from typing import Any

from caput.errors import ToolError
from caput.tools.base import BaseTool, RiskLevel, ToolContext


class ApiConnectorTool(BaseTool):
    @property
    def name(self) -> str:
        return "apiConnector"

    @property
    def description(self) -> str:
        return "Prepare a request to an external API (requires high-risk permission)."

    @property
    def category(self) -> str:
        return "integration"

    @property
    def risk_level(self) -> RiskLevel:
        return "high"

    @property
    def requires_connectivity(self) -> bool:
        return True

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> Any:
        url = str(parameters.get("url", ""))
        if not url.startswith(("http://", "https://")):
            raise ToolError(f"Invalid API url: {url!r}")
        method = str(parameters.get("method", "GET")).upper()
        if context.notifier is not None:
            await context.notifier.notify(f"Prepared {method} {url}", "info")
        return {
            "request": {"method": method, "url": url, "headers": parameters.get("headers", {})},
            "status": "prepared",
            "source_url": url,
        }


class IntegrationTools:
    def get_tools(self) -> list[BaseTool]:
        return [ApiConnectorTool()]
