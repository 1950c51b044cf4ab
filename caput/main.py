"""Caput entry point: wires the components together and exposes the CLI."""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import asdict
from typing import Any

import click

from caput.config import Settings, load_settings
from caput.core.bus import EventBus
from caput.core.cache import CacheStore
from caput.core.connectivity import ConnectivityMonitor
from caput.core.executor import PlanExecutor
from caput.core.inference import InferenceProvider, create_provider
from caput.core.pipeline import GoalPipeline
from caput.core.preferences import Preferences
from caput.core.queue import OfflineQueue
from caput.core.sinks import BusSink, LogSink, MultiSink
from caput.core.usage import UsageAccountant
from caput.models import GoalResult
from caput.tools import ToolRegistry, load_builtin_tools
from caput.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


class Caput:
    """Main application orchestrator."""

    def __init__(
        self,
        settings: Settings,
        provider: InferenceProvider | None = None,
        offline: bool = False,
    ) -> None:
        self.settings = settings

        self.bus = EventBus()
        self.log_sink = LogSink()
        self.bus_sink = BusSink(self.bus)
        self.sink = MultiSink(self.log_sink, self.bus_sink)
        self.provider = provider or create_provider(settings.inference)

        self.cache = CacheStore(
            settings.get_data_dir() / "cache.db",
            sweep_interval=settings.cache.sweep_interval,
        )
        self.preferences = Preferences(self.cache)
        self.queue = OfflineQueue(
            self.cache,
            max_retries=settings.agent.offline_queue_max_retries,
            ttl_minutes=settings.agent.offline_queue_ttl_minutes,
            notifier=self.sink,
        )
        self.connectivity = ConnectivityMonitor(
            on_online=self.drain_queue, bus=self.bus, offline=offline,
        )

        self.registry = ToolRegistry(high_risk_tools=settings.safety.high_risk_tools)
        load_builtin_tools(self.registry, self.provider)

        mode = settings.efficiency_modes[settings.efficiency_mode]
        self.usage = UsageAccountant(settings.pricing, mode=mode, sink=self.sink)
        self.executor = PlanExecutor(
            self.registry,
            self.cache,
            self.connectivity,
            self.usage,
            mode=mode,
            tools_config=settings.tools,
            safety=settings.safety,
            step_delay=settings.agent.step_delay,
            trace=self.sink,
            notifier=self.sink,
        )
        self.pipeline = GoalPipeline(
            self.provider,
            self.registry,
            self.executor,
            self.queue,
            self.usage,
            modes=settings.efficiency_modes,
            mode_name=settings.efficiency_mode,
            inference_timeout=settings.inference.timeout,
            trace=self.sink,
            connectivity=self.connectivity,
        )

    async def start(self) -> None:
        log.info("caput_starting", provider=self.settings.inference.provider)
        await self.cache.start()
        if self.settings.cache.enabled:
            self.cache.start_sweeper()
        await self.bus.start()
        await self._restore_mode()
        log.info("caput_ready", tools=len(self.registry.get_all_tools()))

    async def _restore_mode(self) -> None:
        saved = (await self.preferences.load()).get("efficiency_mode")
        if saved and saved != self.pipeline.mode_name:
            if self.pipeline.set_efficiency_mode(saved):
                log.info("efficiency_mode_restored", mode=saved)

    async def set_efficiency_mode(self, name: str) -> bool:
        """Switch modes and remember the choice for later sessions."""
        if not self.pipeline.set_efficiency_mode(name):
            return False
        await self.preferences.save(efficiency_mode=name)
        return True

    async def stop(self) -> None:
        log.info("caput_stopping")
        await self.bus.stop()
        await self.cache.stop()
        await self.provider.close()
        log.info("caput_stopped")

    async def process_goal(self, goal: str) -> GoalResult:
        return await self.pipeline.process(goal)

    async def drain_queue(self) -> dict[str, int]:
        counts = await self.queue.drain(self.pipeline.replay)
        log.info("queue_drained", **counts)
        return counts


def _result_to_json(result: GoalResult) -> str:
    return json.dumps(asdict(result), indent=2, ensure_ascii=False, default=str)


async def _with_app(settings: Settings, offline: bool, fn: Any) -> Any:
    app = Caput(settings, offline=offline)
    await app.start()
    try:
        return await fn(app)
    finally:
        await app.stop()


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """Caput, the autonomous goal-processing agent."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        log_file=settings.log_file or None,
    )
    ctx.obj = settings


@cli.command()
@click.argument("goal")
@click.option("--mode", default=None, help="Efficiency mode (efficiency_first, middle, best_results)")
@click.option("--offline", is_flag=True, help="Start in offline state (cache only, queue inference)")
@click.pass_obj
def run(settings: Settings, goal: str, mode: str | None, offline: bool) -> None:
    """Process GOAL through analyze, plan, execute, verify and deliver."""

    async def _go(app: Caput) -> GoalResult:
        if mode:
            app.pipeline.set_efficiency_mode(mode)
        return await app.process_goal(goal)

    try:
        result = asyncio.run(_with_app(settings, offline, _go))
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if result.status == "queued":
        click.echo(f"Accepted, deferred: {result.message}")
    elif result.status == "offline":
        click.echo(f"Offline: {result.message}")
    click.echo(_result_to_json(result))


@cli.command()
@click.pass_obj
def tools(settings: Settings) -> None:
    """List the registered tools."""

    async def _go(app: Caput) -> list[dict[str, Any]]:
        return app.registry.get_all_tools()

    for tool in asyncio.run(_with_app(settings, False, _go)):
        risk = " [high risk]" if tool["risk_level"] == "high" else ""
        click.echo(f"{tool['name']} ({tool['category']}){risk}: {tool['description']}")


@cli.command()
@click.pass_obj
def queue(settings: Settings) -> None:
    """Show requests waiting for connectivity."""

    async def _go(app: Caput) -> list[Any]:
        return await app.queue.list()

    requests = asyncio.run(_with_app(settings, False, _go))
    if not requests:
        click.echo("Offline queue is empty.")
        return
    for r in requests:
        click.echo(f"{r.id}  {r.original_action:<14} goal={r.goal_id} retries={r.retries} {r.timestamp}")


@cli.command()
@click.pass_obj
def drain(settings: Settings) -> None:
    """Replay queued requests now."""

    async def _go(app: Caput) -> dict[str, int]:
        return await app.drain_queue()

    counts = asyncio.run(_with_app(settings, False, _go))
    click.echo(
        f"Replayed {counts['replayed']}, failed {counts['failed']}, dropped {counts['dropped']}"
    )


@cli.command()
@click.argument("name", required=False)
@click.pass_obj
def mode(settings: Settings, name: str | None) -> None:
    """Show the efficiency mode, or switch to NAME for later runs."""

    async def _go(app: Caput) -> str | None:
        if name and not await app.set_efficiency_mode(name):
            return None
        return app.pipeline.mode_name

    current = asyncio.run(_with_app(settings, False, _go))
    if current is None:
        known = ", ".join(settings.efficiency_modes)
        click.echo(f"Unknown mode {name}; choose one of: {known}", err=True)
        sys.exit(1)
    click.echo(current)


if __name__ == "__main__":
    cli()
