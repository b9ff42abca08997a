"""
Example charging session with plugins enabled.

This demonstrates how to use the plugin framework with:
1. PrometheusMetricsPlugin - exposes session metrics on /metrics
2. A custom plugin that stops the session once the battery reaches its target

Point CHARGESIM_COLLECTOR_URL at a running collector before starting.
"""

import asyncio
import logging
import os

from prometheus_client import start_http_server

from chargesim.collector import CollectorClient
from chargesim.config import SimulatorConfig
from chargesim.plugins import PluginContext, PluginHook, PrometheusMetricsPlugin, SessionPlugin
from chargesim.session import ChargingSessionMachine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


class StopAtTargetPlugin(SessionPlugin):
    """Signals the example loop once an accepted update reports the target SOC."""

    def __init__(self, done: asyncio.Event):
        super().__init__()
        self.done = done

    def hooks(self) -> dict[PluginHook, str]:
        return {
            PluginHook.AFTER_CHARGE_UPDATE: "check_target",
            PluginHook.ON_SESSION_ERROR: "on_error",
        }

    async def check_target(self, context: PluginContext):
        soc_percent = context.event_data["record"]["soc"] * 100
        if soc_percent >= context.machine.config.target_soc:
            self.logger.info(f"Target SOC reached on {context.machine.id}")
            self.done.set()

    async def on_error(self, context: PluginContext):
        self.logger.warning(f"Session failed: {context.event_data.get('error')}")
        self.done.set()


async def main():
    """Run one session until the battery is full."""
    config = SimulatorConfig.from_env().validate()
    metrics_port = int(os.getenv("METRICS_PORT", "9090"))

    logger.info(f"Collector: {config.collector_url}")
    logger.info(f"Metrics endpoint: http://0.0.0.0:{metrics_port}/metrics")
    start_http_server(metrics_port)

    done = asyncio.Event()
    collector = CollectorClient(config.collector_url, timeout=config.request_timeout)
    machine = ChargingSessionMachine(
        config,
        collector,
        plugins=[PrometheusMetricsPlugin(), StopAtTargetPlugin(done)],
    )

    await machine.initialize()
    try:
        if await machine.start():
            await done.wait()
    finally:
        await machine.close()
        await collector.close()

    snapshot = machine.snapshot()
    logger.info(f"Final status: {snapshot.status.value}, last error: {snapshot.last_error}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nSession stopped")
