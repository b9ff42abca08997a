"""Main entry point for the charging session simulator."""

import sys
from pathlib import Path

# Add src directory to Python path when running directly (not as installed package)
if __package__ is None:
    src_dir = Path(__file__).parent.parent
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))

import argparse
import asyncio
import logging
import os
import random

from prometheus_client import start_http_server

from chargesim.collector import CollectorClient
from chargesim.config import ConfigurationError, SimulatorConfig
from chargesim.logging_utils import JSONFormatter, log_error
from chargesim.models import SessionStatus
from chargesim.plugins import FluentdAuditPlugin, PrometheusMetricsPlugin
from chargesim.session import ChargingSessionMachine
from chargesim.telemetry import GeneratorError


def setup_logging(level: str = "INFO", log_file: str | None = None):
    """Configure JSON logging for the application."""
    json_formatter = JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(json_formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(json_formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = handlers

    # Suppress verbose logging from dependencies
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_fluentd_endpoint(parser: argparse.ArgumentParser, endpoint: str) -> tuple[str, int]:
    """Split host:port, reporting malformed values through the parser."""
    if ":" not in endpoint:
        parser.error("--fluentd-endpoint must be in host:port format (e.g., localhost:24224)")
    host, port_str = endpoint.rsplit(":", 1)
    if not host:
        parser.error("--fluentd-endpoint host cannot be empty")
    try:
        return host, int(port_str)
    except ValueError:
        parser.error(f"Invalid port in --fluentd-endpoint: {endpoint}")


def build_parser(config: SimulatorConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="chargesim - simulated DC fast-charging session reporting to a telemetry collector"
    )
    parser.add_argument(
        "--collector-url",
        default=config.collector_url,
        help=f"Collector base URL (default: {config.collector_url})",
    )
    parser.add_argument(
        "--charger-id",
        default=config.charger_id,
        help=f"Charger identifier used in logs and metrics (default: {config.charger_id})",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=config.interval_seconds,
        help=f"Whole seconds between telemetry samples (default: {config.interval_seconds:g})",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop the session after this many seconds (default: run until Ctrl+C or error)",
    )
    parser.add_argument(
        "--initial-soc",
        type=float,
        default=config.initial_soc,
        help=f"State of charge at session start, percent (default: {config.initial_soc})",
    )
    parser.add_argument(
        "--target-soc",
        type=float,
        default=config.target_soc,
        help=f"State of charge ceiling, percent (default: {config.target_soc})",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible telemetry",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("CHARGESIM_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write JSON logs to this file",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for Prometheus metrics HTTP server (default: disabled)",
    )
    parser.add_argument(
        "--fluentd-endpoint",
        default=None,
        help="Fluentd endpoint in host:port format (e.g., localhost:24224). If provided, enables Fluentd audit logging.",
    )
    parser.add_argument(
        "--fluentd-tag",
        default="chargesim",
        help="Tag prefix for Fluentd events (default: chargesim)",
    )
    return parser


async def run_session(machine: ChargingSessionMachine, duration: float | None) -> SessionStatus:
    """
    Run one session until the duration elapses or the machine leaves running.

    Returns:
        The status the session ended in (idle after a clean stop, error otherwise)
    """
    logger = logging.getLogger(__name__)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration if duration is not None else None

    await machine.start()
    while machine.status == SessionStatus.RUNNING:
        if deadline is not None and loop.time() >= deadline:
            break
        snapshot = machine.snapshot()
        logger.info(
            f"SOC {snapshot.soc:.0f}% | {snapshot.power_kw:.0f} kW | "
            f"{snapshot.energy_dispensed_kwh:.1f} kWh | ${snapshot.estimated_cost:.2f} | "
            f"{snapshot.elapsed_display}",
            extra={"event_type": "session_status", "event_data": snapshot.to_dict()},
        )
        await asyncio.sleep(machine.config.interval_seconds)

    final_status = machine.status
    if final_status == SessionStatus.RUNNING:
        await machine.stop()
        final_status = machine.status
    return final_status


async def main() -> int:
    """Main application entry point."""
    base_config = SimulatorConfig.from_env()
    parser = build_parser(base_config)
    args = parser.parse_args()

    fluentd_host = fluentd_port = None
    if args.fluentd_endpoint:
        fluentd_host, fluentd_port = parse_fluentd_endpoint(parser, args.fluentd_endpoint)

    setup_logging(args.log_level, args.log_file)
    logger = logging.getLogger(__name__)

    base_config.collector_url = args.collector_url
    base_config.charger_id = args.charger_id
    base_config.interval_seconds = args.interval
    base_config.initial_soc = args.initial_soc
    base_config.target_soc = args.target_soc
    try:
        config = base_config.validate()
    except ConfigurationError as e:
        parser.error(str(e))

    logger.info(
        "Simulator starting",
        extra={
            "event_type": "system_startup",
            "event_data": {
                "collector_url": config.collector_url,
                "charger_id": config.charger_id,
                "interval_seconds": config.interval_seconds,
                "metrics_endpoint": f"http://0.0.0.0:{args.metrics_port}/metrics"
                if args.metrics_port
                else None,
                "fluentd_enabled": args.fluentd_endpoint is not None,
            },
        },
    )

    plugins = []
    if args.metrics_port:
        start_http_server(args.metrics_port)
        plugins.append(PrometheusMetricsPlugin())
    if args.fluentd_endpoint:
        plugins.append(
            FluentdAuditPlugin(
                tag_prefix=args.fluentd_tag,
                host=fluentd_host,
                port=fluentd_port,
                timeout=3.0,
            )
        )

    collector = CollectorClient(config.collector_url, timeout=config.request_timeout)
    rng = random.Random(args.seed) if args.seed is not None else None

    try:
        machine = ChargingSessionMachine(config, collector, plugins=plugins, rng=rng)
    except GeneratorError as e:
        await collector.close()
        parser.error(str(e))

    await machine.initialize()
    final_status = SessionStatus.ERROR
    try:
        final_status = await run_session(machine, args.duration)
    except asyncio.CancelledError:
        logger.info(
            "System shutting down",
            extra={"event_type": "system_shutdown", "event_data": {"reason": "SIGINT"}},
        )
        final_status = SessionStatus.IDLE
    except Exception as e:
        log_error(logger, "simulator_error", f"Simulator error: {e}", exc_info=e)
        raise
    finally:
        await machine.close()
        await collector.close()

    if final_status == SessionStatus.ERROR:
        logger.error(f"Session ended in error: {machine.session.last_error}")
        return 1
    return 0


def run():
    """Entry point for console script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutdown complete")
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
