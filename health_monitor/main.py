from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal

import httpx
import structlog
from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from health_monitor.config import ConfigurationError, MonitorConfig, load_config
from health_monitor.health_check import Success
from health_monitor.monitor import HealthMonitor

logger = structlog.get_logger("health-monitor")


def configure_logging(level: str = "INFO") -> None:
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # The webhook URL is a secret; keep request URLs out of the logs.
    logging.basicConfig(level=numeric_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _log_startup_banner(config: MonitorConfig) -> None:
    logger.info(
        "Health monitor starting",
        service=config.service_name,
        environment=config.environment_label,
        monitoring=config.health_check_url,
        deployment_url=config.deployment_url,
        check_interval_seconds=config.check_interval_seconds,
        recheck_delay_seconds=config.recheck_delay_seconds,
    )


def _install_signal_handlers(monitor: HealthMonitor) -> None:
    loop = asyncio.get_running_loop()
    for sig, reason in ((signal.SIGINT, "interrupted"), (signal.SIGTERM, "terminated")):
        try:
            loop.add_signal_handler(sig, monitor.stop, reason)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on some platforms (e.g. Windows).
            logger.debug("Signal handler not installed", signal=sig.name)


async def run_monitor(config: MonitorConfig, *, once: bool = False) -> int:
    _log_startup_banner(config)
    async with httpx.AsyncClient() as client:
        monitor = HealthMonitor(config, client)
        _install_signal_handlers(monitor)
        result = await monitor.run(once=once)

    if once:
        return 0 if isinstance(result, Success) else 1
    logger.info("Health monitor stopped")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Health endpoint monitor with automatic redeployment")
    parser.add_argument("--once", action="store_true", help="Run one check cycle and exit")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (INFO, WARNING, ...); defaults to LOG_LEVEL or INFO",
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file (default: ./.env if present)")
    parser.add_argument("--config", default=None, help="Optional YAML config file (overridden by env vars)")
    args = parser.parse_args(argv)

    load_dotenv(args.env_file or find_dotenv(usecwd=True), override=False)
    configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e), missing=e.missing)
        for name in e.missing:
            logger.error("Missing required environment variable", variable=name)
        return 1
    except ValidationError as e:
        # Field values are left out; the webhook URL carries a secret.
        for err in e.errors():
            field = ".".join(str(p) for p in err["loc"])
            logger.error("Invalid configuration", field=field, error=err["msg"])
        return 1

    return asyncio.run(run_monitor(config, once=bool(args.once)))


if __name__ == "__main__":
    raise SystemExit(main())
