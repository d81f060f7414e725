"""Main entry point for ICMPmonitor."""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, SysLogHandler
from pathlib import Path
from typing import List, Optional

from icmpmonitor.config import ConfigError, Settings, load_hosts, settings
from icmpmonitor.monitor.registry import MonitorInitError, NoHostsError
from icmpmonitor.version import BANNER

logger = logging.getLogger(__name__)

# Process exit codes
EXIT_OK = 0
EXIT_NO_HOSTS = 1
EXIT_INIT_ERROR = 2
EXIT_BAD_CONFIG = 3
EXIT_BAD_OPTION = 4


def configure_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Logs always go to stdout; a rotating log file and syslog are optional.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file is not None:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            settings.log_file,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding="utf-8",
        ))

    if settings.log_format == "json":
        from pythonjsonlogger import jsonlogger

        class CustomJsonFormatter(jsonlogger.JsonFormatter):
            """JSON formatter with service fields."""

            def add_fields(self, log_record, record, message_dict):
                super().add_fields(log_record, record, message_dict)
                log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
                log_record["level"] = record.levelname
                log_record["logger"] = record.name
                log_record["service"] = "icmpmonitor"

        formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    for handler in handlers:
        handler.setFormatter(formatter)

    if settings.log_syslog:
        syslog_handler = SysLogHandler(address="/dev/log", facility=SysLogHandler.LOG_USER)
        syslog_handler.setFormatter(logging.Formatter("icmpmonitor[%(process)d]: %(message)s"))
        handlers.append(syslog_handler)

    # Configure root logger
    logging.root.handlers = []
    for handler in handlers:
        logging.root.addHandler(handler)
    logging.root.setLevel(log_level)

    # Reduce noise from third-party loggers
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="icmpmonitor",
        description="Monitor hosts with ICMP echo and run commands when they go up or down.",
    )
    parser.add_argument("-f", "--config", type=Path, help="Hosts file (default: icmpmonitor.cfg)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every probe and reply")
    parser.add_argument(
        "-r", "--repeat",
        action="store_true",
        help="Run the down command on every tick while a host stays down",
    )
    parser.add_argument("--web", action="store_true", help="Serve the status API")
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    parser.add_argument("--log-format", choices=["text", "json"], help="Log line format")
    return parser


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    """Let command line flags override environment settings."""
    if args.config is not None:
        settings.config_file = args.config
    if args.verbose:
        settings.verbose = True
    if args.repeat:
        settings.repeat_down_command = True
    if args.web:
        settings.web_enabled = True
    if args.log_level:
        settings.log_level = args.log_level
    if args.log_format:
        settings.log_format = args.log_format
    return settings


def startup_exit_code(error: Optional[Exception]) -> int:
    """Map a fatal monitor startup error to the process exit code."""
    if isinstance(error, NoHostsError):
        logger.error("%s, exiting.", error)
        return EXIT_NO_HOSTS
    logger.error("%s. Exiting.", error or "Monitor startup failed")
    return EXIT_INIT_ERROR


def run_web(settings: Settings) -> int:
    """Serve the status API; the app lifespan runs the monitor."""
    import uvicorn

    from icmpmonitor.web.app import app

    try:
        app.state.hosts = load_hosts(settings.config_file)
    except ConfigError as e:
        logger.error("%s. Exiting.", e)
        return EXIT_BAD_CONFIG
    app.state.startup_error = None

    server = uvicorn.Server(uvicorn.Config(
        app,
        host=settings.web_host,
        port=settings.web_port,
        log_level=settings.log_level.lower(),
    ))
    server.run()

    if not server.started:
        return startup_exit_code(app.state.startup_error)
    return EXIT_OK


def run_monitor(settings: Settings) -> int:
    """Run the monitor until interrupted."""
    from icmpmonitor.monitor.service import IcmpMonitor

    try:
        hosts = load_hosts(settings.config_file)
    except ConfigError as e:
        logger.error("%s. Exiting.", e)
        return EXIT_BAD_CONFIG
    logger.debug("%d host(s) found in %s", len(hosts), settings.config_file)

    monitor = IcmpMonitor(settings, hosts)
    try:
        asyncio.run(monitor.run_forever())
    except (NoHostsError, MonitorInitError) as e:
        return startup_exit_code(e)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Run the application."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return EXIT_OK if e.code == 0 else EXIT_BAD_OPTION

    apply_args(settings, args)
    configure_logging(settings)

    logger.info("%s is starting.", BANNER)
    logger.info("Hosts file: %s", settings.config_file)
    logger.info("Repeat down command: %s", settings.repeat_down_command)
    logger.info("Log format: %s", settings.log_format)

    if settings.web_enabled:
        return run_web(settings)
    return run_monitor(settings)


if __name__ == "__main__":
    sys.exit(main())
