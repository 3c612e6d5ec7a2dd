"""Application entry point for the topic monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint

import settings
from adapters.anthropic_backend import build_backend
from adapters.control import MonitorControl
from adapters.json_state_store import JsonStateStore
from adapters.mattermost_notifier import MattermostNotifier
from client import build_client
from core.config import MonitoringConfig, build_monitoring_config
from core.errors import ConfigurationError
from core.monitor import TopicMonitor

NAME = "TOPIC MONITOR"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", ["MATTERMOST_TOKEN", "ANTHROPIC_API_KEY"]):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = settings.resolve_path(file_cfg.get("path", "logs/topic-monitor.log"))
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # httpx logs every request at INFO, which drowns the cycle summaries.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def _load_monitoring_config() -> MonitoringConfig:
    return build_monitoring_config(settings.MONITORING)


def _build_monitor(config: MonitoringConfig, workspace) -> TopicMonitor:
    state_store = JsonStateStore(settings.resolve_path(config.state_file_path))
    backend = build_backend(settings.ANTHROPIC_API_KEY, config.classifier)
    return TopicMonitor(
        workspace=workspace,
        config=config,
        state_store=state_store,
        notifier=MattermostNotifier(workspace),
        backend=backend,
    )


async def _wait_for_shutdown() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers; Ctrl+C still
            # raises KeyboardInterrupt out of asyncio.run.
            pass
    await stop.wait()


async def _serve(config: MonitoringConfig, run_now: bool) -> int:
    logger = logging.getLogger(__name__)
    workspace = build_client()
    try:
        monitor = _build_monitor(config, workspace)
        control = MonitorControl(monitor)

        started = await control.start()
        logger.info(started["message"])
        if not started["success"]:
            return 1

        if run_now:
            logger.info("Running monitoring immediately as requested...")
            logger.info((await control.run_monitoring())["message"])

        logger.info("Topic monitor running. Press Ctrl+C to stop.")
        await _wait_for_shutdown()
        control.stop()
        return 0
    finally:
        await workspace.aclose()


async def _run_once(config: MonitoringConfig) -> int:
    logger = logging.getLogger(__name__)
    workspace = build_client()
    try:
        monitor = _build_monitor(config, workspace)
        try:
            await monitor.prepare()
        except ConfigurationError as exc:
            logger.error("Error starting topic monitor: %s", exc)
            return 1

        response = await MonitorControl(monitor).run_monitoring()
        logger.info("%s", response)
        return 0 if response["success"] and not response.get("failures") else 1
    finally:
        await workspace.aclose()


def _status(config: MonitoringConfig) -> None:
    state_store = JsonStateStore(settings.resolve_path(config.state_file_path))
    print(f"Enabled:   {config.enabled}")
    print(f"Schedule:  {config.schedule}")
    print(f"Channels:  {', '.join(config.channels)}")
    print(f"Topics:    {', '.join(config.topics)}")
    print(f"Backend:   {config.classifier.backend} ({config.classifier.model})")
    print(f"State:     {state_store.path}")
    if not state_store.existed_at_load:
        print("Last run:  never")
        return
    print(f"Last run:  {state_store.last_run.astimezone():%Y-%m-%d %H:%M:%S}")
    for channel_id in state_store.channel_ids():
        print(f"  {channel_id}: {len(state_store.processed_ids(channel_id))} processed")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="topic-monitor")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Start the scheduled monitor")
    run_parser.add_argument(
        "--run-now",
        action="store_true",
        help="Run one monitoring cycle right after startup",
    )
    subparsers.add_parser("once", help="Run one monitoring cycle and exit")
    subparsers.add_parser("status", help="Show the monitoring config and processed ledger")

    args = parser.parse_args(argv)

    _configure_logging()
    logger = logging.getLogger(__name__)

    try:
        config = _load_monitoring_config()
    except ConfigurationError as exc:
        logger.error("Invalid monitoring configuration: %s", exc)
        sys.exit(2)

    if args.command == "status":
        _status(config)
        return

    _print_banner()
    if args.command == "once":
        sys.exit(asyncio.run(_run_once(config)))

    if not config.enabled:
        logger.info("Topic monitoring is disabled in configuration")
        return

    logger.info("Starting topic monitor")
    try:
        sys.exit(asyncio.run(_serve(config, getattr(args, "run_now", False))))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
