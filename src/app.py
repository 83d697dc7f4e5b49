"""Application entry point for the bidscope watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from functools import partial
from logging.handlers import RotatingFileHandler
from typing import Iterable, Mapping, Optional

from art import tprint

import settings
from adapters.freelancer_feed import FreelancerFeedClient
from adapters.notification_formatting import render_notification
from adapters.sqlite_storage import SQLiteDedupeStore
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_notifier import TelegramClientNotifier
from client import build_client
from core.config import AppConfig, LoggingConfig
from core.dispatcher import DispatchLoop
from core.errors import PersistenceError, SendError
from core.ports import NotifierPort
from core.scheduler import AsyncioScheduler

NAME = "BIDSCOPE"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


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


def _collect_redaction_values(config: LoggingConfig, env: Mapping[str, str] = os.environ) -> list[str]:
    if not config.redact_enabled:
        return []
    values = [env.get(name) for name in config.redact_patterns]
    # Longest first so a secret containing another is masked whole.
    return sorted({value for value in values if value}, key=len, reverse=True)


def _configure_logging(config: LoggingConfig, project_root: str) -> None:
    if not config.enabled:
        return

    level = getattr(logging, config.level, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if config.file_enabled:
        path = config.file_path
        if not os.path.isabs(path):
            path = os.path.join(project_root, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _build_notifier(config: AppConfig) -> NotifierPort:
    """Select the delivery adapter so the loop stays independent of transport details."""

    notifications = config.notifications
    if notifications.method == "client":
        client = build_client(notifications, config.project_root)
        return TelegramClientNotifier(
            client,
            bot_token=notifications.bot_token,
            chat_id=notifications.chat_id,
            timeout_seconds=notifications.timeout_seconds,
        )
    return TelegramBotNotifier(
        bot_token=notifications.bot_token,
        chat_id=notifications.chat_id,
        timeout_seconds=notifications.timeout_seconds,
    )


def _open_store(config: AppConfig) -> SQLiteDedupeStore:
    store = SQLiteDedupeStore(config.storage.db_path, timeout_seconds=config.storage.timeout_seconds)
    try:
        store.init_db()
        notified = store.count_notified()
    except PersistenceError:
        LOGGER.critical("Dedupe store unavailable at %s", config.storage.db_path, exc_info=True)
        raise SystemExit(1)
    LOGGER.info("Dedupe store ready at %s (%s projects notified so far)", config.storage.db_path, notified)
    return store


async def _serve(config: AppConfig, max_cycles: Optional[int] = None) -> None:
    store = _open_store(config)

    # The Telethon client must be created inside the running loop.
    notifier = _build_notifier(config)
    try:
        await notifier.verify()
    except SendError:
        LOGGER.critical("Messaging client failed to initialise", exc_info=True)
        await notifier.close()
        raise SystemExit(1)
    LOGGER.info("Selected notification method - %s", config.notifications.method)

    loop = DispatchLoop(
        feed=FreelancerFeedClient(config.feed),
        store=store,
        notifier=notifier,
        formatter=partial(
            render_notification,
            max_length=config.notifications.max_length,
            site_url=config.notifications.site_url,
        ),
        rules=config.filter,
        schedule=config.schedule,
        scheduler=AsyncioScheduler(),
    )
    LOGGER.info(
        "Watching %s skills (max %s per project, excluding %s); cycle delay %ss",
        len(config.feed.skill_ids),
        config.filter.max_skills,
        config.filter.excluded_currency,
        config.schedule.cycle_delay_seconds,
    )
    try:
        await loop.run_forever(max_cycles=max_cycles)
    finally:
        await notifier.close()


def _run() -> None:
    _print_banner()
    try:
        config = settings.load_settings()
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        raise SystemExit(f"bidscope: invalid configuration: {exc}")

    _configure_logging(config.logging, config.project_root)
    LOGGER.info("Starting bidscope")
    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        LOGGER.info("Stopped by user")


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="bidscope")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Start the watcher")

    parser.parse_args(list(argv) if argv is not None else None)
    _run()


if __name__ == "__main__":
    main()
