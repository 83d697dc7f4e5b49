"""Configuration loading for bidscope.

Non-secret settings (feed filters, delays, storage, logging) live in a single
JSON file for quick edits without touching Python. Secrets come from the
environment, optionally populated from .env and .env.local.

load_settings() builds one frozen AppConfig at startup; nothing here keeps
module-level mutable state.
"""

from __future__ import annotations

import json
import os
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from core.config import (
    AppConfig,
    FeedConfig,
    FilterConfig,
    LoggingConfig,
    NotificationConfig,
    ScheduleConfig,
    StorageConfig,
)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Default config location; BIDSCOPE_CONFIG can point somewhere else.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

NOTIFICATION_METHODS = {"bot", "client"}


def _load_json_config(path: str) -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def load_env_files(root: str) -> None:
    """Populate os.environ from .env files without clobbering real variables.

    Precedence: process environment > .env.local > .env
    """

    load_dotenv(os.path.join(root, ".env.local"), override=False)
    load_dotenv(os.path.join(root, ".env"), override=False)


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name) or {}
    if not isinstance(value, dict):
        raise RuntimeError(f"config section '{name}' must be an object")
    return value


def _build_feed(raw: Mapping[str, Any]) -> FeedConfig:
    defaults = FeedConfig()
    return FeedConfig(
        url=raw.get("url", defaults.url),
        skill_ids=tuple(int(skill) for skill in raw.get("skill_ids", defaults.skill_ids)),
        languages=tuple(raw.get("languages", defaults.languages)),
        limit=int(raw.get("limit", defaults.limit)),
        min_avg_price=int(raw.get("min_avg_price", defaults.min_avg_price)),
        timeout_seconds=float(raw.get("timeout_seconds", defaults.timeout_seconds)),
    )


def _build_filter(raw: Mapping[str, Any], env: Mapping[str, str]) -> FilterConfig:
    defaults = FilterConfig()
    max_skills = env.get("SKILLS_MAX") or raw.get("max_skills", defaults.max_skills)
    try:
        max_skills = int(max_skills)
    except (TypeError, ValueError) as exc:
        raise RuntimeError(f"SKILLS_MAX / filter.max_skills must be an integer, got {max_skills!r}") from exc
    return FilterConfig(
        max_skills=max_skills,
        excluded_currency=str(raw.get("excluded_currency", defaults.excluded_currency)).upper(),
    )


def _build_notifications(raw: Mapping[str, Any], env: Mapping[str, str]) -> NotificationConfig:
    method = raw.get("notification_method", "bot")
    if method not in NOTIFICATION_METHODS:
        raise RuntimeError("notifications.notification_method must be 'bot' or 'client'")

    bot_token = env.get("BOT_TOKEN")
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is required")

    chat_id = env.get("CHAT_ID") or raw.get("chat_id")
    if not chat_id:
        raise RuntimeError("CHAT_ID or notifications.chat_id is required")

    api_id: Optional[int] = None
    api_hash = env.get("API_HASH")
    if env.get("API_ID"):
        try:
            api_id = int(env["API_ID"])
        except ValueError as exc:
            raise RuntimeError("API_ID must be an integer") from exc
    if method == "client" and (api_id is None or not api_hash):
        raise RuntimeError("API_ID and API_HASH are required when notification_method=client")

    defaults = NotificationConfig(method=method, chat_id=str(chat_id), bot_token=bot_token)
    return NotificationConfig(
        method=method,
        chat_id=str(chat_id),
        bot_token=bot_token,
        api_id=api_id,
        api_hash=api_hash,
        session_name=env.get("SESSION_NAME", defaults.session_name),
        max_length=int(raw.get("max_length", defaults.max_length)),
        site_url=str(raw.get("site_url", defaults.site_url)).rstrip("/"),
        timeout_seconds=float(raw.get("timeout_seconds", defaults.timeout_seconds)),
    )


def _build_logging(raw: Mapping[str, Any]) -> LoggingConfig:
    file_cfg = raw.get("file", {}) or {}
    redact_cfg = raw.get("redact", {}) or {}
    defaults = LoggingConfig()
    return LoggingConfig(
        enabled=bool(raw.get("enabled", defaults.enabled)),
        level=str(raw.get("level", defaults.level)).upper(),
        console=bool(raw.get("console", defaults.console)),
        file_enabled=bool(file_cfg.get("enabled", defaults.file_enabled)),
        file_path=file_cfg.get("path", defaults.file_path),
        max_bytes=int(file_cfg.get("max_bytes", defaults.max_bytes)),
        backup_count=int(file_cfg.get("backup_count", defaults.backup_count)),
        redact_enabled=bool(redact_cfg.get("enabled", defaults.redact_enabled)),
        redact_patterns=tuple(redact_cfg.get("patterns", defaults.redact_patterns)),
    )


def load_settings(
    config_path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    project_root: str = PROJECT_ROOT,
) -> AppConfig:
    """Build the immutable AppConfig from config.json plus environment secrets.

    ``env`` defaults to os.environ after loading the .env files; tests pass a
    plain dict instead.
    """

    if env is None:
        load_env_files(project_root)
        env = os.environ
    path = config_path or env.get("BIDSCOPE_CONFIG") or CONFIG_PATH
    raw = _load_json_config(path)

    storage_raw = _section(raw, "storage")
    db_path = storage_raw.get("db_path", "bidscope.db")
    if db_path != ":memory:" and not os.path.isabs(db_path):
        db_path = os.path.join(project_root, db_path)

    schedule_raw = _section(raw, "schedule")
    schedule_defaults = ScheduleConfig()

    return AppConfig(
        project_root=project_root,
        feed=_build_feed(_section(raw, "feed")),
        filter=_build_filter(_section(raw, "filter"), env),
        notifications=_build_notifications(_section(raw, "notifications"), env),
        schedule=ScheduleConfig(
            message_delay_seconds=float(
                schedule_raw.get("message_delay_seconds", schedule_defaults.message_delay_seconds)
            ),
            cycle_delay_seconds=float(schedule_raw.get("cycle_delay_seconds", schedule_defaults.cycle_delay_seconds)),
        ),
        storage=StorageConfig(
            db_path=db_path,
            timeout_seconds=float(storage_raw.get("timeout_seconds", StorageConfig(db_path).timeout_seconds)),
        ),
        logging=_build_logging(_section(raw, "logging")),
    )
