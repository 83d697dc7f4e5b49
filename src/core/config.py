"""Core configuration dataclasses.

We keep config parsing outside the core (see settings.py), but these
dataclasses define the shape the core and adapters expect. One AppConfig is
built at startup and passed explicitly to every component.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

FEED_URL = "https://www.freelancer.com/api/projects/0.1/projects/active/"
SITE_URL = "https://freelancer.com"

DEFAULT_SKILL_IDS: Tuple[int, ...] = (
    3, 9, 13, 30, 31, 36, 51, 72, 95, 116, 152, 158, 199, 215, 292, 301, 305,
    323, 335, 355, 420, 454, 500, 564, 598, 619, 728, 741, 759, 775, 901, 913,
    962, 1002, 1031, 1040, 1041, 1051, 1075, 1087, 1088, 1092, 1093, 1097,
    1112, 1239, 1240, 1254, 1277, 1623, 1679, 1684, 1685, 1709, 1827,
)

MAX_MESSAGE_LENGTH = 4096


@dataclass(frozen=True)
class FeedConfig:
    """Server-side filters and transport settings for the listing feed."""

    url: str = FEED_URL
    skill_ids: Tuple[int, ...] = DEFAULT_SKILL_IDS
    languages: Tuple[str, ...] = ("en", "hi")
    limit: int = 300
    min_avg_price: int = 500
    timeout_seconds: float = 20.0


@dataclass(frozen=True)
class FilterConfig:
    """Business rules applied to every fetched candidate."""

    max_skills: int = 5
    excluded_currency: str = "INR"


@dataclass(frozen=True)
class NotificationConfig:
    """Delivery settings consumed by notifier adapters and the formatter."""

    method: str
    chat_id: str
    bot_token: str
    api_id: Optional[int] = None
    api_hash: Optional[str] = None
    session_name: str = "bidscope"
    max_length: int = MAX_MESSAGE_LENGTH
    site_url: str = SITE_URL
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class ScheduleConfig:
    """Fixed delays of the dispatch loop, in seconds."""

    message_delay_seconds: float = 2.0
    cycle_delay_seconds: float = 60.0


@dataclass(frozen=True)
class StorageConfig:
    db_path: str
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class LoggingConfig:
    """Console/file logging with optional secret redaction."""

    enabled: bool = False
    level: str = "INFO"
    console: bool = True
    file_enabled: bool = False
    file_path: str = "logs/bidscope.log"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5
    redact_enabled: bool = False
    redact_patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AppConfig:
    project_root: str
    feed: FeedConfig
    filter: FilterConfig
    notifications: NotificationConfig
    schedule: ScheduleConfig
    storage: StorageConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
