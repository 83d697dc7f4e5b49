"""Telegram client factory for bidscope.

Only used when notifications.notification_method is "client". The client is
created unconnected; TelegramClientNotifier.verify() signs it in with the
bot token so it is obvious when the session starts and when it ends.
"""

from __future__ import annotations

import logging
import os

from telethon import TelegramClient

from core.config import NotificationConfig


def build_client(config: NotificationConfig, project_root: str) -> TelegramClient:
    """Create a Telethon client from the notification settings.

    The session name defaults to "bidscope" and the .session file lives in the
    project root so restarts reuse the bot authorization.
    """

    # Fail fast on missing credentials to avoid an ambiguous login error later.
    if not config.api_id or not config.api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    session_path = config.session_name
    if not os.path.isabs(session_path):
        session_path = os.path.join(project_root, session_path)

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_path, config.api_id, config.api_hash)
