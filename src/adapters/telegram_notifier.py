"""Telegram MTProto notification adapter.

Sends alerts through a Telethon client signed in with the bot token, for
deployments that prefer MTProto over the HTTP Bot API.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Union

from telethon import TelegramClient, errors

from core.errors import SendError

LOGGER = logging.getLogger(__name__)


def resolve_chat(chat_id: str) -> Union[int, str]:
    """Numeric ids (including -100 channel ids) become ints; usernames stay strings."""

    if chat_id.lstrip("-").isdigit():
        return int(chat_id)
    return chat_id


class TelegramClientNotifier:
    """Notifier adapter that sends messages with a Telethon client."""

    def __init__(self, client: TelegramClient, bot_token: str, chat_id: str, timeout_seconds: float = 15.0) -> None:
        self._client = client
        self._bot_token = bot_token
        self._chat = resolve_chat(chat_id)
        self._timeout = timeout_seconds

    async def verify(self) -> None:
        """Connect and sign in as the bot; failure aborts startup."""

        try:
            await asyncio.wait_for(self._client.start(bot_token=self._bot_token), self._timeout)
            me = await asyncio.wait_for(self._client.get_me(), self._timeout)
        except (errors.RPCError, OSError, asyncio.TimeoutError) as exc:
            raise SendError(f"Telegram client login failed: {exc.__class__.__name__}: {exc}") from exc
        LOGGER.info("Telegram client ready as @%s", getattr(me, "username", None))

    async def send(self, text: str) -> None:
        """Send one HTML message to the configured chat."""

        try:
            await asyncio.wait_for(
                self._client.send_message(self._chat, text, parse_mode="html", link_preview=False),
                self._timeout,
            )
        except (errors.RPCError, OSError, ValueError, asyncio.TimeoutError) as exc:
            raise SendError(f"Telegram send failed: {exc.__class__.__name__}: {exc}") from exc

    async def close(self) -> None:
        await self._client.disconnect()
