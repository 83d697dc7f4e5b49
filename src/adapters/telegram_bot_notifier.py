"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so alerts can be posted to a channel the bot
administers. Every call is bounded by the configured timeout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from core.errors import SendError

LOGGER = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout_seconds
        self._transport = transport

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"{API_BASE}/bot{self._bot_token}/{method}"

    async def _post(self, method: str, payload: Dict[str, Any]) -> httpx.Response:
        # httpx timeouts apply per phase; the caller bounds the whole request.
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            return await client.post(self._endpoint(method), json=payload)

    async def _call(self, method: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await asyncio.wait_for(self._post(method, payload or {}), self._timeout)
        except httpx.HTTPError as exc:
            raise SendError(f"Bot API {method} request failed: {exc.__class__.__name__}") from exc
        except asyncio.TimeoutError as exc:
            raise SendError(f"Bot API {method} request exceeded {self._timeout}s") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if response.is_error or not body.get("ok", False):
            description = body.get("description") or response.text
            raise SendError(f"Bot API error {response.status_code}: {description}")
        return body

    async def verify(self) -> None:
        """Check the token with getMe so a bad setup fails at startup."""

        body = await self._call("getMe")
        LOGGER.info("Bot API ready as @%s", body.get("result", {}).get("username"))

    async def send(self, text: str) -> None:
        """Send one HTML message to the configured chat."""

        await self._call(
            "sendMessage",
            {
                "chat_id": self._chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )

    async def close(self) -> None:
        # Each call opens its own short-lived HTTP client.
        return None
