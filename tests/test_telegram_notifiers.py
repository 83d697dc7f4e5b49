from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_notifier import TelegramClientNotifier, resolve_chat
from core.errors import SendError


def _bot(handler) -> TelegramBotNotifier:
    return TelegramBotNotifier("123:ABC", "-100555", timeout_seconds=1.0, transport=httpx.MockTransport(handler))


def test_bot_send_posts_html_message() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

    asyncio.run(_bot(handler).send("<b>hi</b>"))

    assert captured["path"] == "/bot123:ABC/sendMessage"
    assert captured["body"] == {
        "chat_id": "-100555",
        "text": "<b>hi</b>",
        "parse_mode": "HTML",
        "disable_web_page_preview": True,
    }


def test_bot_send_rejection_raises_send_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: can't parse entities"})

    with pytest.raises(SendError, match="can't parse entities"):
        asyncio.run(_bot(handler).send("<b>broken"))


def test_bot_timeout_raises_send_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(SendError):
        asyncio.run(_bot(handler).send("hello"))


def test_bot_verify_calls_get_me() -> None:
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"ok": True, "result": {"username": "bidscope_bot"}})

    asyncio.run(_bot(handler).verify())
    assert paths == ["/bot123:ABC/getMe"]


class DummyClient:
    def __init__(self, error: "Exception | None" = None) -> None:
        self.error = error
        self.sent = []
        self.disconnected = False

    async def send_message(self, entity, message, parse_mode=None, link_preview=True):
        if self.error:
            raise self.error
        self.sent.append((entity, message, parse_mode, link_preview))

    async def disconnect(self) -> None:
        self.disconnected = True


def test_resolve_chat() -> None:
    assert resolve_chat("-1001234") == -1001234
    assert resolve_chat("@alerts") == "@alerts"


def test_client_send_uses_html_without_preview() -> None:
    client = DummyClient()
    notifier = TelegramClientNotifier(client, bot_token="t", chat_id="-100777", timeout_seconds=1.0)

    asyncio.run(notifier.send("<b>x</b>"))
    asyncio.run(notifier.close())

    assert client.sent == [(-100777, "<b>x</b>", "html", False)]
    assert client.disconnected


def test_client_send_connection_error_raises_send_error() -> None:
    notifier = TelegramClientNotifier(DummyClient(ConnectionError("reset")), bot_token="t", chat_id="@alerts")
    with pytest.raises(SendError):
        asyncio.run(notifier.send("x"))


def test_bot_slow_response_is_bounded_by_timeout() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"ok": True})

    notifier = TelegramBotNotifier("123:ABC", "1", timeout_seconds=0.05, transport=httpx.MockTransport(handler))
    with pytest.raises(SendError, match="exceeded"):
        asyncio.run(notifier.send("hello"))
