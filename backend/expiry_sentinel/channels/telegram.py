"""Telegram Bot API sender."""

import time
from collections.abc import Callable
from typing import Any

import httpx

from .base import ChannelError, ChannelNotConfigured, make_http_client, post_json, with_retry

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramSender:
    channel = "telegram"

    def __init__(
        self,
        bot_token: str | None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._token = bot_token
        self._client = client or make_http_client()
        self._sleep = sleep

    def send(self, address: str, message: str, **context: Any) -> str:
        if not self._token:
            raise ChannelNotConfigured("Telegram bot token not configured")
        if not address:
            raise ChannelNotConfigured("Recipient has no telegram_id")

        url = f"{TELEGRAM_API_URL}/bot{self._token}/sendMessage"
        payload = {"chat_id": address, "text": message, "parse_mode": "HTML"}
        data = with_retry(lambda: post_json(self._client, url, payload), sleep=self._sleep)

        if not data.get("ok"):
            raise ChannelError(data.get("description") or "Telegram API error")
        message_id = (data.get("result") or {}).get("message_id")
        return str(message_id) if message_id is not None else ""
