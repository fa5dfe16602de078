"""WhatsApp sender for an Evolution-style per-instance HTTP API."""

import re
import time
from collections.abc import Callable
from typing import Any

import httpx

from ..integrations.service import WhatsAppConfig
from .base import ChannelError, ChannelNotConfigured, make_http_client, post_json, with_retry

_NON_DIGITS = re.compile(r"\D")

JID_SUFFIX = "@s.whatsapp.net"


def normalize_phone(phone: str) -> str:
    """Digits-only international number; a national ``05...`` becomes ``9665...``."""
    digits = _NON_DIGITS.sub("", phone or "")
    if digits.startswith("05"):
        return "966" + digits[1:]
    if digits.startswith("00"):
        return digits[2:]
    return digits


def format_whatsapp_number(phone: str) -> str:
    return normalize_phone(phone) + JID_SUFFIX


class WhatsAppSender:
    channel = "whatsapp"

    def __init__(
        self,
        config: WhatsAppConfig | None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._client = client or make_http_client()
        self._sleep = sleep

    def send(self, address: str, message: str, **context: Any) -> str:
        cfg = self._config
        if cfg is None:
            raise ChannelNotConfigured("WhatsApp integration not configured")
        if not normalize_phone(address):
            raise ChannelNotConfigured("Recipient has no usable WhatsApp number")

        url = f"{cfg.api_base_url}/message/sendText/{cfg.instance_name}"
        payload = {"number": format_whatsapp_number(address), "textMessage": {"text": message}}
        headers = {"apikey": cfg.api_key}
        data = with_retry(lambda: post_json(self._client, url, payload, headers), sleep=self._sleep)

        key = data.get("key")
        if key or data.get("messageId") or data.get("status") == "PENDING":
            key_id = key.get("id") if isinstance(key, dict) else None
            return str(key_id or data.get("messageId") or "")
        raise ChannelError(data.get("message") or "WhatsApp API error")
