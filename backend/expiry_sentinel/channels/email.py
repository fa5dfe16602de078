"""Email sender via the Resend HTTP API."""

import time
from collections.abc import Callable
from html import escape
from typing import Any

import httpx

from ..integrations.service import EmailConfig
from .base import ChannelError, make_http_client, post_json, with_retry

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_SUBJECT = "إشعار من HR Reminder"


def to_html(message: str) -> str:
    """Escape a plain-text message and keep its line breaks."""
    return escape(message).replace("\n", "<br>")


class EmailSender:
    channel = "email"

    def __init__(
        self,
        config: EmailConfig | None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._client = client or make_http_client()
        self._sleep = sleep

    def send(self, address: str, message: str, **context: Any) -> str:
        cfg = self._config
        if cfg is None:
            # Fails closed: reported as a failed attempt, not silently skipped.
            raise ChannelError("Email not configured (no API key)")
        if not address:
            raise ChannelError("Recipient has no email address")

        payload = {
            "from": f"{cfg.from_name} <{cfg.from_address}>",
            "to": [address],
            "subject": context.get("subject") or DEFAULT_SUBJECT,
            "html": context.get("html") or to_html(message),
        }
        headers = {"Authorization": f"Bearer {cfg.api_key}"}
        data = with_retry(lambda: post_json(self._client, RESEND_API_URL, payload, headers), sleep=self._sleep)

        if not data.get("id"):
            raise ChannelError(data.get("message") or "Email API error")
        return str(data["id"])
