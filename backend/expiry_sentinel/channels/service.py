"""Sender registry and recipient addressing."""

import time
from collections.abc import Callable

import httpx
from sqlalchemy.orm import Session

from ..catalog.models import Recipient
from ..integrations.service import ChannelConfigs
from .base import ChannelSender, make_http_client
from .email import EmailSender
from .in_app import InAppSender
from .telegram import TelegramSender
from .whatsapp import WhatsAppSender

CHANNELS = ("telegram", "whatsapp", "email", "in_app")


def build_senders(
    configs: ChannelConfigs,
    db: Session,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, ChannelSender]:
    """Senders for every configured channel; unconfigured channels are left out."""
    client = client or make_http_client()
    senders: dict[str, ChannelSender] = {}
    if configs.configured("telegram"):
        senders["telegram"] = TelegramSender(configs.telegram_token, client=client, sleep=sleep)
    if configs.configured("whatsapp"):
        senders["whatsapp"] = WhatsAppSender(configs.whatsapp, client=client, sleep=sleep)
    if configs.configured("email"):
        senders["email"] = EmailSender(configs.email, client=client, sleep=sleep)
    senders["in_app"] = InAppSender(db)
    return senders


def recipient_address(channel: str, recipient: Recipient) -> str | None:
    if channel == "telegram":
        return recipient.telegram_id or None
    if channel == "whatsapp":
        return recipient.whatsapp_number or None
    if channel == "email":
        return recipient.email or None
    if channel == "in_app":
        return str(recipient.user_id) if recipient.user_id else None
    return None
