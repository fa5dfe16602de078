"""Channel configuration loaded from the integrations store.

Secret values inside an integration's config blob may be stored encrypted
with Fernet (AES-128-CBC) using a key derived from SECRET_KEY.
"""

import base64
import hashlib
import logging
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from ..config import settings
from .models import Integration

logger = logging.getLogger(__name__)

_DEFAULT_FROM_ADDRESS = "noreply@hr-reminder.com"
_DEFAULT_FROM_NAME = "HR Reminder"


# ── Credential encryption ─────────────────────────────────────────────


def _derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet key from the app SECRET_KEY using SHA-256."""
    digest = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(digest)


def encrypt_value(plaintext: str) -> str:
    """Encrypt a string value using the app's SECRET_KEY.

    Operator helper for preparing integration configs: store the returned
    ``gAAAAA...`` token in an ``integrations.config`` secret field and
    :func:`load_channel_configs` decrypts it on read. Nothing in the request
    path writes secrets.
    """
    f = Fernet(_derive_fernet_key(settings.secret_key))
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    """Decrypt a string value using the app's SECRET_KEY."""
    f = Fernet(_derive_fernet_key(settings.secret_key))
    return f.decrypt(ciphertext.encode()).decode()


def _secret(value) -> str:
    """Return a config secret in clear text, decrypting Fernet tokens (they start with 'gAAAAA')."""
    raw = str(value or "").strip()
    if raw.startswith("gAAAAA"):
        try:
            return decrypt_value(raw)
        except InvalidToken:
            logger.error("Integration secret could not be decrypted, check SECRET_KEY")
            return ""
    return raw


# ── Channel configs ───────────────────────────────────────────────────


@dataclass(frozen=True)
class WhatsAppConfig:
    api_base_url: str
    api_key: str
    instance_name: str


@dataclass(frozen=True)
class EmailConfig:
    api_key: str
    from_address: str
    from_name: str


@dataclass(frozen=True)
class ChannelConfigs:
    telegram_token: str | None = None
    whatsapp: WhatsAppConfig | None = None
    email: EmailConfig | None = None
    email_enabled: bool = False

    def configured(self, channel: str) -> bool:
        if channel == "telegram":
            return bool(self.telegram_token)
        if channel == "whatsapp":
            return self.whatsapp is not None
        if channel == "email":
            # Email fails closed: attempted (and reported) even without an API key.
            return self.email_enabled
        return channel == "in_app"


def load_channel_configs(db: Session) -> ChannelConfigs:
    """Read Telegram/WhatsApp/Email settings from env and the integrations table."""
    rows = {
        i.key: i
        for i in db.query(Integration).filter(Integration.key.in_(["telegram", "whatsapp", "email"])).all()
    }

    telegram_token = settings.telegram_bot_token or None
    telegram_row = rows.get("telegram")
    if telegram_row is not None and not telegram_row.is_active:
        telegram_token = None

    whatsapp = None
    wa_row = rows.get("whatsapp")
    if wa_row is not None and wa_row.is_active:
        cfg = wa_row.config or {}
        api_key = _secret(cfg.get("apikey") or cfg.get("access_token"))
        base_url = str(cfg.get("api_base_url") or "").strip().rstrip("/")
        instance = str(cfg.get("instance_name") or "").strip()
        if base_url and api_key and instance:
            whatsapp = WhatsAppConfig(api_base_url=base_url, api_key=api_key, instance_name=instance)
        else:
            logger.warning("WhatsApp integration active but incomplete (api_base_url/apikey/instance_name)")

    email_row = rows.get("email")
    email_enabled = email_row is not None and email_row.is_active
    email = None
    if email_enabled and settings.resend_api_key:
        cfg = email_row.config or {}
        email = EmailConfig(
            api_key=settings.resend_api_key,
            from_address=str(cfg.get("from_address") or _DEFAULT_FROM_ADDRESS),
            from_name=str(cfg.get("from_name") or _DEFAULT_FROM_NAME),
        )

    return ChannelConfigs(telegram_token=telegram_token, whatsapp=whatsapp, email=email, email_enabled=email_enabled)
