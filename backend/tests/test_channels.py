"""Tests for channel senders, retries and phone normalisation."""

import json
import uuid

import httpx
import pytest

from expiry_sentinel.channels.base import ChannelError, ChannelNotConfigured, TransientChannelError, with_retry
from expiry_sentinel.channels.email import EmailSender, to_html
from expiry_sentinel.channels.in_app import InAppSender
from expiry_sentinel.channels.models import InAppNotification
from expiry_sentinel.channels.service import build_senders, recipient_address
from expiry_sentinel.channels.telegram import TelegramSender
from expiry_sentinel.channels.whatsapp import WhatsAppSender, format_whatsapp_number, normalize_phone
from expiry_sentinel.integrations.service import ChannelConfigs, EmailConfig, WhatsAppConfig


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def _no_sleep(_seconds):
    pass


WA_CONFIG = WhatsAppConfig(api_base_url="https://wa.example.com", api_key="k", instance_name="hr")
EMAIL_CONFIG = EmailConfig(api_key="re_123", from_address="noreply@example.com", from_name="HR")


class TestNormalizePhone:
    def test_saudi_national_number(self):
        assert normalize_phone("0551234567") == "966551234567"

    def test_international_prefix(self):
        assert normalize_phone("00966551234567") == "966551234567"

    def test_plus_and_spaces(self):
        assert normalize_phone("+966 55 123 4567") == "966551234567"

    def test_jid(self):
        assert format_whatsapp_number("055-123-4567") == "966551234567@s.whatsapp.net"

    def test_empty(self):
        assert normalize_phone("") == ""


class TestWithRetry:
    def test_retries_transient_errors_with_backoff(self):
        delays = []
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise TransientChannelError("timeout")
            return "ok"

        assert with_retry(flaky, attempts=3, base_delay=1.0, sleep=delays.append) == "ok"
        assert delays == [1.0, 2.0]

    def test_gives_up_after_attempts(self):
        calls = {"n": 0}

        def always_down():
            calls["n"] += 1
            raise TransientChannelError("503")

        with pytest.raises(TransientChannelError):
            with_retry(always_down, attempts=3, base_delay=0.5, sleep=_no_sleep)
        assert calls["n"] == 3

    def test_permanent_error_not_retried(self):
        calls = {"n": 0}

        def rejected():
            calls["n"] += 1
            raise ChannelError("chat not found")

        with pytest.raises(ChannelError):
            with_retry(rejected, attempts=3, sleep=_no_sleep)
        assert calls["n"] == 1


class TestTelegramSender:
    def test_success(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 42}})

        sender = TelegramSender("TOKEN", client=_client(handler), sleep=_no_sleep)
        assert sender.send("123", "hello") == "42"
        assert seen["url"] == "https://api.telegram.org/botTOKEN/sendMessage"
        assert seen["body"] == {"chat_id": "123", "text": "hello", "parse_mode": "HTML"}

    def test_api_rejection(self):
        sender = TelegramSender(
            "TOKEN",
            client=_client(lambda r: httpx.Response(400, json={"ok": False, "description": "chat not found"})),
            sleep=_no_sleep,
        )
        with pytest.raises(ChannelError, match="chat not found"):
            sender.send("123", "hello")

    def test_server_error_retried_three_times(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(502, text="bad gateway")

        sender = TelegramSender("TOKEN", client=_client(handler), sleep=_no_sleep)
        with pytest.raises(TransientChannelError):
            sender.send("123", "hello")
        assert calls["n"] == 3

    def test_timeout_then_success(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 7}})

        sender = TelegramSender("TOKEN", client=_client(handler), sleep=_no_sleep)
        assert sender.send("123", "hello") == "7"
        assert calls["n"] == 2

    def test_missing_token_not_configured(self):
        with pytest.raises(ChannelNotConfigured):
            TelegramSender("", client=_client(lambda r: httpx.Response(200)), sleep=_no_sleep).send("1", "x")


class TestWhatsAppSender:
    def test_success_with_key(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["apikey"] = request.headers["apikey"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"key": {"id": "WA1"}, "status": "PENDING"})

        sender = WhatsAppSender(WA_CONFIG, client=_client(handler), sleep=_no_sleep)
        assert sender.send("0551234567", "hi") == "WA1"
        assert seen["url"] == "https://wa.example.com/message/sendText/hr"
        assert seen["apikey"] == "k"
        assert seen["body"] == {"number": "966551234567@s.whatsapp.net", "textMessage": {"text": "hi"}}

    def test_pending_status_is_success(self):
        sender = WhatsAppSender(
            WA_CONFIG, client=_client(lambda r: httpx.Response(200, json={"status": "PENDING"})), sleep=_no_sleep
        )
        assert sender.send("0551234567", "hi") == ""

    def test_error_message_surfaces(self):
        sender = WhatsAppSender(
            WA_CONFIG,
            client=_client(lambda r: httpx.Response(400, json={"message": "instance disconnected"})),
            sleep=_no_sleep,
        )
        with pytest.raises(ChannelError, match="instance disconnected"):
            sender.send("0551234567", "hi")

    def test_not_configured(self):
        with pytest.raises(ChannelNotConfigured):
            WhatsAppSender(None, client=_client(lambda r: httpx.Response(200)), sleep=_no_sleep).send("055", "x")


class TestEmailSender:
    def test_success(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "em_1"})

        sender = EmailSender(EMAIL_CONFIG, client=_client(handler), sleep=_no_sleep)
        assert sender.send("a@example.com", "line1\nline2", subject="Reminder") == "em_1"
        assert seen["auth"] == "Bearer re_123"
        assert seen["body"]["to"] == ["a@example.com"]
        assert seen["body"]["from"] == "HR <noreply@example.com>"
        assert seen["body"]["subject"] == "Reminder"
        assert seen["body"]["html"] == "line1<br>line2"

    def test_without_api_key_fails_closed(self):
        sender = EmailSender(None, client=_client(lambda r: httpx.Response(200)), sleep=_no_sleep)
        with pytest.raises(ChannelError, match="Email not configured"):
            sender.send("a@example.com", "x")

    def test_to_html_escapes(self):
        assert to_html("<b>x</b>\ny") == "&lt;b&gt;x&lt;/b&gt;<br>y"


class TestInAppSender:
    def test_creates_notification(self, db_session):
        user_id = uuid.uuid4()
        notification_id = InAppSender(db_session).send(
            str(user_id), "body", title="Title", entity_type="item", notification_type="reminder"
        )
        db_session.commit()
        row = db_session.query(InAppNotification).one()
        assert str(row.id) == notification_id
        assert row.user_id == user_id
        assert row.title == "Title"
        assert row.priority == "normal"

    def test_invalid_user_id(self, db_session):
        with pytest.raises(ChannelError):
            InAppSender(db_session).send("not-a-uuid", "body")


class TestBuildSenders:
    def test_only_configured_channels(self, db_session):
        senders = build_senders(ChannelConfigs(telegram_token="T"), db_session, client=_client(lambda r: None))
        assert set(senders) == {"telegram", "in_app"}

    def test_email_enabled_without_key_is_included(self, db_session):
        senders = build_senders(ChannelConfigs(email_enabled=True), db_session, client=_client(lambda r: None))
        assert "email" in senders

    def test_recipient_address(self):
        class R:
            telegram_id = "1"
            whatsapp_number = ""
            email = "a@b.c"
            user_id = None

        assert recipient_address("telegram", R) == "1"
        assert recipient_address("whatsapp", R) is None
        assert recipient_address("email", R) == "a@b.c"
        assert recipient_address("in_app", R) is None
