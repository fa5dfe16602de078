"""Tests for settings helpers."""

from expiry_sentinel.config import Settings


class TestSettings:
    def test_postgres_scheme_normalised(self):
        s = Settings(database_url="postgres://u:p@host:5432/db")
        assert s.effective_database_url == "postgresql://u:p@host:5432/db"

    def test_postgresql_scheme_untouched(self):
        s = Settings(database_url="postgresql://u:p@host/db")
        assert s.effective_database_url == "postgresql://u:p@host/db"

    def test_reminder_channel_list(self):
        s = Settings(reminder_channels=" telegram, whatsapp ,,email")
        assert s.reminder_channel_list == ["telegram", "whatsapp", "email"]

    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.timezone == "Asia/Riyadh"
        assert s.daily_send_limit == 5
        assert s.provider_max_attempts == 3
        assert s.provider_timeout_seconds == 10.0
