"""Tests for the run lease cache service."""

from unittest.mock import MagicMock, patch

import redis

from expiry_sentinel.integrations.cache import NullCacheService, RedisCacheService, create_cache_service


class TestNullCacheService:
    def test_always_grants_lease(self):
        cache = NullCacheService()
        assert cache.acquire_lock("lock:x", 60) is not None
        assert cache.acquire_lock("lock:x", 60) is not None

    def test_release_does_nothing(self):
        NullCacheService().release_lock("lock:x", "token")  # Should not raise

    def test_refresh_always_succeeds(self):
        assert NullCacheService().refresh_lock("lock:x", "token", 60) is True


class TestRedisCacheService:
    def _service(self, client):
        with patch("expiry_sentinel.integrations.cache.redis.from_url", return_value=client):
            return RedisCacheService("redis://localhost:6379/0")

    def test_acquire_uses_set_nx_ex(self):
        client = MagicMock()
        client.set.return_value = True
        token = self._service(client).acquire_lock("lock:run", 600)
        assert token
        client.set.assert_called_once_with("lock:run", token, nx=True, ex=600)

    def test_acquire_returns_none_when_held(self):
        client = MagicMock()
        client.set.return_value = None
        assert self._service(client).acquire_lock("lock:run", 600) is None

    def test_acquire_granted_when_redis_fails(self):
        client = MagicMock()
        client.set.side_effect = redis.ConnectionError("down")
        assert self._service(client).acquire_lock("lock:run", 600) is not None

    def test_release_compares_token(self):
        client = MagicMock()
        self._service(client).release_lock("lock:run", "abc")
        args = client.eval.call_args.args
        assert args[1:] == (1, "lock:run", "abc")

    def test_refresh_extends_only_own_lease(self):
        client = MagicMock()
        client.eval.return_value = 1
        assert self._service(client).refresh_lock("lock:run", "abc", 600) is True
        assert client.eval.call_args.args[1:] == (1, "lock:run", "abc", 600)

    def test_refresh_reports_lost_lease(self):
        client = MagicMock()
        client.eval.return_value = 0
        assert self._service(client).refresh_lock("lock:run", "abc", 600) is False


class TestCreateCacheService:
    def test_null_without_url(self):
        with patch("expiry_sentinel.integrations.cache.settings") as mock_settings:
            mock_settings.redis_url = ""
            assert isinstance(create_cache_service(), NullCacheService)

    def test_null_when_unreachable(self):
        with patch("expiry_sentinel.integrations.cache.settings") as mock_settings, patch(
            "expiry_sentinel.integrations.cache.redis.from_url"
        ) as from_url:
            mock_settings.redis_url = "redis://nowhere:6379/0"
            from_url.return_value.ping.side_effect = redis.ConnectionError("refused")
            assert isinstance(create_cache_service(), NullCacheService)
