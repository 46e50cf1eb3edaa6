"""
Test suite for cache backends, settings, logging and application wiring
"""
import json
import logging
import sys
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import redis
from pydantic import ValidationError

from payment_statistics_api.app import PaymentApp, build_cache, create_app
from payment_statistics_api.cache import (
    ALL_CACHE_NAMES,
    InMemoryCache,
    PAYMENT_STATISTICS,
    PAYMENTS_BY_STATUS,
    RedisCache,
    cache_key,
)
from payment_statistics_api.config import Settings
from payment_statistics_api.datamodels import Payment, PaymentStatus
from payment_statistics_api.logging_config import JSONFormatter, setup_logging


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestInMemoryCache:
    """Test InMemoryCache storage and expiry"""

    def test_put_and_get(self):
        cache = InMemoryCache()
        cache.put(cache_key(PAYMENT_STATISTICS), "value", 60)
        assert cache.get(cache_key(PAYMENT_STATISTICS)) == "value"
        assert cache.get("missing") is None

    def test_entry_expires(self):
        clock = FakeClock()
        cache = InMemoryCache(clock=clock)
        cache.put("k", "v", 10)
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_evict_all_by_name(self):
        cache = InMemoryCache()
        cache.put(cache_key(PAYMENTS_BY_STATUS, "SUCCESS"), "a", 60)
        cache.put(cache_key(PAYMENTS_BY_STATUS, "FAILED"), "b", 60)
        cache.put(cache_key(PAYMENT_STATISTICS), "c", 60)

        cache.evict_all([PAYMENTS_BY_STATUS])

        assert cache.get(cache_key(PAYMENTS_BY_STATUS, "SUCCESS")) is None
        assert cache.get(cache_key(PAYMENTS_BY_STATUS, "FAILED")) is None
        assert cache.get(cache_key(PAYMENT_STATISTICS)) == "c"


class TestRedisCache:
    """Test RedisCache against a mocked client"""

    def test_get_and_put_use_prefix(self):
        client = MagicMock()
        client.get.return_value = "cached"
        cache = RedisCache(client, prefix="test:")

        assert cache.get("payment_statistics::all") == "cached"
        client.get.assert_called_once_with("test:payment_statistics::all")

        cache.put("payment_statistics::all", "value", 120)
        client.setex.assert_called_once_with("test:payment_statistics::all", 120, "value")

    def test_evict_all_deletes_matching_keys(self):
        client = MagicMock()
        client.scan_iter.side_effect = lambda match: {
            "test:payments_by_status::*": ["test:payments_by_status::SUCCESS"],
            "test:payments_sorted::*": [],
            "test:payment_statistics::*": ["test:payment_statistics::all"],
        }[match]
        cache = RedisCache(client, prefix="test:")

        cache.evict_all(ALL_CACHE_NAMES)

        assert client.scan_iter.call_count == 3
        client.delete.assert_any_call("test:payments_by_status::SUCCESS")
        client.delete.assert_any_call("test:payment_statistics::all")
        assert client.delete.call_count == 2

    def test_connection_errors_are_a_miss(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.setex.side_effect = redis.ConnectionError("down")
        client.scan_iter.side_effect = redis.ConnectionError("down")
        client.ping.side_effect = redis.ConnectionError("down")
        cache = RedisCache(client)

        assert cache.get("k") is None
        cache.put("k", "v", 10)
        cache.evict_all(ALL_CACHE_NAMES)
        assert cache.ping() is False

    @patch("payment_statistics_api.cache.redis.Redis.from_url")
    def test_from_url(self, mock_from_url):
        cache = RedisCache.from_url("redis://cache:6379/1", prefix="p:")
        mock_from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
        assert cache.client is mock_from_url.return_value
        assert cache.prefix == "p:"


class TestSettings:
    """Test environment driven settings"""

    def test_defaults(self):
        settings = Settings()
        assert settings.cache_backend == "memory"
        assert settings.cache_ttl_statistics_seconds == 120
        assert settings.batch_task_delay_seconds == 0.0

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_STATS_CACHE_BACKEND", "redis")
        monkeypatch.setenv("PAYMENT_STATS_BATCH_MAX_WORKERS", "8")
        settings = Settings()
        assert settings.cache_backend == "redis"
        assert settings.batch_max_workers == 8

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            Settings(cache_backend="memcached")
        with pytest.raises(ValidationError):
            Settings(batch_task_delay_seconds=10)


class TestLogging:
    """Test JSON log formatting"""

    def test_json_formatter_includes_extras(self):
        record = logging.LogRecord(
            name="payment_statistics_api.payment_store",
            level=logging.INFO,
            pathname=__file__,
            lineno=10,
            msg="Stored payment %s",
            args=("P-1",),
            exc_info=None,
        )
        record.payment_id = "P-1"
        line = json.loads(JSONFormatter("payment-statistics").format(record))

        assert line["service"] == "payment-statistics"
        assert line["level"] == "INFO"
        assert line["message"] == "Stored payment P-1"
        assert line["payment_id"] == "P-1"
        assert "exception" not in line

    def test_json_formatter_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        line = json.loads(JSONFormatter("svc").format(record))
        assert "ValueError: bad" in line["exception"]

    def test_setup_logging_replaces_handlers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            logger = setup_logging("payment-statistics", "DEBUG", json_output=False)
            assert logger.name == "payment-statistics"
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert not isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestApp:
    """Test application wiring"""

    def test_build_cache(self):
        assert build_cache(Settings(cache_backend="none")) is None
        assert isinstance(build_cache(Settings(cache_backend="memory")), InMemoryCache)

    @patch("payment_statistics_api.app.RedisCache.from_url")
    def test_build_redis_cache(self, mock_from_url):
        cache = build_cache(Settings(cache_backend="redis", redis_url="redis://cache:6379/0", cache_key_prefix="x:"))
        mock_from_url.assert_called_once_with("redis://cache:6379/0", prefix="x:")
        assert cache is mock_from_url.return_value

    @patch("payment_statistics_api.app.RedisCache.from_url")
    def test_unreachable_redis_logged_at_startup(self, mock_from_url, caplog):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("down")
        client.get.return_value = None
        mock_from_url.return_value = RedisCache(client)

        with caplog.at_level(logging.WARNING, logger="payment_statistics_api.app"):
            with create_app(Settings(cache_backend="redis"), configure_logging=False) as app:
                client.ping.assert_called_once_with()
                assert app.cache is mock_from_url.return_value
                app.service.add(Payment(id="A", amount=Decimal("10"), currency="USD", status=PaymentStatus.SUCCESS))
                assert app.service.compute_statistics().total_payments == 1

        assert any("unreachable" in record.getMessage() for record in caplog.records)

    @patch("payment_statistics_api.app.RedisCache.from_url")
    def test_reachable_redis_not_logged(self, mock_from_url, caplog):
        client = MagicMock()
        client.ping.return_value = True
        mock_from_url.return_value = RedisCache(client)

        with caplog.at_level(logging.WARNING, logger="payment_statistics_api.app"):
            with create_app(Settings(cache_backend="redis"), configure_logging=False):
                client.ping.assert_called_once_with()

        assert not any("unreachable" in record.getMessage() for record in caplog.records)

    def test_single_store_is_shared(self):
        with create_app(Settings(cache_backend="memory"), configure_logging=False) as app:
            assert isinstance(app, PaymentApp)
            assert app.service.store is app.store
            assert app.processor.store is app.store
            assert app.service.cache is app.cache

    def test_end_to_end_batch_then_statistics(self):
        with create_app(Settings(cache_backend="memory"), configure_logging=False) as app:
            assert app.service.compute_statistics().total_payments == 0
            result = app.processor.submit_batch([
                Payment(id="A", amount=Decimal("100.00"), currency="USD", status=PaymentStatus.SUCCESS),
                Payment(id="B", amount=Decimal("200.00"), currency="EUR", status=PaymentStatus.SUCCESS),
                Payment(id="C", amount=Decimal("150.00"), currency="GBP", status=PaymentStatus.FAILED),
            ]).result(timeout=10)
            assert result.ok

            stats = app.service.compute_statistics()
            assert stats.total_payments == 3
            assert stats.total_successful_amount == Decimal("300.00")
            assert stats.average_successful_amount == Decimal("150.00")
            assert app.service.summary() == "3 payments: 66.7% success rate"
