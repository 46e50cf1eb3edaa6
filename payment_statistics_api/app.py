"""
Composition root: builds the single PaymentStore and injects it into the
request layer and the batch processor.
"""
import logging
from typing import Optional

from .cache import InMemoryCache, RedisCache, StatisticsCache
from .config import Settings, get_settings
from .logging_config import setup_logging
from .payment_processor import PaymentBatchProcessor
from .payment_service import PaymentService
from .payment_store import PaymentStore

logger = logging.getLogger(__name__)


class PaymentApp:
    def __init__(self, settings: Settings, cache: Optional[StatisticsCache]) -> None:
        self.settings = settings
        self.cache = cache
        self.store = PaymentStore(cache=cache)
        self.service = PaymentService(
            self.store,
            cache=cache,
            by_status_ttl=settings.cache_ttl_by_status_seconds,
            sorted_ttl=settings.cache_ttl_sorted_seconds,
            statistics_ttl=settings.cache_ttl_statistics_seconds,
        )
        self.processor = PaymentBatchProcessor(
            self.store,
            max_workers=settings.batch_max_workers,
            task_delay_seconds=settings.batch_task_delay_seconds,
        )

    def close(self) -> None:
        self.processor.shutdown()

    def __enter__(self) -> "PaymentApp":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_cache(settings: Settings) -> Optional[StatisticsCache]:
    if settings.cache_backend == "redis":
        return RedisCache.from_url(settings.redis_url, prefix=settings.cache_key_prefix)
    if settings.cache_backend == "memory":
        return InMemoryCache()
    return None


def create_app(settings: Optional[Settings] = None, configure_logging: bool = True) -> PaymentApp:
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.app_name, settings.log_level, settings.log_json)
    cache = build_cache(settings)
    if isinstance(cache, RedisCache) and not cache.ping():
        logger.warning("Redis cache at %s is unreachable, statistics will be computed on every read", settings.redis_url)
    app = PaymentApp(settings, cache)
    logger.info("Payment statistics app started with %s cache", settings.cache_backend)
    return app
