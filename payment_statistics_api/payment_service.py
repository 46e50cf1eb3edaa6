"""
Request layer over the payment store and the statistics engine.

Listings and statistics are served from the optional cache. Each cached entry
records the id of the store it came from and the store generation it was
computed at. It is ignored when either differs, so a reader never sees another
store's aggregates, nor ones older than the last mutation that returned to its
caller.
"""
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .cache import PAYMENT_STATISTICS, PAYMENTS_BY_STATUS, PAYMENTS_SORTED, StatisticsCache, cache_key
from .datamodels import Payment, PaymentStatistics, PaymentStatus
from .exceptions import PaymentNotFoundError
from .payment_store import PaymentStore
from .statistics import StatisticsEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheEnvelope(BaseModel, Generic[T]):
    store_id: str
    generation: int
    value: T


class PaymentService:
    def __init__(
        self,
        store: PaymentStore,
        cache: Optional[StatisticsCache] = None,
        by_status_ttl: int = 300,
        sorted_ttl: int = 300,
        statistics_ttl: int = 120,
    ) -> None:
        self.store = store
        self.cache = cache
        self.by_status_ttl = by_status_ttl
        self.sorted_ttl = sorted_ttl
        self.statistics_ttl = statistics_ttl

    # Mutations

    def add(self, payment: Payment) -> Payment:
        self.store.add(payment)
        logger.info("Payment created: %s", payment.id, extra={"payment_id": payment.id})
        return payment

    def create_payment(self, payload: Mapping[str, Any]) -> Payment:
        """Validate a raw payload (id, amount, currency, status) and store it."""
        return self.add(Payment.model_validate(payload))

    def remove(self, payment_id: str) -> bool:
        return self.store.remove(payment_id)

    def clear(self) -> None:
        self.store.clear()
        logger.info("All payments cleared")

    # Reads

    def get(self, payment_id: str) -> Optional[Payment]:
        return self.store.get(payment_id)

    def get_payment_details(self, payment_id: str) -> Payment:
        payment = self.store.get(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def count(self) -> int:
        return self.store.count()

    def list_all(self) -> List[Payment]:
        return self.store.list_all()

    def list_by_status(self, status: PaymentStatus) -> List[Payment]:
        status = PaymentStatus(status)
        return self._cached(
            cache_key(PAYMENTS_BY_STATUS, status.value),
            List[Payment],
            self.by_status_ttl,
            lambda: self.store.list_by_status(status),
        )

    def sorted_by_amount_descending(self) -> List[Payment]:
        return self._cached(
            cache_key(PAYMENTS_SORTED),
            List[Payment],
            self.sorted_ttl,
            self.store.sorted_by_amount_descending,
        )

    def compute_statistics(self) -> PaymentStatistics:
        return self._cached(
            cache_key(PAYMENT_STATISTICS),
            PaymentStatistics,
            self.statistics_ttl,
            lambda: StatisticsEngine.compute_statistics(self.store.list_all()),
        )

    def count_by_status(self) -> Dict[PaymentStatus, int]:
        return StatisticsEngine.count_by_status(self.store.list_all())

    def total_by_currency(self) -> Dict[str, Decimal]:
        return StatisticsEngine.total_by_currency(self.store.list_all())

    def summary(self) -> str:
        return StatisticsEngine.summary(self.compute_statistics())

    def validate(self, payment: Payment) -> str:
        return payment.classify()

    def _cached(self, key: str, value_type: Type[T], ttl: int, compute: Callable[[], T]) -> T:
        if self.cache is None:
            return compute()

        # read the generation before the snapshot is taken
        generation = self.store.generation
        store_id = self.store.store_id
        envelope_type = CacheEnvelope[value_type]

        raw = self.cache.get(key)
        if raw is not None:
            try:
                envelope = envelope_type.model_validate_json(raw)
            except ValidationError:
                logger.warning("Discarding unreadable cache entry %s", key)
            else:
                if envelope.store_id == store_id and envelope.generation == generation:
                    return envelope.value

        value = compute()
        envelope = envelope_type(store_id=store_id, generation=generation, value=value)
        self.cache.put(key, envelope.model_dump_json(), ttl)
        return value
