"""
Payment store for keeping payment records in memory.
One instance is created by the application and shared by every consumer.

Writers take a short lock around the check-and-insert; readers never lock
and work on a dict.copy() snapshot. Every mutation bumps a generation counter
and evicts the derived caches before returning to the caller.
"""
import logging
import threading
from typing import Dict, List, Optional
from uuid import uuid4

from .cache import ALL_CACHE_NAMES, StatisticsCache
from .datamodels import Payment, PaymentStatus
from .exceptions import DuplicatePaymentError

logger = logging.getLogger(__name__)


class PaymentStore:
    def __init__(self, cache: Optional[StatisticsCache] = None) -> None:
        # payment_id -> Payment, insertion ordered
        self._payments: Dict[str, Payment] = {}
        self._cache = cache
        self._generation = 0
        self._write_lock = threading.Lock()
        # distinguishes this store's entries in a cache shared with other stores
        self._store_id = uuid4().hex

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def store_id(self) -> str:
        return self._store_id

    def add(self, payment: Payment) -> Payment:
        with self._write_lock:
            if payment.id in self._payments:
                raise DuplicatePaymentError(payment.id)
            self._payments[payment.id] = payment
            self._generation += 1
        self._evict()
        logger.debug("Stored payment %s", payment.id, extra={"payment_id": payment.id})
        return payment

    def get(self, payment_id: str) -> Optional[Payment]:
        return self._payments.get(payment_id)

    def remove(self, payment_id: str) -> bool:
        with self._write_lock:
            if self._payments.pop(payment_id, None) is None:
                return False
            self._generation += 1
        self._evict()
        return True

    def list_all(self) -> List[Payment]:
        return list(self._snapshot().values())

    def list_by_status(self, status: PaymentStatus) -> List[Payment]:
        return [p for p in self._snapshot().values() if p.status == status]

    def sorted_by_amount_descending(self) -> List[Payment]:
        # sorted() is stable with reverse=True, equal amounts keep insertion order
        return sorted(self._snapshot().values(), key=lambda p: p.amount, reverse=True)

    def clear(self) -> None:
        with self._write_lock:
            self._payments.clear()
            self._generation += 1
        self._evict()

    def count(self) -> int:
        return len(self._payments)

    def _snapshot(self) -> Dict[str, Payment]:
        return self._payments.copy()

    def _evict(self) -> None:
        if self._cache is not None:
            self._cache.evict_all(ALL_CACHE_NAMES)
