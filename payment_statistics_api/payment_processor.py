"""
Concurrent batch processing of payments on a thread pool.

Each payment in a batch becomes its own task. The handle returned to the caller
is a concurrent.futures.Future that completes once every task has finished;
it can be polled with done(), blocked on with result(), or awaited from
asyncio code through asyncio.wrap_future().
"""
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

from .datamodels import BatchFailure, BatchResult, Payment
from .payment_store import PaymentStore

logger = logging.getLogger(__name__)

MAX_TASK_DELAY_SECONDS = 5.0

T = TypeVar("T")


def gather(futures: Sequence[Future], combine: Callable[[], T]) -> "Future[T]":
    """
    Return a future resolved with combine() once all of `futures` are done.
    Completion is driven by callbacks, so no pool worker blocks waiting.
    """
    aggregate: Future = Future()
    remaining = len(futures)
    lock = threading.Lock()

    def finish() -> None:
        try:
            aggregate.set_result(combine())
        except Exception as e:
            aggregate.set_exception(e)

    if remaining == 0:
        finish()
        return aggregate

    def on_done(_: Future) -> None:
        nonlocal remaining
        with lock:
            remaining -= 1
            last = remaining == 0
        if last:
            finish()

    for future in futures:
        future.add_done_callback(on_done)
    return aggregate


class PaymentBatchProcessor:
    """
    Fans batches of payments out to a thread pool.

    Failure policy: a batch handle never fails because of an individual
    payment. Each failure (duplicate id, or anything else raised by the store)
    is recorded in BatchResult.failures and sibling payments are still added.
    Nothing is rolled back.
    """

    def __init__(self, store: PaymentStore, max_workers: int = 32, task_delay_seconds: float = 0.0) -> None:
        if not 0 <= task_delay_seconds <= MAX_TASK_DELAY_SECONDS:
            raise ValueError(
                f"task_delay_seconds must be between 0 and {MAX_TASK_DELAY_SECONDS}: {task_delay_seconds}"
            )
        self.store = store
        self.task_delay_seconds = task_delay_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="payment-batch")

    def submit_batch(self, payments: List[Payment]) -> "Future[BatchResult]":
        payments = list(payments)
        logger.info("Submitting batch of %d payments", len(payments), extra={"batch_size": len(payments)})
        futures = [self._executor.submit(self._add_payment, p) for p in payments]
        return gather(futures, lambda: self._collect_batch(payments, futures))

    def submit_validations(self, payments: List[Payment]) -> "Future[List[str]]":
        payments = list(payments)
        futures = [self._executor.submit(self._label_payment, p) for p in payments]
        # results are read in submission order, whatever order the tasks ran in
        return gather(futures, lambda: [f.result() for f in futures])

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "PaymentBatchProcessor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _add_payment(self, payment: Payment) -> Payment:
        if self.task_delay_seconds:
            # simulated processing time, taken before touching the store
            time.sleep(self.task_delay_seconds)
        self.store.add(payment)
        logger.info("Processed: %s", payment.id, extra={"payment_id": payment.id})
        return payment

    @staticmethod
    def _label_payment(payment: Payment) -> str:
        return f"{payment.id}: {payment.classify()}"

    @staticmethod
    def _collect_batch(payments: List[Payment], futures: List[Future]) -> BatchResult:
        result = BatchResult()
        for payment, future in zip(payments, futures):
            error = future.exception()
            if error is None:
                result.added.append(payment.id)
                continue
            logger.warning(
                "Batch task failed for %s: %s", payment.id, error, extra={"payment_id": payment.id}
            )
            result.failures.append(
                BatchFailure(payment_id=payment.id, error_type=type(error).__name__, message=str(error))
            )
        if result.failures:
            logger.warning(
                "Batch finished with %d failures", len(result.failures), extra={"failures": len(result.failures)}
            )
        return result
