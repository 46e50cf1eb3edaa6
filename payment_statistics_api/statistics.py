"""
Aggregate statistics over a snapshot of payments.
Every function is pure: it only reads the snapshot it is given.

Sums run in a decimal context sized to the operands with Inexact trapped, so
they are exact at any magnitude. Averages and rates are rounded half-up from
the exact Fraction value.
"""
import math
from decimal import Context, Decimal, Inexact, InvalidOperation, Overflow, ROUND_HALF_UP, localcontext
from fractions import Fraction
from typing import Dict, Iterable, List

from .datamodels import Payment, PaymentStatistics, PaymentStatus


def exact_sum(amounts: Iterable[Decimal]) -> Decimal:
    amounts = list(amounts)
    if not amounts:
        return Decimal("0")

    # digits between the highest and lowest place any operand (or the 0 start) uses
    top = max(max(a.adjusted() for a in amounts), 0) + 1
    bottom = min(min(a.as_tuple().exponent for a in amounts), 0)
    prec = top - bottom + len(str(len(amounts))) + 1

    context = Context(prec=prec, rounding=ROUND_HALF_UP, traps=[InvalidOperation, Inexact, Overflow])
    with localcontext(context):
        return sum(amounts, Decimal("0"))


def round_half_up(value: Fraction, places: int) -> Decimal:
    """Round a non-negative exact value to `places` decimals, half-up."""
    scaled = math.floor(value * 10 ** places + Fraction(1, 2))
    return Decimal(f"{scaled}e-{places}")


class StatisticsEngine:

    @staticmethod
    def compute_statistics(snapshot: Iterable[Payment]) -> PaymentStatistics:
        payments: List[Payment] = list(snapshot)
        counts = StatisticsEngine.count_by_status(payments)

        total_successful = exact_sum(p.amount for p in payments if p.status == PaymentStatus.SUCCESS)
        successful = counts[PaymentStatus.SUCCESS]

        return PaymentStatistics(
            total_payments=len(payments),
            successful_payments=successful,
            failed_payments=counts[PaymentStatus.FAILED],
            pending_payments=counts[PaymentStatus.PENDING],
            total_successful_amount=total_successful,
            average_successful_amount=StatisticsEngine.average(total_successful, successful),
        )

    @staticmethod
    def average(total: Decimal, count: int) -> Decimal:
        """Average rounded half-up to cents; exactly zero when count is zero."""
        if count == 0:
            return Decimal("0")
        return round_half_up(Fraction(total) / count, 2)

    @staticmethod
    def count_by_status(snapshot: Iterable[Payment]) -> Dict[PaymentStatus, int]:
        counts = {status: 0 for status in PaymentStatus}
        for payment in snapshot:
            counts[payment.status] += 1
        return counts

    @staticmethod
    def total_by_currency(snapshot: Iterable[Payment]) -> Dict[str, Decimal]:
        grouped: Dict[str, List[Decimal]] = {}
        for payment in snapshot:
            grouped.setdefault(payment.currency, []).append(payment.amount)
        return {currency: exact_sum(amounts) for currency, amounts in grouped.items()}

    @staticmethod
    def success_rate(stats: PaymentStatistics) -> Decimal:
        if stats.total_payments == 0:
            return Decimal("0.0")
        return round_half_up(Fraction(stats.successful_payments * 100, stats.total_payments), 1)

    @staticmethod
    def summary(stats: PaymentStatistics) -> str:
        if stats.total_payments == 0:
            return "No payments processed"
        rate = f"{StatisticsEngine.success_rate(stats)}% success rate"
        if stats.total_payments == 1:
            return f"1 payment: {rate}"
        return f"{stats.total_payments} payments: {rate}"
