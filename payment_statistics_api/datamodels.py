"""
Data models for payments, derived statistics and batch outcomes.
All money fields are Decimal; floats never take part in amount math.
"""
from decimal import Decimal
from enum import Enum
from typing import List

import pycountry
from pydantic import BaseModel, ConfigDict, Field, field_validator

HIGH_AMOUNT_THRESHOLD = Decimal("1000000")


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def classify_payment(amount: Decimal, status: PaymentStatus) -> str:
    """
    Classify a payment by amount and status. Rules are checked in order and
    the first match wins, so a FAILED payment with a non-positive amount is
    reported as an invalid amount.
    """
    if amount <= 0:
        return "Invalid: amount must be positive"
    if amount > HIGH_AMOUNT_THRESHOLD:
        return "Warning: unusually high amount"
    if status == PaymentStatus.FAILED:
        return "Failed payment"
    if status == PaymentStatus.PENDING:
        return "Pending approval"
    return "Valid payment"


class Payment(BaseModel):
    """
    A single payment record. Validated once at construction and immutable
    afterwards; use with_status() to derive an updated record.
    Two payments are equal when their ids are equal.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    amount: Decimal = Field(..., allow_inf_nan=False)
    currency: str = Field(..., pattern=r"^[A-Z]{3}$")
    status: PaymentStatus

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Payment ID cannot be empty")
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError(f"Payment amount cannot be negative: {v}")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        # ISO 4217 code check
        if pycountry.currencies.get(alpha_3=v) is None:
            raise ValueError(f"Unknown currency code: {v}")
        return v

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Payment):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def describe(self) -> str:
        if self.status == PaymentStatus.SUCCESS:
            marker, verb = "✓", "succeeded"
        elif self.status == PaymentStatus.FAILED:
            marker, verb = "✗", "failed"
        else:
            marker, verb = "⏳", "pending"
        return f"{marker} Payment {self.id} {verb}: {self.amount} {self.currency}"

    def classify(self) -> str:
        return classify_payment(self.amount, self.status)

    def with_status(self, status: PaymentStatus) -> "Payment":
        return Payment(id=self.id, amount=self.amount, currency=self.currency, status=status)


class PaymentStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_payments: int
    successful_payments: int
    failed_payments: int
    pending_payments: int
    total_successful_amount: Decimal
    average_successful_amount: Decimal

    def report(self) -> str:
        return (
            "Payment Statistics:\n"
            "------------------\n"
            f"Total Payments: {self.total_payments}\n"
            f"Successful: {self.successful_payments}\n"
            f"Failed: {self.failed_payments}\n"
            f"Pending: {self.pending_payments}\n"
            f"Total Successful Amount: ${self.total_successful_amount}\n"
            f"Average Successful Amount: ${self.average_successful_amount}\n"
        )


class BatchFailure(BaseModel):
    payment_id: str
    error_type: str
    message: str


class BatchResult(BaseModel):
    """Outcome of a batch submission: ids that landed and per-payment failures, both in input order."""
    added: List[str] = Field(default_factory=list)
    failures: List[BatchFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
