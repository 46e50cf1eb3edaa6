"""
Errors raised by the payment store and the request layer.
Construction-time validation errors come straight from pydantic (ValidationError).
"""


class DuplicatePaymentError(ValueError):
    def __init__(self, payment_id: str) -> None:
        self.payment_id = payment_id
        super().__init__(f"Payment with ID {payment_id} already exists")


class PaymentNotFoundError(KeyError):
    def __init__(self, payment_id: str) -> None:
        self.payment_id = payment_id
        super().__init__(payment_id)

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the id
        return f"Payment not found: {self.payment_id}"
