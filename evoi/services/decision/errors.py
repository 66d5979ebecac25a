import math
from typing import Optional


class DecisionEngineError(Exception):
    """Base class for every failure raised by the decision engine."""


class InvalidInputError(DecisionEngineError, ValueError):
    """An input is malformed or outside its domain.

    Raised before any computation starts, and always names the offending field.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __reduce__(self):
        return type(self), (self.field, self.message)


class ComputationError(DecisionEngineError, ArithmeticError):
    """Inputs looked valid but a derived quantity was not finite."""

    def __init__(self, message: str, quantity: Optional[str] = None):
        self.message = message
        self.quantity = quantity
        super().__init__(message)

    def __reduce__(self):
        return type(self), (self.message, self.quantity)


def require_finite(value: float, quantity: str) -> float:
    if not math.isfinite(value):
        raise ComputationError(f"{quantity} is not finite ({value})", quantity=quantity)
    return value
