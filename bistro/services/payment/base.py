"""
Payment Provider Interface

Reconciliation talks to whichever provider get_payment_service() picked
(MockPaymentService or StripePaymentService) only through this interface,
so checkout behaves the same in every ENV_MODE.

Amounts cross this boundary in minor units (cents for USD).

Author: Bistro Boss Team
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_DOWN
from typing import Optional


def to_minor_units(amount: float) -> int:
    """
    Major units to minor units, truncated toward zero.

    Goes through the decimal string form so float error cannot drop a cent.

    Example:
        >>> to_minor_units(19.99)
        1999
        >>> to_minor_units(10.999)
        1099
    """
    cents = Decimal(str(amount)) * 100
    return int(cents.to_integral_value(rounding=ROUND_DOWN))


def from_minor_units(amount: int) -> float:
    return amount / 100.0


@dataclass
class PaymentResult:
    """
    Outcome of one provider call.

    On success `client_secret` is what the browser needs to confirm the
    intent; on failure `error_code` is the provider's machine-readable
    reason and `error_message` is safe to show to a customer.
    """
    success: bool
    payment_intent_id: Optional[str] = None
    amount: Optional[float] = None
    currency: str = "usd"
    client_secret: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    response_time_ms: float = 0.0
    metadata: Optional[dict] = None

    def to_dict(self) -> dict:
        """Loggable form; never includes the client secret."""
        data = asdict(self)
        data.pop("client_secret")
        return data


class BasePaymentService(ABC):
    """Strategy interface for payment providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short name shown in logs and /health, e.g. "mock" or "stripe"."""

    @abstractmethod
    async def create_payment_intent(
        self,
        amount_minor: int,
        currency: str = "usd",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Open a PaymentIntent for `amount_minor`.

        Provider errors are reported in the returned PaymentResult, not
        raised.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the provider is reachable with the configured credentials."""
