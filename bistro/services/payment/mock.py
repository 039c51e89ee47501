"""
Mock Payment Service

Stands in for Stripe in development mode and in tests. It hands out
Stripe-shaped PaymentIntent ids and client secrets (pi_mock_..._secret_...)
without any network traffic, and can be tuned to be slow or flaky so the
checkout flow can be exercised against provider outages:

    MOCK_PAYMENT_FAILURE_RATE   share of intents that fail (0.0 - 1.0)
    MOCK_PAYMENT_MIN_LATENCY    lower bound of simulated latency (seconds)
    MOCK_PAYMENT_MAX_LATENCY    upper bound of simulated latency (seconds)

Author: Bistro Boss Team
Version: 1.0.0
"""

import asyncio
import logging
import random
import uuid
from typing import Optional

from bistro.services.payment.base import (
    BasePaymentService,
    PaymentResult,
    from_minor_units,
)

logger = logging.getLogger(__name__)


class MockPaymentService(BasePaymentService):
    """
    In-process payment provider.

    Example:
        >>> service = MockPaymentService(min_latency=0, max_latency=0)
        >>> result = await service.create_payment_intent(2500)
        >>> result.client_secret.startswith("pi_mock_")
        True
    """

    # Error codes as Stripe reports them
    OUTAGES = [
        ("api_connection_error", "Payment service temporarily unavailable."),
        ("rate_limit", "Too many requests to the payment service."),
        ("processing_error", "An error occurred while creating the payment."),
    ]

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.2,
        max_latency: float = 0.8,
    ):
        self.failure_rate = failure_rate
        self.latency_range = (min_latency, max(min_latency, max_latency))

        logger.info(
            f"MockPaymentService ready (failure_rate={failure_rate:.0%}, "
            f"latency={self.latency_range[0]}-{self.latency_range[1]}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _wait(self) -> float:
        delay = random.uniform(*self.latency_range)
        if delay > 0:
            await asyncio.sleep(delay)
        return delay * 1000

    async def create_payment_intent(
        self,
        amount_minor: int,
        currency: str = "usd",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        elapsed_ms = await self._wait()
        amount = from_minor_units(amount_minor)

        if amount_minor <= 0:
            return PaymentResult(
                success=False,
                currency=currency,
                error_message="Amount must be at least one minor unit",
                error_code="invalid_amount",
                response_time_ms=elapsed_ms,
            )

        if random.random() < self.failure_rate:
            code, message = random.choice(self.OUTAGES)
            logger.debug(f"Mock: simulated outage ({code})")
            return PaymentResult(
                success=False,
                amount=amount,
                currency=currency,
                error_message=message,
                error_code=code,
                response_time_ms=elapsed_ms,
            )

        intent_id = f"pi_mock_{uuid.uuid4().hex[:24]}"
        logger.debug(f"Mock: PaymentIntent {intent_id} for {amount_minor} {currency}")

        return PaymentResult(
            success=True,
            payment_intent_id=intent_id,
            amount=amount,
            currency=currency,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
            response_time_ms=elapsed_ms,
            metadata={"mock": True, **(metadata or {})},
        )

    async def health_check(self) -> bool:
        return True
