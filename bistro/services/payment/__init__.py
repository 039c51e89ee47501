"""
Payment Service Factory

Provides a single entry point for obtaining a payment provider instance.
The rest of the application stays agnostic about which implementation
is being used.

Usage:
    from bistro.services.payment import get_payment_service

    # Returns MockPaymentService or StripePaymentService based on ENV_MODE
    payment_service = get_payment_service(settings)

    result = await payment_service.create_payment_intent(2500, "usd")

Environment Switching:
    - ENV_MODE=development → MockPaymentService (no API calls)
    - ENV_MODE=staging → StripePaymentService (test keys)
    - ENV_MODE=production → StripePaymentService (live keys)

Author: Bistro Boss Team
Version: 1.0.0
"""

import logging

from bistro.core.config import Settings
from bistro.services.payment.base import (
    BasePaymentService,
    PaymentResult,
    to_minor_units,
)
from bistro.services.payment.mock import MockPaymentService
from bistro.services.payment.stripe import StripePaymentService

logger = logging.getLogger(__name__)


def get_payment_service(settings: Settings) -> BasePaymentService:
    """
    Build the configured payment provider.

    create_app() calls this once and keeps the instance on app.state.

    Raises:
        ValueError: If a real-services mode has no Stripe key configured
    """
    if settings.is_development:
        logger.info("Payment Service: Using MockPaymentService (development mode)")
        return MockPaymentService(
            failure_rate=settings.mock_payment_failure_rate,
            min_latency=settings.mock_payment_min_latency,
            max_latency=settings.mock_payment_max_latency,
        )

    logger.info(
        f"Payment Service: Using StripePaymentService "
        f"({settings.env_mode.value} mode)"
    )
    return StripePaymentService(settings)


__all__ = [
    "get_payment_service",
    "to_minor_units",
    "BasePaymentService",
    "PaymentResult",
    "MockPaymentService",
    "StripePaymentService",
]
