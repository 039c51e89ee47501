"""
Stripe Payment Service

PaymentIntents through the official Stripe SDK; active when ENV_MODE is
staging or production. Cards are confirmed client-side with Stripe.js, so
this service never sees card data and only hands back the client secret.

Requires STRIPE_SECRET_KEY.

Author: Bistro Boss Team
Version: 1.0.0
"""

import asyncio
import logging
import time
from typing import Optional

import stripe

from bistro.core.config import Settings
from bistro.services.payment.base import (
    BasePaymentService,
    PaymentResult,
    from_minor_units,
)

logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2023-10-16"

# Most specific first: every SDK error derives from StripeError
ERROR_MAP = [
    (stripe.AuthenticationError, "authentication_error", "Payment service configuration error"),
    (stripe.APIConnectionError, "connection_error", "Payment service temporarily unavailable"),
    (stripe.RateLimitError, "rate_limit", "Too many requests to the payment service"),
    (stripe.InvalidRequestError, "invalid_request", None),
    (stripe.StripeError, "stripe_error", "Payment processing error"),
]


class StripePaymentService(BasePaymentService):
    """
    PaymentIntent creation against the Stripe API.

    The SDK is blocking, so every call runs in a worker thread.
    """

    def __init__(self, settings: Settings):
        if not settings.stripe_secret_key:
            raise ValueError(
                "STRIPE_SECRET_KEY is required outside development mode. "
                "Set it in your .env file or environment variables."
            )

        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = STRIPE_API_VERSION
        self._currency = settings.stripe_currency

        logger.info(f"StripePaymentService ready (api_version={STRIPE_API_VERSION})")

    @property
    def provider_name(self) -> str:
        return "stripe"

    async def create_payment_intent(
        self,
        amount_minor: int,
        currency: str = "usd",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        started = time.perf_counter()

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount_minor,
                currency=currency or self._currency,
                payment_method_types=["card"],
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            return self._failure(e, started)

        logger.info(f"Stripe: PaymentIntent {intent.id} created (status={intent.status})")
        return PaymentResult(
            success=True,
            payment_intent_id=intent.id,
            amount=from_minor_units(intent.amount),
            currency=intent.currency,
            client_secret=intent.client_secret,
            response_time_ms=_elapsed_ms(started),
            metadata={"status": intent.status},
        )

    def _failure(self, error: stripe.StripeError, started: float) -> PaymentResult:
        for error_type, code, message in ERROR_MAP:
            if isinstance(error, error_type):
                break

        if code == "authentication_error":
            logger.critical(f"Stripe: Authentication failed - {error}")
        else:
            logger.error(f"Stripe: PaymentIntent failed ({code}) - {error}")

        return PaymentResult(
            success=False,
            error_message=message or str(error),
            error_code=code,
            response_time_ms=_elapsed_ms(started),
        )

    async def health_check(self) -> bool:
        """Cheap authenticated call: fetch the account."""
        try:
            await asyncio.to_thread(stripe.Account.retrieve)
        except stripe.StripeError as e:
            logger.error(f"Stripe: Health check failed - {e}")
            return False
        return True


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
