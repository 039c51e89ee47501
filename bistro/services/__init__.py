"""
                        Services Module

Business logic behind the API routes.

Services:
    - payment: payment-intent providers (mock for development, Stripe)
    - reconciliation: payment recording and cart cleanup
    - stats: revenue and order statistics
    - ledger: lock-guarded Excel export of payments
"""

from bistro.services.ledger import PaymentLedger
from bistro.services.reconciliation import PaymentReconciler
from bistro.services.stats import StatsAggregator

__all__ = ["PaymentLedger", "PaymentReconciler", "StatsAggregator"]
