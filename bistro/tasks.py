"""
Celery Tasks
Background tasks for exporting recorded payments.
"""

import logging
import time
from datetime import datetime

from bistro.celery_worker import celery_app
from bistro.services.ledger import PaymentLedger

logger = logging.getLogger(__name__)


def get_ledger() -> PaymentLedger:
    return PaymentLedger.from_settings()


class LedgerExportFailed(Exception):
    """Lock timeout or unreadable ledger; the export is retried."""


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(LedgerExportFailed, OSError),
    retry_backoff=True
)
def export_payment_to_ledger(self, payment_data: dict) -> dict:
    """
    Append a recorded payment to the Excel ledger.

    Args:
        payment_data: Output of payment_to_ledger_row()

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    transaction_id = payment_data.get('transaction_id', 'unknown')

    logger.info(f"📋 Task {task_id}: Exporting payment {transaction_id}")
    start_time = time.time()

    result = get_ledger().export_payment(payment_data)

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if not result['success']:
        logger.warning(f"⚠️ Task {task_id}: Payment {transaction_id} failed - {result['message']}")
        raise LedgerExportFailed(result['message'])

    logger.info(f"✅ Task {task_id}: Payment {transaction_id} exported in {elapsed}s")
    return result


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }


@celery_app.task
def clear_ledger() -> dict:
    """
    Clear the ledger file (for testing/reset purposes).
    """
    success = get_ledger().clear()
    return {
        'success': success,
        'message': 'Ledger cleared' if success else 'Failed to clear ledger',
        'timestamp': datetime.now().isoformat()
    }
