"""
Payment Ledger with Concurrency Control

Process-safe Excel export of recorded payments, written by the Celery
worker after each successful reconciliation. Several workers may append
at once, so every write happens under a file lock.

Author: Bistro Boss Team
Version: 1.0.0
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout

from bistro.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class LedgerReadError(Exception):
    """The ledger file exists but could not be parsed."""


class PaymentLedger:
    """Lock-guarded Excel ledger of payments."""

    COLUMNS = [
        "payment_id",
        "transaction_id",
        "date_time",
        "email",
        "price",
        "status",
        "cart_ids",
        "menu_item_ids",
        "item_count",
        "exported_at",
    ]

    def __init__(self, data_dir: Path, filename: str = "payments.xlsx", lock_timeout: int = 30):
        self.data_dir = Path(data_dir)
        self.file_path = self.data_dir / filename
        self.lock_path = self.data_dir / f"{filename}.lock"
        self.lock_timeout = lock_timeout

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PaymentLedger":
        settings = settings or get_settings()
        return cls(
            Path(settings.data_directory),
            filename=settings.ledger_filename,
            lock_timeout=settings.excel_lock_timeout,
        )

    def _ensure_data_dir(self) -> None:
        """Create data directory if needed."""
        if not self.data_dir.exists():
            self.data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {self.data_dir}")

    def _load_or_create_df(self) -> pd.DataFrame:
        """
        Load the existing ledger, or start an empty one if there is none.

        Raises:
            LedgerReadError: The file exists but cannot be read; it must not
                be replaced by a fresh frame
        """
        if not self.file_path.exists():
            return pd.DataFrame(columns=self.COLUMNS)
        try:
            return pd.read_excel(self.file_path, engine="openpyxl")
        except Exception as e:
            raise LedgerReadError(f"Cannot read {self.file_path}: {e}") from e

    def export_payment(self, payment_data: dict[str, Any]) -> dict[str, Any]:
        """
        Append one payment row under the file lock.

        A transaction already present in the ledger is not written twice,
        so retried exports are harmless.
        """
        self._ensure_data_dir()

        transaction_id = payment_data.get("transaction_id")
        result = {
            "success": False,
            "message": "",
            "transaction_id": transaction_id,
            "exported_at": None,
        }

        try:
            with FileLock(str(self.lock_path), timeout=self.lock_timeout):
                logger.debug(f"Lock acquired for transaction {transaction_id}")

                df = self._load_or_create_df()

                if not df.empty and transaction_id in set(df["transaction_id"].astype(str)):
                    result["success"] = True
                    result["message"] = f"Transaction {transaction_id} already in ledger"
                    return result

                export_time = datetime.now().isoformat()
                cart_ids = payment_data.get("cart_ids") or []
                menu_item_ids = payment_data.get("menu_item_ids") or []
                new_row = {
                    "payment_id": payment_data.get("payment_id"),
                    "transaction_id": transaction_id,
                    "date_time": payment_data.get("created_at", export_time),
                    "email": payment_data.get("email"),
                    "price": payment_data.get("price"),
                    "status": payment_data.get("status"),
                    "cart_ids": ",".join(cart_ids),
                    "menu_item_ids": ",".join(menu_item_ids),
                    "item_count": len(menu_item_ids),
                    "exported_at": export_time,
                }

                df = pd.concat([df, pd.DataFrame([new_row])], ignore_index=True)
                df.to_excel(str(self.file_path), index=False, engine="openpyxl")

                logger.info(f"Payment {transaction_id} exported to ledger")

                result["success"] = True
                result["message"] = f"Payment {transaction_id} exported"
                result["exported_at"] = export_time

        except Timeout:
            result["message"] = f"Lock timeout ({self.lock_timeout}s)"
            logger.error(f"Lock timeout for transaction {transaction_id}")

        except LedgerReadError as e:
            result["message"] = str(e)
            logger.error(f"Ledger left untouched for transaction {transaction_id}: {e}")

        return result

    def get_all_payments(self) -> list[dict[str, Any]]:
        if not self.file_path.exists():
            return []

        try:
            df = pd.read_excel(self.file_path, engine="openpyxl")
            return df.to_dict("records")
        except Exception as e:
            logger.error(f"Error reading ledger: {e}")
            return []

    def clear(self) -> bool:
        """Delete the ledger and its lock file."""
        try:
            for f in [self.file_path, self.lock_path]:
                if f.exists():
                    f.unlink()
            logger.info("Payment ledger cleared")
            return True
        except OSError as e:
            logger.error(f"Error clearing ledger: {e}")
            return False


def payment_to_ledger_row(payment) -> dict[str, Any]:
    """JSON-safe task payload for a Payment model."""
    return {
        "payment_id": str(payment.id),
        "transaction_id": payment.transaction_id,
        "email": payment.email,
        "price": payment.price,
        "status": payment.status,
        "cart_ids": [str(c) for c in payment.cart_ids],
        "menu_item_ids": [str(m) for m in payment.menu_item_ids],
        "created_at": payment.created_at.isoformat() if payment.created_at else None,
    }
