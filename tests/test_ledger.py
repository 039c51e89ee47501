"""Excel payment ledger and its Celery export task."""

import uuid
from datetime import datetime, timezone

import pytest
from filelock import FileLock

from bistro import main, tasks
from bistro.models import Payment, PaymentMenuItem
from bistro.services.ledger import PaymentLedger, payment_to_ledger_row


@pytest.fixture
def ledger(tmp_path) -> PaymentLedger:
    return PaymentLedger(tmp_path / "data", lock_timeout=1)


@pytest.fixture
def row() -> dict:
    return {
        "payment_id": str(uuid.uuid4()),
        "transaction_id": "txn_ledger_1",
        "email": "a@x.com",
        "price": 25.0,
        "status": "succeeded",
        "cart_ids": [str(uuid.uuid4()), str(uuid.uuid4())],
        "menu_item_ids": [str(uuid.uuid4()), str(uuid.uuid4())],
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


def test_export_appends_row(ledger, row):
    result = ledger.export_payment(row)

    assert result["success"] is True
    assert ledger.file_path.exists()

    rows = ledger.get_all_payments()
    assert len(rows) == 1
    assert rows[0]["email"] == "a@x.com"
    assert rows[0]["item_count"] == 2
    assert rows[0]["price"] == 25.0


def test_export_same_transaction_once(ledger, row):
    ledger.export_payment(row)
    result = ledger.export_payment(row)

    assert result["success"] is True
    assert "already" in result["message"]
    assert len(ledger.get_all_payments()) == 1


def test_export_reports_lock_timeout(ledger, row):
    ledger.data_dir.mkdir(parents=True)

    with FileLock(str(ledger.lock_path)):
        result = PaymentLedger(ledger.data_dir, lock_timeout=0).export_payment(row)

    assert result["success"] is False
    assert "timeout" in result["message"].lower()


def test_unreadable_ledger_is_left_untouched(ledger, row):
    ledger.data_dir.mkdir(parents=True)
    ledger.file_path.write_bytes(b"not a workbook")

    result = ledger.export_payment(row)

    assert result["success"] is False
    assert "cannot read" in result["message"].lower()
    assert ledger.file_path.read_bytes() == b"not a workbook"


def test_clear_removes_ledger(ledger, row):
    ledger.export_payment(row)

    assert ledger.clear() is True
    assert ledger.get_all_payments() == []


def test_payment_to_ledger_row():
    menu_id = uuid.uuid4()
    cart_id = uuid.uuid4()
    created = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    payment = Payment(
        id=uuid.uuid4(),
        email="a@x.com",
        price=12.5,
        transaction_id="txn_row",
        cart_ids=[str(cart_id)],
        status="succeeded",
        created_at=created,
        items=[PaymentMenuItem(menu_item_id=menu_id)],
    )

    data = payment_to_ledger_row(payment)

    assert data["payment_id"] == str(payment.id)
    assert data["cart_ids"] == [str(cart_id)]
    assert data["menu_item_ids"] == [str(menu_id)]
    assert data["created_at"] == created.isoformat()


# =============================================================================
# CELERY TASK
# =============================================================================

def test_export_task_writes_ledger(monkeypatch, ledger, row):
    monkeypatch.setattr(tasks, "get_ledger", lambda: ledger)

    result = tasks.export_payment_to_ledger.apply(args=[row]).get()

    assert result["success"] is True
    assert result["transaction_id"] == "txn_ledger_1"
    assert len(ledger.get_all_payments()) == 1


def test_dispatch_failure_does_not_propagate(monkeypatch, row):
    def broker_down(*args, **kwargs):
        raise ConnectionError("broker unreachable")

    monkeypatch.setattr(tasks.export_payment_to_ledger, "delay", broker_down)

    main.dispatch_ledger_export(row)
