"""
Ledger Verification Script

Checks the integrity of the Excel payment ledger after a simulation run.
Run from project root: python scripts/verify.py

Author: Bistro Boss Team
Version: 1.0.0
"""

import os
import sys
from datetime import datetime

import pandas as pd

LEDGER_FILE = os.path.join(os.environ.get("DATA_DIRECTORY", "data"), "payments.xlsx")
REQUIRED_COLUMNS = ["payment_id", "transaction_id", "email", "price", "item_count"]


def verify_ledger(path: str = LEDGER_FILE) -> bool:
    """Verify the ledger file; returns False on any integrity problem."""

    print("=" * 60)
    print("🔍 PAYMENT LEDGER VERIFICATION")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {path}")
    print("=" * 60)

    if not os.path.exists(path):
        print("\n❌ Ledger file not found!")
        print("   Run the simulation first: python scripts/simulate.py")
        return False

    try:
        df = pd.read_excel(path, engine="openpyxl")
        print("\n✅ File loaded successfully!")
    except (OSError, ValueError) as e:
        print(f"\n❌ Could not read ledger: {e}")
        return False

    ok = True
    print("\n📊 STATISTICS:")
    print(f"   Payments: {len(df)}")
    print(f"   Customers: {df['email'].nunique() if 'email' in df.columns else 'n/a'}")

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
        ok = False
    else:
        print("\n✅ All required columns present")

    # One row per provider transaction, even when payments were resent
    if "transaction_id" in df.columns:
        duplicates = int(df["transaction_id"].duplicated().sum())
        if duplicates:
            print(f"⚠️ {duplicates} duplicate transaction IDs found!")
            ok = False
        else:
            print("✅ No duplicate transaction IDs")

    if "price" in df.columns and len(df):
        negative = int((df["price"] < 0).sum())
        if negative:
            print(f"⚠️ {negative} payments with a negative price")
            ok = False
        print("\n💰 REVENUE:")
        print(f"   Total: ${df['price'].sum():.2f}")
        print(f"   Average: ${df['price'].mean():.2f}")

    print("\n📋 RECENT PAYMENTS:")
    print("-" * 60)
    if len(df):
        cols = [c for c in ["transaction_id", "email", "price", "item_count"] if c in df.columns]
        print(df[cols].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FAILED")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_ledger() else 1)
