"""
Checkout Simulation Script

Fires many concurrent checkouts at a running API to exercise payment
reconciliation under load: every simulated customer registers, fills a
cart, creates a payment intent, records the payment (optionally twice, as
a retrying client would) and checks that the cart ends up empty.

Run from project root: python scripts/simulate.py --customers 50

Author: Bistro Boss Team
Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
import uuid
from datetime import datetime
from typing import Any, Optional

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

API_BASE_URL = "http://localhost:5000"
TOTAL_CUSTOMERS = 50

MENU_ITEMS = [
    {"name": "Pizza Margherita", "category": "pizza", "price": 14.99},
    {"name": "Pepperoni Pizza", "category": "pizza", "price": 16.99},
    {"name": "Caesar Salad", "category": "salad", "price": 8.99},
    {"name": "Pasta Carbonara", "category": "pasta", "price": 13.99},
    {"name": "Tiramisu", "category": "dessert", "price": 7.99},
    {"name": "Sparkling Water", "category": "drinks", "price": 3.49},
]


async def get_token(client: httpx.AsyncClient, email: str) -> dict[str, str]:
    response = await client.post(f"{API_BASE_URL}/jwt", json={"email": email})
    response.raise_for_status()
    return {"Authorization": f"Bearer {response.json()['token']}"}


async def load_menu(client: httpx.AsyncClient, admin_email: Optional[str]) -> list[dict]:
    """Use the live menu; seed it first when it is empty and an admin is available."""
    menu = (await client.get(f"{API_BASE_URL}/menu")).json()
    if menu or not admin_email:
        return menu or [dict(item, id=str(uuid.uuid4())) for item in MENU_ITEMS]

    await client.post(f"{API_BASE_URL}/users", json={"name": "Admin", "email": admin_email})
    headers = await get_token(client, admin_email)
    for item in MENU_ITEMS:
        await client.post(f"{API_BASE_URL}/menu", json=item, headers=headers)
    return (await client.get(f"{API_BASE_URL}/menu")).json()


# =============================================================================
# SINGLE CHECKOUT
# =============================================================================

async def run_checkout(
    client: httpx.AsyncClient,
    customer_num: int,
    menu: list[dict],
    resend: bool,
) -> dict[str, Any]:
    """Register, fill a cart and pay for it."""
    email = f"customer{customer_num}_{uuid.uuid4().hex[:6]}@example.com"
    start_time = time.time()

    try:
        await client.post(f"{API_BASE_URL}/users", json={"name": f"Customer {customer_num}", "email": email})
        headers = await get_token(client, email)

        picks = random.choices(menu, k=random.randint(1, 4))
        cart_ids = []
        for item in picks:
            response = await client.post(f"{API_BASE_URL}/carts", json={
                "email": email,
                "menuItemId": item["id"],
                "name": item["name"],
                "price": item["price"],
            })
            response.raise_for_status()
            cart_ids.append(response.json()["insertedId"])

        price = round(sum(item["price"] for item in picks), 2)
        response = await client.post(f"{API_BASE_URL}/create-payment-intent", json={"price": price})
        if response.status_code != 200:
            return failure(customer_num, start_time, f"intent: {response.text[:80]}")

        client_secret = response.json()["clientSecret"]
        payment = {
            "email": email,
            "price": price,
            "transactionId": client_secret.split("_secret_")[0],
            "cartIds": cart_ids,
            "menuItemIds": [item["id"] for item in picks],
            "status": "succeeded",
        }

        response = await client.post(f"{API_BASE_URL}/payments", json=payment)
        if response.status_code != 200:
            return failure(customer_num, start_time, f"payment: {response.text[:80]}")

        duplicate = False
        if resend:
            retry = await client.post(f"{API_BASE_URL}/payments", json=payment)
            duplicate = retry.status_code == 200 and retry.json()["paymentResult"]["duplicate"]

        cart = (await client.get(f"{API_BASE_URL}/carts", params={"email": email}, headers=headers)).json()

        return {
            "customer_num": customer_num,
            "success": not cart,
            "error": None if not cart else f"{len(cart)} cart item(s) left",
            "total": price,
            "duplicate_detected": duplicate,
            "time": round(time.time() - start_time, 3),
        }

    except httpx.HTTPError as e:
        return failure(customer_num, start_time, str(e)[:100])


def failure(customer_num: int, start_time: float, error: str) -> dict[str, Any]:
    return {
        "customer_num": customer_num,
        "success": False,
        "error": error,
        "time": round(time.time() - start_time, 3),
    }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_customers: int = TOTAL_CUSTOMERS,
    resend: bool = False,
    admin_email: Optional[str] = None,
) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 CHECKOUT SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Customers: {num_customers}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🔁 Resend payments: {resend}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient(timeout=30.0) as client:
        health = await client.get(f"{API_BASE_URL}/health")
        print(f"\n🩺 Health: {health.json().get('status')}")

        menu = await load_menu(client, admin_email)
        print(f"🍽️  Menu items: {len(menu)}")

        print("\n🚀 Firing checkouts...\n")
        results = await asyncio.gather(*[
            run_checkout(client, i + 1, menu, resend) for i in range(num_customers)
        ])

        admin_stats = None
        if admin_email:
            headers = await get_token(client, admin_email)
            response = await client.get(f"{API_BASE_URL}/admin-stats", headers=headers)
            if response.status_code == 200:
                admin_stats = response.json()

    total_time = round(time.time() - start_time, 2)
    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful checkouts: {len(successful)}/{num_customers}")
    print(f"❌ Failed checkouts: {len(failed)}/{num_customers}")
    print(f"⏱️  Total Time: {total_time}s")

    if resend:
        detected = len([r for r in successful if r.get("duplicate_detected")])
        print(f"🔁 Resent payments recognized: {detected}/{len(successful)}")

    if successful:
        times = [r["time"] for r in successful]
        print("\n📈 Performance Metrics:")
        print(f"   Average: {round(sum(times) / len(times), 3)}s")
        print(f"   Fastest: {min(times)}s")
        print(f"   Slowest: {max(times)}s")
        print(f"   💰 Revenue: ${sum(r['total'] for r in successful):.2f}")

    if admin_stats:
        print(f"\n🧾 Server totals: {admin_stats['orderCount']} payments, ${admin_stats['totalRevenue']:.2f}")

    if failed:
        print("\n⚠️  Failed checkout details (showing first 5):")
        for f in failed[:5]:
            print(f"   Customer #{f['customer_num']}: {f['error']}")

    print("\n" + "=" * 70)
    print("🔍 Next: python scripts/verify.py (after the Celery worker drains)")
    print("=" * 70)

    return {
        "total": num_customers,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Checkout Simulation Script")
    parser.add_argument("--customers", type=int, default=TOTAL_CUSTOMERS, help="Number of concurrent customers")
    parser.add_argument("--resend", action="store_true", help="Send every payment twice")
    parser.add_argument("--admin-email", default=None, help="Admin identity for menu seeding and totals")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    summary = asyncio.run(run_simulation(args.customers, args.resend, args.admin_email))
    sys.exit(0 if summary["failed"] == 0 else 1)
