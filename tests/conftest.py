import os

# Must be set before bistro is imported: bistro.main builds a module-level app
os.environ.update({
    "ENV_MODE": "development",
    "DATABASE_URL": "sqlite+aiosqlite://",
    "ACCESS_TOKEN_SECRET": "test-secret",
    "LEDGER_EXPORT_ENABLED": "false",
    "CELERY_TASK_ALWAYS_EAGER": "true",
    "MOCK_PAYMENT_MIN_LATENCY": "0",
    "MOCK_PAYMENT_MAX_LATENCY": "0",
})

import pytest
from fastapi.testclient import TestClient

from bistro.core.config import Settings
from bistro.database import Database
from bistro.main import create_app

ADMIN_EMAIL = "admin@x.com"


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        env_mode="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'bistro.db'}",
        access_token_secret="test-secret",
        admin_emails=ADMIN_EMAIL,
        mock_payment_failure_rate=0.0,
        mock_payment_min_latency=0.0,
        mock_payment_max_latency=0.0,
        ledger_export_enabled=False,
        data_directory=str(tmp_path / "data"),
        redis_url="redis://localhost:1/0",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture
async def session(database):
    async with database.session_maker() as s:
        yield s


# =============================================================================
# REQUEST HELPERS
# =============================================================================

def register(client: TestClient, email: str, name: str = "Test User") -> str:
    response = client.post("/users", json={"name": name, "email": email})
    assert response.status_code == 200, response.text
    return response.json()["insertedId"]


def auth_header(client: TestClient, email: str) -> dict:
    response = client.post("/jwt", json={"email": email})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def admin_header(client: TestClient) -> dict:
    register(client, ADMIN_EMAIL, name="Admin")
    return auth_header(client, ADMIN_EMAIL)


def add_cart_item(client: TestClient, email: str, price: float, menu_item_id: str) -> str:
    response = client.post("/carts", json={
        "email": email,
        "menuItemId": menu_item_id,
        "name": "test item",
        "price": price,
    })
    assert response.status_code == 200, response.text
    return response.json()["insertedId"]


def add_menu_item(client: TestClient, headers: dict, name: str, category: str, price: float) -> str:
    response = client.post("/menu", headers=headers, json={
        "name": name,
        "category": category,
        "price": price,
        "recipe": "test recipe",
    })
    assert response.status_code == 200, response.text
    return response.json()["insertedId"]
