"""
Pytest configuration and fixtures for the client tests.

The backend is replaced by an httpx.MockTransport: each test installs a
handler that answers by method and path and records what was sent.
"""

import json
from typing import Any, Callable

import httpx
import pytest

from dermacare.api.client import ClinicApiClient
from dermacare.core.config import Settings
from dermacare.schemas.inventory import InventoryItemSnapshot
from dermacare.services.inventory_service import InventoryService
from dermacare.services.stock_ledger import StockLedger

BASE_URL = "http://testserver/api"


# ============================================================
# Settings
# ============================================================


@pytest.fixture
def test_settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        api_base_url=BASE_URL,
        app_env="testing",
        api_retry_delay_seconds=0,
    )


# ============================================================
# Fake backend
# ============================================================


class FakeBackend:
    """
    Routes requests to canned responses and keeps a log of them.

    routes maps (METHOD, path relative to /api) to either an
    httpx.Response or a callable taking the request.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, response: Any) -> None:
        self.routes[(method, path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"detail": "Not found."})
        if callable(route):
            return route(request)
        return route

    def sent(self, method: str, path: str) -> list[dict]:
        """JSON bodies of the requests sent to method + path."""
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == method and r.url.path == f"/api{path}" and r.content
        ]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api(test_settings, backend):
    """ClinicApiClient wired to the fake backend."""
    return ClinicApiClient(test_settings, transport=httpx.MockTransport(backend.handler))


# ============================================================
# Inventory
# ============================================================


def make_snapshot(**kwargs) -> InventoryItemSnapshot:
    """Snapshot with sensible defaults, overridable per test."""
    data = {
        "id": 1,
        "item_name": "Lidocaine cream",
        "category": "Topical/Rx (Prescription)",
        "unit": "tube",
        "quantity": 10,
        "min_stock_level": 5,
        "expiry_date": None,
    }
    data.update(kwargs)
    return InventoryItemSnapshot.model_validate(data)


@pytest.fixture
def snapshot_factory() -> Callable[..., InventoryItemSnapshot]:
    return make_snapshot


@pytest.fixture
def ledger():
    """Ledger holding two items: id 1 (qty 10) and id 2 (qty 3)."""
    stock_ledger = StockLedger()
    stock_ledger.load(
        [
            make_snapshot(),
            make_snapshot(id=2, item_name="Syringe 1ml", unit="unit", quantity=3),
        ]
    )
    return stock_ledger


@pytest.fixture
def inventory_service(api, ledger, test_settings):
    return InventoryService(api, ledger, test_settings)
