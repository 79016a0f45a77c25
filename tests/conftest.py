import json
import re
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from inventory_web.api_client import InventoryApiClient
from inventory_web.cache import QueryCache

BASE_URL = "http://backend.test/api"
TIMESTAMP = "2024-05-01T12:00:00Z"
SKU_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def _error(status_code: int, code: str, message: str, details: dict | None = None) -> httpx.Response:
    body = {"code": code, "message": message}
    if details is not None:
        body["details"] = details
    return httpx.Response(status_code, json={"error": body})


class FakeBackend:
    """In-memory stand-in for the inventory REST API, mounted through httpx.MockTransport."""

    def __init__(self):
        self.items: dict[int, dict] = {}
        self.movements: list[dict] = []
        self.calls: list[tuple[str, str]] = []
        self.failures: list = [] # Exceptions to raise or responses to return before normal handling
        self._next_item_id = 1
        self._next_movement_id = 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    def add_item(self, name="Widget A", sku="WGT-001", unit="pcs", stock="0.00") -> dict:
        item = {
            "id": self._next_item_id,
            "name": name,
            "sku": sku.upper(),
            "unit": unit,
            "current_stock": f"{Decimal(stock):.2f}",
            "inserted_at": TIMESTAMP,
            "updated_at": TIMESTAMP,
        }
        self.items[item["id"]] = item
        self._next_item_id += 1
        return item

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        self.calls.append((request.method, path))
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return failure

        if request.method == "GET" and path == "/items":
            return httpx.Response(200, json={"data": list(self.items.values())})
        if request.method == "POST" and path == "/items":
            return self._create_item(json.loads(request.content))
        if request.method == "GET" and path == "/movements":
            return httpx.Response(200, json={"data": self.movements})
        if request.method == "POST" and path == "/movements":
            return self._create_movement(json.loads(request.content))

        match = re.fullmatch(r"/items/(\d+)(/movements)?", path)
        if request.method == "GET" and match:
            item = self.items.get(int(match.group(1)))
            if item is None:
                return _error(404, "not_found", "Item not found")
            if match.group(2):
                return httpx.Response(200, json={"data": [m for m in self.movements if m["item_id"] == item["id"]]})
            return httpx.Response(200, json={"data": item})
        return _error(404, "not_found", "Route not found")

    def _create_item(self, body: dict) -> httpx.Response:
        details = {}
        name, sku = (body.get("name") or "").strip(), (body.get("sku") or "").strip()
        if not name:
            details["name"] = ["can't be blank"]
        if not sku:
            details["sku"] = ["can't be blank"]
        elif not SKU_PATTERN.match(sku):
            details["sku"] = ["must contain only letters, numbers, hyphens, and underscores"]
        elif any(i["sku"] == sku.upper() for i in self.items.values()):
            details["sku"] = ["has already been taken"]
        if details:
            return _error(422, "validation_failed", "Validation failed", details)
        return httpx.Response(201, json={"data": self.add_item(name, sku, body.get("unit", "pcs"))})

    def _create_movement(self, body: dict) -> httpx.Response:
        item = self.items.get(body.get("item_id"))
        if item is None:
            return _error(422, "validation_failed", "Validation failed", {"item_id": ["does not exist"]})
        quantity = Decimal(str(body.get("quantity")))
        if quantity <= 0:
            return _error(422, "validation_failed", "Validation failed", {"quantity": ["must be greater than 0"]})

        stock = Decimal(item["current_stock"])
        movement_type = body.get("movement_type")
        if movement_type == "IN":
            new_stock = stock + quantity
        elif movement_type == "OUT":
            new_stock = stock - quantity
        else:
            new_stock = quantity # ADJUSTMENT sets the level
        if new_stock < 0:
            return _error(422, "insufficient_stock", f"Insufficient stock. Available: {stock:.2f}, requested: {quantity:.2f}")

        item["current_stock"] = f"{new_stock:.2f}"
        movement = {
            "id": self._next_movement_id,
            "item_id": item["id"],
            "quantity": f"{quantity:.2f}",
            "movement_type": movement_type,
            "created_at": TIMESTAMP,
            "item": {k: item[k] for k in ("id", "name", "sku", "unit")},
        }
        self._next_movement_id += 1
        self.movements.append(movement)
        return httpx.Response(201, json={"data": movement})


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> QueryCache:
    return QueryCache(stale_seconds=5, retry=1, retry_delay=0, clock=clock)


@pytest_asyncio.fixture
async def api(backend):
    client = InventoryApiClient(base_url=BASE_URL, transport=backend.transport)
    yield client
    await client.aclose()
