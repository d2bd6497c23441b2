import os
import uuid
from typing import Any, Dict, List

import pytest

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "eyJhbGciOiJIUzI1NiJ9.eyJyb2xlIjoiYW5vbiJ9.sig")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "eyJhbGciOiJIUzI1NiJ9.eyJyb2xlIjoic2VydmljZV9yb2xlIn0.sig")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

import fakeredis  # noqa: E402
from postgrest.exceptions import APIError  # noqa: E402

from restopos.services.redis import redis_client  # noqa: E402
from restopos.services.offline_queue import connectivity  # noqa: E402
from restopos.utils.clock import utc_now  # noqa: E402

RESTAURANT_ID = "rest-1"
OTHER_RESTAURANT_ID = "rest-2"

# Every module that talks to the database through the service client
SUPABASE_MODULES = [
    "restopos.core.permissions",
    "restopos.services.offline_queue",
    "restopos.services.orders",
    "restopos.services.payments",
    "restopos.services.realtime",
    "restopos.services.reports",
    "restopos.services.restaurants",
    "restopos.api.inventory",
    "restopos.api.menu",
    "restopos.api.tables",
]

# (table, columns) pairs that reject duplicate inserts with a unique violation
UNIQUE = {
    "orders": ("restaurant_id", "order_number"),
    "inventory": ("restaurant_id", "item_name"),
    "tables": ("restaurant_id", "table_number"),
}


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Enough of the postgrest query builder for the services under test."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.filters: List = []
        self.orders: List = []
        self.max_rows = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, data):
        self.op = "insert"
        self.payload = data
        return self

    def update(self, data):
        self.op = "update"
        self.payload = data
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) <= value)
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _matches(self, row):
        return all(check(row) for check in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op))
        failure = self.db.failures.get((self.table, self.op))
        if failure is not None:
            raise failure

        rows = self.db.rows.setdefault(self.table, [])

        if self.op == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for data in new_rows:
                row = {"id": str(uuid.uuid4()), "created_at": utc_now().isoformat(), **data}
                columns = UNIQUE.get(self.table)
                if columns and any(all(r.get(c) == row.get(c) for c in columns) for r in rows):
                    raise APIError({"code": "23505", "message": "duplicate key value violates unique constraint"})
                rows.append(row)
                inserted.append(dict(row))
            return FakeResult(inserted)

        matched = [row for row in rows if self._matches(row)]

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResult([dict(row) for row in matched])

        if self.op == "delete":
            self.db.rows[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResult([dict(row) for row in matched])

        result = [dict(row) for row in matched]
        for column, desc in reversed(self.orders):
            result.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
        if self.max_rows is not None:
            result = result[:self.max_rows]
        return FakeResult(result)


class FakeSupabase:
    """In-memory stand-in for the Supabase service client."""

    def __init__(self):
        self.rows: Dict[str, List[dict]] = {}
        self.failures: Dict[tuple, Exception] = {}
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def seed(self, table: str, *rows: dict):
        self.rows.setdefault(table, []).extend(dict(row) for row in rows)

    def fail(self, table: str, op: str, error: Exception):
        self.failures[(table, op)] = error

    def recover(self, table: str = None, op: str = None):
        if table is None:
            self.failures.clear()
        else:
            self.failures.pop((table, op), None)

    def count(self, table: str, op: str) -> int:
        return sum(1 for call in self.calls if call == (table, op))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_client, "client", fake)
    yield fake
    fake.flushall()


@pytest.fixture(autouse=True)
def online():
    connectivity._online = True
    yield
    connectivity._online = True


@pytest.fixture
def db(monkeypatch):
    import importlib

    fake = FakeSupabase()
    for name in SUPABASE_MODULES:
        module = importlib.import_module(name)
        monkeypatch.setattr(module, "supabase_admin", fake)

    fake.seed(
        "restaurants",
        {
            "id": RESTAURANT_ID,
            "name": "Spice Route",
            "timezone": "Asia/Kolkata",
            "currency": "INR",
            "tax_rate": 18,
            "service_charge": 10,
            "is_active": True,
        },
        {
            "id": OTHER_RESTAURANT_ID,
            "name": "Harbour Grill",
            "timezone": "UTC",
            "currency": "INR",
            "tax_rate": 5,
            "service_charge": 0,
            "is_active": True,
        },
    )
    fake.seed(
        "user_profiles",
        {"id": "cashier-1", "restaurant_id": RESTAURANT_ID, "email": "cashier@spice.test",
         "role": "cashier", "is_active": True},
        {"id": "waiter-1", "restaurant_id": RESTAURANT_ID, "email": "waiter@spice.test",
         "role": "waiter", "is_active": True},
        {"id": "manager-2", "restaurant_id": OTHER_RESTAURANT_ID, "email": "manager@harbour.test",
         "role": "manager", "is_active": True},
    )
    fake.seed(
        "menu_items",
        {"id": "item-paneer", "restaurant_id": RESTAURANT_ID, "name": "Paneer Tikka",
         "category": "Starters", "price": 42.50, "is_available": True, "sort_order": 1},
        {"id": "item-naan", "restaurant_id": RESTAURANT_ID, "name": "Butter Naan",
         "category": "Breads", "price": 5.00, "is_available": True, "sort_order": 1},
        {"id": "item-biryani", "restaurant_id": RESTAURANT_ID, "name": "Veg Biryani",
         "category": "Mains", "price": 150.50, "is_available": True, "sort_order": 2},
        {"id": "item-retired", "restaurant_id": RESTAURANT_ID, "name": "Old Special",
         "category": "Mains", "price": 99.00, "is_available": False, "sort_order": 9},
    )
    fake.seed(
        "tables",
        {"id": "table-1", "restaurant_id": RESTAURANT_ID, "table_number": "T1",
         "status": "available", "is_active": True},
        {"id": "table-2", "restaurant_id": RESTAURANT_ID, "table_number": "T2",
         "status": "available", "is_active": True},
        {"id": "table-9", "restaurant_id": OTHER_RESTAURANT_ID, "table_number": "T9",
         "status": "available", "is_active": True},
    )
    return fake


@pytest.fixture
def cashier() -> dict:
    return {"id": "cashier-1", "restaurant_id": RESTAURANT_ID, "role": "cashier", "is_active": True}


@pytest.fixture
def waiter() -> dict:
    return {"id": "waiter-1", "restaurant_id": RESTAURANT_ID, "role": "waiter", "is_active": True}


@pytest.fixture
def other_manager() -> dict:
    return {"id": "manager-2", "restaurant_id": OTHER_RESTAURANT_ID, "role": "manager", "is_active": True}
