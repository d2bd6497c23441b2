from decimal import Decimal

import httpx
import pytest

from restopos.config import settings
from restopos.core.errors import OrderPersistenceError
from restopos.models.cart import Cart, CartLine
from restopos.models.order import PaymentMethod
from restopos.services.cart_store import CartStore
from restopos.services.offline_queue import OfflineQueue, connectivity
from restopos.services.orders import OrderService

from conftest import RESTAURANT_ID


def _queue_cart(cashier, item="item-naan", quantity=1):
    CartStore.save(RESTAURANT_ID, cashier["id"], Cart(lines=[
        CartLine(menu_item_id=item, unit_price=Decimal("5.00"), quantity=quantity)
    ]))


@pytest.mark.anyio
async def test_offline_orders_sync_once_after_reconnect(db, cashier):
    connectivity.mark_offline("network down")
    for quantity in (1, 2, 3):
        _queue_cart(cashier, quantity=quantity)
        result = await OrderService.submit_order(cashier, PaymentMethod.CASH)
        assert result["queued"] is True

    assert db.count("orders", "insert") == 0
    assert len(OfflineQueue.pending(RESTAURANT_ID, "cashier-1")) == 3

    assert connectivity.mark_online() is True
    summary = await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", OrderService.create_queued_order)

    assert summary == {"synced": 3, "retrying": 0, "failed": 0}
    assert db.count("orders", "insert") == 3
    assert db.count("order_items", "insert") == 3
    assert OfflineQueue.pending(RESTAURANT_ID, "cashier-1") == []
    # Replayed in arrival order, without payment
    quantities = [db.rows["order_items"][i]["quantity"] for i in range(3)]
    assert quantities == [1, 2, 3]
    assert "payments" not in db.rows
    assert all(order["status"] == "pending" for order in db.rows["orders"])


@pytest.mark.anyio
async def test_flush_all_covers_every_buffer(db, cashier, waiter):
    OfflineQueue.enqueue(RESTAURANT_ID, "cashier-1", {
        "restaurant_id": RESTAURANT_ID, "created_by": "cashier-1",
        "lines": [{"menu_item_id": "item-naan", "unit_price": "5.00", "quantity": 2}],
    })
    OfflineQueue.enqueue(RESTAURANT_ID, "waiter-1", {
        "restaurant_id": RESTAURANT_ID, "created_by": "waiter-1", "table_id": "table-2",
        "lines": [{"menu_item_id": "item-paneer", "unit_price": "42.50", "quantity": 1}],
    })

    totals = await OfflineQueue.flush_all(OrderService.create_queued_order)

    assert totals["synced"] == 2
    assert {o["created_by"] for o in db.rows["orders"]} == {"cashier-1", "waiter-1"}
    assert db.rows["tables"][1]["status"] == "occupied"


@pytest.mark.anyio
async def test_failing_entry_moves_to_failed_list(db, monkeypatch):
    monkeypatch.setattr(settings, "OFFLINE_MAX_ATTEMPTS", 2)
    monkeypatch.setattr(settings, "OFFLINE_RETRY_BASE_SECONDS", 0)
    OfflineQueue.enqueue(RESTAURANT_ID, "cashier-1", {"restaurant_id": RESTAURANT_ID})

    async def create(payload):
        raise OrderPersistenceError()

    first = await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", create)
    second = await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", create)

    assert first == {"synced": 0, "retrying": 1, "failed": 0}
    assert second == {"synced": 0, "retrying": 0, "failed": 1}
    assert OfflineQueue.pending(RESTAURANT_ID, "cashier-1") == []
    failed = OfflineQueue.failed(RESTAURANT_ID, "cashier-1")
    assert failed[0]["attempts"] == 2
    assert failed[0]["last_error"] == "Failed to create order"


@pytest.mark.anyio
async def test_backoff_defers_retry(db):
    OfflineQueue.enqueue(RESTAURANT_ID, "cashier-1", {"restaurant_id": RESTAURANT_ID})
    calls = []

    async def create(payload):
        calls.append(payload)
        raise OrderPersistenceError()

    await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", create)
    again = await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", create)

    assert len(calls) == 1
    assert again == {"synced": 0, "retrying": 1, "failed": 0}
    assert OfflineQueue.pending(RESTAURANT_ID, "cashier-1")[0]["next_attempt_at"] is not None


@pytest.mark.anyio
async def test_connection_loss_mid_flush_keeps_order(db):
    for n in range(3):
        OfflineQueue.enqueue(RESTAURANT_ID, "cashier-1", {"n": n})
    seen = []

    async def create(payload):
        seen.append(payload["n"])
        if payload["n"] == 1:
            raise httpx.ConnectError("connection reset")
        return {}

    summary = await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", create)

    assert seen == [0, 1]
    assert summary["synced"] == 1
    assert connectivity.is_online is False
    assert [e["payload"]["n"] for e in OfflineQueue.pending(RESTAURANT_ID, "cashier-1")] == [1, 2]


def test_probe_treats_connection_errors_as_offline(db):
    db.fail("restaurants", "select", httpx.ConnectError("unreachable"))

    assert connectivity.probe() is False
    assert connectivity.is_online is False

    db.recover()
    assert connectivity.probe() is True
    assert connectivity.mark_online() is True
    assert connectivity.mark_online() is False


@pytest.mark.anyio
async def test_unexpected_error_keeps_popped_entries(db):
    OfflineQueue.enqueue(RESTAURANT_ID, "cashier-1", {"n": 0})

    async def rejected(payload):
        raise OrderPersistenceError()

    await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", rejected)
    OfflineQueue.enqueue(RESTAURANT_ID, "cashier-1", {"n": 1})

    async def broken(payload):
        raise RuntimeError("unexpected")

    with pytest.raises(RuntimeError):
        await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", broken)

    pending = OfflineQueue.pending(RESTAURANT_ID, "cashier-1")
    assert [e["payload"]["n"] for e in pending] == [0, 1]
    assert pending[0]["attempts"] == 1
    assert pending[1]["attempts"] == 0


@pytest.mark.anyio
async def test_malformed_payload_counts_as_failed_attempt(db):
    OfflineQueue.enqueue(RESTAURANT_ID, "cashier-1", {
        "restaurant_id": RESTAURANT_ID, "created_by": "cashier-1",
        "lines": [{"menu_item_id": "item-naan", "unit_price": "not-a-price"}],
    })

    summary = await OfflineQueue.flush(RESTAURANT_ID, "cashier-1", OrderService.create_queued_order)

    assert summary == {"synced": 0, "retrying": 1, "failed": 0}
    entry = OfflineQueue.pending(RESTAURANT_ID, "cashier-1")[0]
    assert entry["attempts"] == 1
    assert "unit_price" in entry["last_error"]
    assert db.count("orders", "insert") == 0
