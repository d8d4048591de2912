"""
Unit tests for InventoryService against the fake backend.
"""

import asyncio
import datetime
from decimal import Decimal

import httpx
import pytest

from dermacare.core.exceptions import (
    BackendError,
    InsufficientStockError,
    InvalidInputError,
    NotFoundError,
    PartialFailureError,
)
from dermacare.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemUpdate,
    StockAddRequest,
    StockUseRequest,
    TransactionType,
)


def use(item_id=1, quantity="1"):
    return StockUseRequest(item_id=item_id, quantity=Decimal(quantity), performed_by="dr.h")


# ============================================================
# Loading
# ============================================================


class TestRefresh:
    """Tests for loading the mirror."""

    @pytest.mark.asyncio
    async def test_refresh_loads_ledger(self, inventory_service, backend):
        """Backend records replace the cached snapshots."""
        backend.on(
            "GET",
            "/inventory/",
            httpx.Response(
                200,
                json=[
                    {"id": 5, "item_name": "Botox 100U", "quantity": 4, "min_stock_level": 2},
                    {"id": 6, "item_name": "Gauze", "quantity": "-3", "expiry_date": "N/A"},
                ],
            ),
        )

        items = await inventory_service.refresh()

        assert [i.item_id for i in items] == [5, 6]
        assert inventory_service.ledger.get(6).quantity == Decimal("0")
        assert inventory_service.ledger.get(6).min_stock_level == Decimal("5")

    @pytest.mark.asyncio
    async def test_refresh_accepts_paginated_body(self, inventory_service, backend):
        """{"results": [...]} bodies are unwrapped."""
        backend.on(
            "GET",
            "/inventory/",
            httpx.Response(200, json={"count": 1, "results": [{"id": 5, "item_name": "Botox"}]}),
        )

        items = await inventory_service.refresh()

        assert len(items) == 1

    @pytest.mark.asyncio
    async def test_refresh_skips_malformed_records(self, inventory_service, backend):
        """One bad row does not hide the others."""
        backend.on(
            "GET",
            "/inventory/",
            httpx.Response(200, json=[{"item_name": "No id"}, {"id": 8, "item_name": "Ok"}]),
        )

        items = await inventory_service.refresh()

        assert [i.item_id for i in items] == [8]

    @pytest.mark.asyncio
    async def test_refresh_failure(self, inventory_service, backend):
        """A failed fetch raises and keeps the previous mirror."""
        backend.on("GET", "/inventory/", httpx.Response(503, json={"error": "Maintenance"}))

        with pytest.raises(BackendError) as exc_info:
            await inventory_service.refresh()

        assert exc_info.value.detail == "Inventory: Maintenance"
        assert inventory_service.ledger.get(1).quantity == Decimal("10")


# ============================================================
# Stock use
# ============================================================


class TestUseStock:
    """Tests for the optimistic use flow."""

    @pytest.mark.asyncio
    async def test_use_stock_success(self, inventory_service, backend):
        """The backend-confirmed quantity is adopted."""
        backend.on(
            "POST",
            "/inventory/1/use_stock/",
            httpx.Response(200, json={"id": 1, "quantity": 7}),
        )

        final = await inventory_service.use_stock(use(quantity="2"))

        assert final.quantity == Decimal("7")
        assert backend.sent("POST", "/inventory/1/use_stock/") == [
            {"quantity": 2, "notes": "", "performed_by": "dr.h"}
        ]

    @pytest.mark.asyncio
    async def test_use_stock_nested_quantity(self, inventory_service, backend):
        """The quantity may be nested under "item"."""
        backend.on(
            "POST",
            "/inventory/1/use_stock/",
            httpx.Response(200, json={"message": "ok", "item": {"quantity": "6.5"}}),
        )

        final = await inventory_service.use_stock(use(quantity="2"))

        assert final.quantity == Decimal("6.5")

    @pytest.mark.asyncio
    async def test_insufficient_stock_never_calls_backend(self, inventory_service, backend):
        """The request is blocked locally."""
        with pytest.raises(InsufficientStockError):
            await inventory_service.use_stock(use(item_id=2, quantity="5"))

        assert backend.requests == []
        assert inventory_service.ledger.get(2).quantity == Decimal("3")

    @pytest.mark.asyncio
    async def test_backend_rejection_rolls_back(self, inventory_service, backend):
        """The quantity is restored and the server message surfaced."""
        backend.on(
            "POST",
            "/inventory/1/use_stock/",
            httpx.Response(400, json={"error": "Insufficient stock"}),
        )

        with pytest.raises(BackendError) as exc_info:
            await inventory_service.use_stock(use(quantity="2"))

        assert exc_info.value.detail == "Could not use 2 of Lidocaine cream: Insufficient stock"
        assert exc_info.value.status_code == 400
        assert inventory_service.ledger.get(1).quantity == Decimal("10")

    @pytest.mark.asyncio
    async def test_network_error_rolls_back(self, inventory_service, backend):
        """Transport failures use the fallback message."""

        def fail(request):
            raise httpx.ConnectError("Connection refused", request=request)

        backend.on("POST", "/inventory/1/use_stock/", fail)

        with pytest.raises(BackendError) as exc_info:
            await inventory_service.use_stock(use(quantity="2"))

        assert "Failed to use stock" in exc_info.value.detail
        assert exc_info.value.status_code is None
        assert inventory_service.ledger.get(1).quantity == Decimal("10")

    @pytest.mark.asyncio
    async def test_cancelled_call_rolls_back(self, inventory_service, monkeypatch):
        """A cancellation during the call restores the quantity and propagates."""

        async def cancelled(item_id, payload):
            raise asyncio.CancelledError()

        monkeypatch.setattr(inventory_service.api, "use_stock", cancelled)

        with pytest.raises(asyncio.CancelledError):
            await inventory_service.use_stock(use(quantity="2"))

        assert inventory_service.ledger.get(1).quantity == Decimal("10")
        assert inventory_service.ledger.pending_count(1) == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_rolls_back(self, inventory_service, backend):
        """An error that is not an HTTP failure still leaves the mirror intact."""

        def crash(request):
            raise RuntimeError("event loop closed")

        backend.on("POST", "/inventory/1/use_stock/", crash)

        with pytest.raises(RuntimeError):
            await inventory_service.use_stock(use(quantity="2"))

        assert inventory_service.ledger.get(1).quantity == Decimal("10")
        assert inventory_service.ledger.pending_count(1) == 0

    @pytest.mark.asyncio
    async def test_interrupted_use_then_refresh(self, inventory_service, backend, monkeypatch):
        """After an interrupted use and a reload the next use adopts the backend value."""
        original = inventory_service.api.use_stock

        async def cancelled(item_id, payload):
            raise asyncio.CancelledError()

        monkeypatch.setattr(inventory_service.api, "use_stock", cancelled)
        with pytest.raises(asyncio.CancelledError):
            await inventory_service.use_stock(use(quantity="2"))
        monkeypatch.setattr(inventory_service.api, "use_stock", original)

        backend.on(
            "GET",
            "/inventory/",
            httpx.Response(200, json=[{"id": 1, "item_name": "Lidocaine cream", "quantity": 10}]),
        )
        backend.on("POST", "/inventory/1/use_stock/", httpx.Response(200, json={"quantity": 9}))
        await inventory_service.refresh()

        final = await inventory_service.use_stock(use(quantity="1"))

        assert final.quantity == Decimal("9")
        assert inventory_service.ledger.get(1).quantity == Decimal("9")


class TestUseConsumables:
    """Tests for multi-item deductions."""

    @pytest.mark.asyncio
    async def test_partial_failure_names_every_item(self, inventory_service, backend):
        """Every item is attempted; failures are listed together."""
        backend.on(
            "POST",
            "/inventory/1/use_stock/",
            httpx.Response(200, json={"quantity": 9}),
        )

        report = await inventory_service.use_consumables(
            [use(item_id=1), use(item_id=2, quantity="10"), use(item_id=42)]
        )

        assert [s.item_id for s in report.succeeded] == [1]
        assert [f.item_id for f in report.failures] == [2, 42]
        message = report.message()
        assert message.startswith("2 item(s) could not be deducted:")
        assert "Syringe 1ml (x10)" in message
        assert "item 42" in message

    @pytest.mark.asyncio
    async def test_raise_on_failure(self, inventory_service, backend):
        """PartialFailureError carries every failed item."""
        backend.on(
            "POST",
            "/inventory/2/use_stock/",
            httpx.Response(500, json={"detail": "Database locked"}),
        )

        with pytest.raises(PartialFailureError) as exc_info:
            await inventory_service.use_consumables([use(item_id=2)], raise_on_failure=True)

        failures = exc_info.value.extra["failures"]
        assert len(failures) == 1
        assert "Database locked" in failures[0]["reason"]
        assert inventory_service.ledger.get(2).quantity == Decimal("3")

    @pytest.mark.asyncio
    async def test_all_succeed(self, inventory_service, backend):
        """Without failures the report says how many were deducted."""
        backend.on("POST", "/inventory/1/use_stock/", httpx.Response(200, json={"quantity": 9}))
        backend.on("POST", "/inventory/2/use_stock/", httpx.Response(200, json={"quantity": 2}))

        report = await inventory_service.use_consumables([use(item_id=1), use(item_id=2)])

        assert report.has_failures is False
        assert report.message() == "2 item(s) deducted"


# ============================================================
# Stock addition and reports
# ============================================================


class TestAddStock:
    """Tests for stock replenishment."""

    @pytest.mark.asyncio
    async def test_add_stock_adopts_backend_quantity(self, inventory_service, backend):
        """The backend quantity and the new batch details are stored."""
        expiry = datetime.date.today() + datetime.timedelta(days=200)
        backend.on(
            "POST",
            "/inventory/2/add_stock/",
            httpx.Response(200, json={"new_quantity": 13}),
        )

        updated = await inventory_service.add_stock(
            2,
            StockAddRequest(quantity=Decimal("10"), supplier="MedSupply", expiry_date=expiry),
        )

        assert updated.quantity == Decimal("13")
        assert updated.supplier == "MedSupply"
        assert inventory_service.ledger.get(2).expiry_date == expiry
        body = backend.sent("POST", "/inventory/2/add_stock/")[0]
        assert body["quantity"] == 10
        assert body["expiry_date"] == expiry.isoformat()

    @pytest.mark.asyncio
    async def test_add_stock_without_quantity_in_response(self, inventory_service, backend):
        """The received quantity is added locally."""
        backend.on("POST", "/inventory/2/add_stock/", httpx.Response(204))

        updated = await inventory_service.add_stock(2, StockAddRequest(quantity=Decimal("4")))

        assert updated.quantity == Decimal("7")

    def test_expired_batch_is_rejected(self):
        """Received stock cannot already be expired."""
        yesterday = datetime.date.today() - datetime.timedelta(days=1)

        with pytest.raises(ValueError, match="This date is expired."):
            StockAddRequest(quantity=Decimal("1"), expiry_date=yesterday)

    @pytest.mark.asyncio
    async def test_undo_last_use(self, inventory_service, backend):
        """The last confirmed use goes back through add_stock."""
        backend.on("POST", "/inventory/1/use_stock/", httpx.Response(200, json={"quantity": 7}))
        backend.on("POST", "/inventory/1/add_stock/", httpx.Response(200, json={"new_quantity": 10}))
        await inventory_service.use_stock(use(quantity="3"))

        restored = await inventory_service.undo_last_use(1, performed_by="dr.h")

        assert restored.quantity == Decimal("10")
        assert backend.sent("POST", "/inventory/1/add_stock/") == [
            {"quantity": 3, "notes": "Undo of last use", "performed_by": "dr.h"}
        ]
        with pytest.raises(InvalidInputError):
            await inventory_service.undo_last_use(1)

    @pytest.mark.asyncio
    async def test_undo_without_usage(self, inventory_service, backend):
        """Nothing is sent when no use was recorded."""
        with pytest.raises(InvalidInputError, match="No recent usage recorded"):
            await inventory_service.undo_last_use(1)

        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_failed_undo_can_be_retried(self, inventory_service, backend):
        """A rejected undo keeps the use in the log."""
        backend.on("POST", "/inventory/1/use_stock/", httpx.Response(200, json={"quantity": 8}))
        backend.on("POST", "/inventory/1/add_stock/", httpx.Response(500, json={}))
        await inventory_service.use_stock(use(quantity="2"))

        with pytest.raises(BackendError):
            await inventory_service.undo_last_use(1)

        assert inventory_service.ledger.get(1).quantity == Decimal("8")
        assert inventory_service.ledger.last_use(1) == Decimal("2")


class TestItemManagement:
    """Tests for creating, editing and deleting items."""

    @pytest.mark.asyncio
    async def test_create_item(self, inventory_service, backend):
        """The created record is added to the mirror."""
        backend.on(
            "POST",
            "/inventory/",
            httpx.Response(201, json={"id": 9, "item_name": "Hyaluronic filler", "quantity": 4}),
        )

        created = await inventory_service.create_item(
            InventoryItemCreate(name=" Hyaluronic filler ", unit="syringe", quantity=Decimal("4"))
        )

        assert created.item_id == 9
        assert created.unit == "syringe"
        assert inventory_service.ledger.get(9).name == "Hyaluronic filler"
        assert backend.sent("POST", "/inventory/") == [
            {
                "item_name": "Hyaluronic filler",
                "quantity": 4,
                "min_stock_level": 5,
                "expiry_date": "N/A",
                "unit": "syringe",
            }
        ]

    @pytest.mark.asyncio
    async def test_create_item_without_id_in_response(self, inventory_service, backend):
        """A response with no usable record is an error and adds nothing."""
        backend.on("POST", "/inventory/", httpx.Response(201, json={"message": "created"}))

        with pytest.raises(BackendError, match="malformed response"):
            await inventory_service.create_item(InventoryItemCreate(name="Gauze"))

        assert len(inventory_service.ledger.items()) == 2

    @pytest.mark.asyncio
    async def test_create_item_rejected(self, inventory_service, backend):
        """The server message is surfaced."""
        backend.on("POST", "/inventory/", httpx.Response(400, json={"error": "Duplicate name"}))

        with pytest.raises(BackendError) as exc_info:
            await inventory_service.create_item(InventoryItemCreate(name="Gauze"))

        assert exc_info.value.detail == "Could not create Gauze: Duplicate name"

    def test_create_requires_name(self):
        """A blank name is rejected before any call."""
        with pytest.raises(ValueError):
            InventoryItemCreate(name="   ")

    @pytest.mark.asyncio
    async def test_update_item_merges_changes(self, inventory_service, backend):
        """Without a record in the response the changes are applied locally."""
        backend.on("PATCH", "/inventory/2/", httpx.Response(204))

        updated = await inventory_service.update_item(
            2, InventoryItemUpdate(min_stock_level=Decimal("1"), supplier="MedSupply")
        )

        assert updated.supplier == "MedSupply"
        assert updated.is_low_stock is False
        assert updated.quantity == Decimal("3")
        assert backend.sent("PATCH", "/inventory/2/") == [
            {"min_stock_level": 1, "supplier": "MedSupply"}
        ]

    @pytest.mark.asyncio
    async def test_update_item_adopts_backend_record(self, inventory_service, backend):
        """A returned record replaces the mirror entry."""
        backend.on(
            "PATCH",
            "/inventory/1/",
            httpx.Response(200, json={"id": 1, "item_name": "Lidocaine 5%", "quantity": 12}),
        )

        updated = await inventory_service.update_item(1, InventoryItemUpdate(name="Lidocaine 5%"))

        assert updated.name == "Lidocaine 5%"
        assert inventory_service.ledger.get(1).quantity == Decimal("12")

    @pytest.mark.asyncio
    async def test_update_keeps_quantity_with_use_in_flight(self, inventory_service, backend):
        """An edit does not undo a deduction still waiting for the backend."""
        backend.on(
            "PATCH",
            "/inventory/1/",
            httpx.Response(200, json={"id": 1, "item_name": "Lidocaine cream", "quantity": 10}),
        )
        inventory_service.ledger.issue(use(quantity="2"))

        updated = await inventory_service.update_item(1, InventoryItemUpdate(unit="box"))

        assert updated.quantity == Decimal("8")

    @pytest.mark.asyncio
    async def test_update_unknown_item(self, inventory_service, backend):
        """Unknown items are rejected locally."""
        with pytest.raises(NotFoundError):
            await inventory_service.update_item(99, InventoryItemUpdate(unit="box"))

        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_delete_item(self, inventory_service, backend):
        """A deleted item leaves the mirror."""
        backend.on("DELETE", "/inventory/2/", httpx.Response(204))

        await inventory_service.delete_item(2)

        with pytest.raises(NotFoundError):
            inventory_service.ledger.get(2)
        assert inventory_service.summary().total_items == 1

    @pytest.mark.asyncio
    async def test_delete_rejected_keeps_item(self, inventory_service, backend):
        """A failed deletion leaves the mirror unchanged."""
        backend.on("DELETE", "/inventory/2/", httpx.Response(403, json={"detail": "Forbidden"}))

        with pytest.raises(BackendError, match="Could not delete Syringe 1ml: Forbidden"):
            await inventory_service.delete_item(2)

        assert inventory_service.ledger.get(2).quantity == Decimal("3")


class TestReports:
    """Tests for alerts and transaction history."""

    def test_low_stock_and_summary(self, inventory_service):
        """The summary counts the low stock items."""
        summary = inventory_service.summary()

        assert [s.item_id for s in inventory_service.low_stock_items()] == [2]
        assert summary.total_items == 2
        assert summary.low_stock_count == 1
        assert summary.total_quantity == Decimal("13")

    @pytest.mark.asyncio
    async def test_transactions_filtered_by_item(self, inventory_service, backend):
        """The item filter is sent as a query parameter."""
        backend.on(
            "GET",
            "/stock-transactions/",
            httpx.Response(
                200,
                json=[
                    {"id": 1, "item": 1, "transaction_type": "USE", "quantity": "2",
                     "created_at": "2026-03-01T10:00:00Z"},
                    {"id": 2, "item": 1, "type": "add", "quantity": 10},
                ],
            ),
        )

        transactions = await inventory_service.transactions(1)

        assert [t.transaction_type for t in transactions] == [TransactionType.USE, TransactionType.ADD]
        assert backend.requests[0].url.params["item"] == "1"
