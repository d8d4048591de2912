"""
Inventory service
Project: DermaCare Client

Business logic for:
- Loading the inventory mirror from the backend
- Using stock with optimistic update and reconciliation
- Deducting several consumables in one session
- Adding stock and undoing the last use
- Creating, editing and deleting items
- Low stock / expiry alerts
"""

import datetime
import logging
from typing import Iterable, Optional

from pydantic import ValidationError as SchemaValidationError

from dermacare.api.client import ClinicApiClient
from dermacare.core.config import Settings, get_settings
from dermacare.core.exceptions import (
    AppException,
    BackendError,
    PartialFailureError,
)
from dermacare.schemas.inventory import (
    BackendUseResult,
    ConsumptionReport,
    InventoryItemCreate,
    InventoryItemSnapshot,
    InventoryItemUpdate,
    InventorySummary,
    StockAddRequest,
    StockTransaction,
    StockUseRequest,
    UseFailure,
)
from dermacare.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


def _as_list(data) -> list:
    """Accepts both plain lists and paginated {"results": [...]} bodies."""
    if isinstance(data, dict) and isinstance(data.get("results"), list):
        return data["results"]
    if isinstance(data, list):
        return data
    raise BackendError("Malformed inventory response")


class InventoryService:
    """
    Service for inventory screens.

    Combines the local StockLedger with the backend API. Errors are raised
    at the point of the user action, never retried automatically; the
    mirror is refreshed from the backend on the next load.
    """

    def __init__(
        self,
        api: ClinicApiClient,
        ledger: Optional[StockLedger] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.api = api
        self.ledger = ledger or StockLedger()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------

    @staticmethod
    def parse_items(records: Iterable[dict]) -> list[InventoryItemSnapshot]:
        """
        Validates backend records into snapshots.

        Invalid records are skipped with an error log so one bad row does
        not hide the whole inventory.
        """
        snapshots = []
        for record in records:
            try:
                snapshots.append(InventoryItemSnapshot.model_validate(record))
            except SchemaValidationError as e:
                logger.error("Skipping malformed inventory record %r: %s", record, e)
        return snapshots

    async def refresh(self) -> list[InventoryItemSnapshot]:
        """
        Reloads the mirror from GET /inventory/.

        Raises:
            BackendError: if the inventory cannot be fetched
        """
        response = await self.api.get_inventory()
        data = response.unwrap("Inventory")
        snapshots = self.parse_items(_as_list(data))
        self.ledger.load(snapshots)
        return self.ledger.items()

    # ------------------------------------------------------------
    # Stock use
    # ------------------------------------------------------------

    async def use_stock(self, request: StockUseRequest) -> InventoryItemSnapshot:
        """
        Uses stock with an optimistic local update.

        Steps:
        1. Deduct locally (raises before any network call if the stock
           is insufficient or the item is unknown)
        2. POST /inventory/{id}/use_stock/
        3. Commit the backend quantity or roll back

        An exception escaping the API call (e.g. task cancellation) also
        rolls the deduction back before it propagates.

        Returns:
            InventoryItemSnapshot: the reconciled snapshot

        Raises:
            NotFoundError: item not in the mirror
            InsufficientStockError: request exceeds the local quantity
            BackendError: backend rejected the deduction (already rolled back)
        """
        pending = self.ledger.issue(request)
        label = pending.previous.label

        try:
            response = await self.api.use_stock(request.item_id, request.to_payload())
        except BaseException:
            # Cancelled or crashed before an answer: give the quantity back
            self.ledger.on_result(pending, BackendUseResult.failure("Request interrupted"))
            raise
        if response.success:
            result = BackendUseResult.from_data(response.data)
        else:
            result = BackendUseResult.failure(response.error or "Failed to use stock")

        final = self.ledger.on_result(pending, result)
        if not result.success:
            raise BackendError(
                f"Could not use {request.quantity} of {label}: {result.error}",
                extra={"item_id": request.item_id},
                status_code=response.status_code,
            )
        return final

    async def use_consumables(
        self,
        requests: Iterable[StockUseRequest],
        raise_on_failure: bool = False,
    ) -> ConsumptionReport:
        """
        Deducts several consumables, e.g. the supplies of a laser session.

        Every request is attempted; failures are collected per item
        instead of aborting at the first one.

        Args:
            requests: One use request per consumable
            raise_on_failure: Raise PartialFailureError if any item failed

        Returns:
            ConsumptionReport: succeeded snapshots and per-item failures

        Raises:
            PartialFailureError: only with raise_on_failure=True
        """
        report = ConsumptionReport()
        for request in requests:
            try:
                report.succeeded.append(await self.use_stock(request))
            except AppException as e:
                try:
                    name = self.ledger.get(request.item_id).label
                except AppException:
                    name = f"item {request.item_id}"
                report.failures.append(
                    UseFailure(
                        item_id=request.item_id,
                        item_name=name,
                        quantity=request.quantity,
                        reason=e.detail,
                    )
                )

        if report.has_failures:
            logger.warning(report.message())
            if raise_on_failure:
                raise PartialFailureError(
                    report.message(),
                    extra={"failures": [f.model_dump() for f in report.failures]},
                )
        return report

    # ------------------------------------------------------------
    # Stock addition
    # ------------------------------------------------------------

    async def add_stock(self, item_id: int, request: StockAddRequest) -> InventoryItemSnapshot:
        """
        Adds received stock through the backend.

        The mirror adopts the quantity returned by the backend; if the
        response carries none, the received quantity is added locally.

        Raises:
            NotFoundError: item not in the mirror
            BackendError: backend rejected the addition
        """
        snapshot = self.ledger.get(item_id)
        response = await self.api.add_stock(item_id, request.to_payload())
        data = response.unwrap(f"Could not add stock to {snapshot.label}")

        confirmed = BackendUseResult.from_data(data).quantity
        if confirmed is None:
            updated = self.ledger.apply_addition(item_id, request.quantity)
        else:
            updated = self.ledger.set_quantity(item_id, confirmed)
        if request.supplier or request.expiry_date:
            changes = {}
            if request.supplier:
                changes["supplier"] = request.supplier
            if request.expiry_date:
                changes["expiry_date"] = request.expiry_date
            updated = updated.model_copy(update=changes)
            self.ledger.put(updated)

        logger.info("Added %s to %s, quantity=%s", request.quantity, updated.label, updated.quantity)
        return updated

    async def undo_last_use(self, item_id: int, performed_by: str = "") -> InventoryItemSnapshot:
        """
        Gives back the most recent confirmed use of an item.

        There is no dedicated undo endpoint: the quantity goes back through
        add_stock with an "Undo of last use" note, and the use is dropped
        from the log only once the backend has accepted it.

        Raises:
            InvalidInputError: no use of the item was confirmed in this session
            BackendError: backend rejected the addition (nothing is undone)
        """
        quantity = self.ledger.last_use(item_id)
        updated = await self.add_stock(
            item_id,
            StockAddRequest(quantity=quantity, performed_by=performed_by, notes="Undo of last use"),
        )
        self.ledger.pop_last_use(item_id)
        logger.info("Undid use of %s on %s", quantity, updated.label)
        return updated

    # ------------------------------------------------------------
    # Item management
    # ------------------------------------------------------------

    async def create_item(self, data: InventoryItemCreate) -> InventoryItemSnapshot:
        """
        Registers a new item and adds it to the mirror.

        Raises:
            BackendError: backend rejected the item or answered without a
                usable record
        """
        payload = data.to_payload()
        response = await self.api.create_inventory_item(payload)
        body = response.unwrap(f"Could not create {data.name}")
        if not isinstance(body, dict):
            raise BackendError(f"Could not create {data.name}: malformed response")
        try:
            snapshot = InventoryItemSnapshot.model_validate({**payload, **body})
        except SchemaValidationError as e:
            logger.error("Malformed inventory item created %r: %s", body, e)
            raise BackendError(f"Could not create {data.name}: malformed response")

        self.ledger.put(snapshot)
        logger.info("Inventory item created: %s (id=%s)", snapshot.label, snapshot.item_id)
        return snapshot

    async def update_item(self, item_id: int, data: InventoryItemUpdate) -> InventoryItemSnapshot:
        """
        Edits an item's descriptive fields.

        The record returned by the backend replaces the mirror entry; if the
        response carries none, the changes are merged locally. While uses of
        the item are in flight the mirrored quantity is kept.

        Raises:
            NotFoundError: item not in the mirror
            BackendError: backend rejected the update
        """
        snapshot = self.ledger.get(item_id)
        response = await self.api.update_inventory_item(item_id, data.to_payload())
        body = response.unwrap(f"Could not update {snapshot.label}")

        current = self.ledger.get(item_id)
        updated = current.model_copy(update=data.changes())
        if isinstance(body, dict) and body:
            try:
                updated = InventoryItemSnapshot.model_validate({"id": item_id, **body})
            except SchemaValidationError as e:
                logger.error("Malformed inventory item %r, keeping local changes: %s", body, e)
        if self.ledger.pending_count(item_id):
            updated = updated.model_copy(update={"quantity": current.quantity})

        self.ledger.put(updated)
        logger.info("Inventory item updated: %s", updated.label)
        return updated

    async def delete_item(self, item_id: int) -> None:
        """
        Deletes an item from the backend and the mirror.

        Raises:
            NotFoundError: item not in the mirror
            BackendError: backend rejected the deletion (mirror unchanged)
        """
        snapshot = self.ledger.get(item_id)
        response = await self.api.delete_inventory_item(item_id)
        response.unwrap(f"Could not delete {snapshot.label}")
        self.ledger.remove(item_id)
        logger.info("Inventory item deleted: %s", snapshot.label)

    # ------------------------------------------------------------
    # Alerts and reports
    # ------------------------------------------------------------

    def low_stock_items(self) -> list[InventoryItemSnapshot]:
        return self.ledger.low_stock()

    def expiring_items(self, today: Optional[datetime.date] = None) -> list[InventoryItemSnapshot]:
        return self.ledger.expiring_soon(today, self.settings.near_expiry_days)

    def summary(self, today: Optional[datetime.date] = None) -> InventorySummary:
        return self.ledger.summary(today, self.settings.near_expiry_days)

    async def transactions(self, item_id: Optional[int] = None) -> list[StockTransaction]:
        """
        Stock movements, optionally for a single item.

        Raises:
            BackendError: if the transactions cannot be fetched
        """
        response = await self.api.get_stock_transactions(item_id)
        data = response.unwrap("Stock transactions")
        transactions = []
        for record in _as_list(data):
            try:
                transactions.append(StockTransaction.model_validate(record))
            except SchemaValidationError as e:
                logger.error("Skipping malformed stock transaction %r: %s", record, e)
        return transactions
