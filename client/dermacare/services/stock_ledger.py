"""
Stock ledger - optimistic local mirror of inventory quantities
Project: DermaCare Client

A "use" action is applied to the local mirror immediately and reconciled
once the backend answers:
- success: the backend-confirmed quantity becomes the new truth
- failure: the deduction is rolled back

The backend stays authoritative. The mirror is refreshed on every load and
never reports a quantity below zero.
"""

import datetime
import logging
from decimal import Decimal
from typing import Iterable, Optional

from dermacare.core.exceptions import (
    InsufficientStockError,
    InvalidInputError,
    NotFoundError,
)
from dermacare.schemas.inventory import (
    BackendUseResult,
    InventoryItemSnapshot,
    InventorySummary,
    PendingUse,
    StockUseRequest,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ------------------------------------------------------------
# Pure update rules
# ------------------------------------------------------------

def apply_optimistic_use(
    snapshot: InventoryItemSnapshot,
    request: StockUseRequest,
) -> tuple[InventoryItemSnapshot, Optional[InsufficientStockError]]:
    """
    Applies a deduction to a snapshot without any I/O.

    The caller must not send the request to the backend when an error is
    returned.

    Args:
        snapshot: Current local snapshot
        request: Use request

    Returns:
        (updated snapshot, None) on success,
        (unchanged snapshot, InsufficientStockError) when the request
        exceeds the known quantity
    """
    if request.quantity > snapshot.quantity:
        logger.warning(
            "Insufficient stock for %s: available=%s, requested=%s",
            snapshot.label,
            snapshot.quantity,
            request.quantity,
        )
        error = InsufficientStockError(
            f"Insufficient stock for {snapshot.label}. "
            f"Available: {snapshot.quantity}, requested: {request.quantity}",
            extra={
                "item_id": snapshot.item_id,
                "available": str(snapshot.quantity),
                "requested": str(request.quantity),
            },
        )
        return snapshot, error

    updated = snapshot.model_copy(update={"quantity": snapshot.quantity - request.quantity})
    return updated, None


def reconcile(pending: PendingUse, result: BackendUseResult) -> InventoryItemSnapshot:
    """
    Resolves an optimistic deduction against the backend outcome.

    On success the backend quantity wins (last write wins, no client-side
    conflict resolution); if the backend omits it, the optimistic guess
    is kept. On failure the pre-use quantity is restored exactly.

    Args:
        pending: The issued optimistic command
        result: Backend outcome

    Returns:
        InventoryItemSnapshot: final snapshot
    """
    if not result.success:
        return pending.optimistic.model_copy(update={"quantity": pending.previous.quantity})

    if result.quantity is None:
        return pending.optimistic

    confirmed = result.quantity
    if confirmed < 0:
        logger.warning(
            "Backend confirmed a negative quantity for %s: %s",
            pending.optimistic.label,
            confirmed,
        )
        confirmed = ZERO
    return pending.optimistic.model_copy(update={"quantity": confirmed})


# ------------------------------------------------------------
# Ledger
# ------------------------------------------------------------

class StockLedger:
    """
    In-memory mirror of inventory snapshots.

    Works as a command queue per item: issue() applies the deduction and
    returns the pending command, on_result() commits or rolls it back.
    Screens read from the same ledger so they never disagree.
    """

    def __init__(self) -> None:
        self._items: dict[int, InventoryItemSnapshot] = {}
        # item_id -> requests still in flight
        self._pending: dict[int, list[StockUseRequest]] = {}
        # item_id -> confirmed quantities, most recent last
        self._usage: dict[int, list[Decimal]] = {}

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def load(self, snapshots: Iterable[InventoryItemSnapshot]) -> None:
        """
        Replaces the whole cache with fresh backend data.

        Fresh quantities already include or exclude whatever was in flight,
        so pending deductions are forgotten. A result arriving later for one
        of them no longer shifts the reloaded quantity.
        """
        self._items = {s.item_id: s for s in snapshots}
        self._pending = {}
        logger.info("Stock ledger loaded with %s items", len(self._items))

    def get(self, item_id: int) -> InventoryItemSnapshot:
        """
        Returns the cached snapshot.

        Raises:
            NotFoundError: if the item is not in the cache
        """
        snapshot = self._items.get(item_id)
        if snapshot is None:
            raise NotFoundError(f"Inventory item not found: {item_id}")
        return snapshot

    def put(self, snapshot: InventoryItemSnapshot) -> None:
        self._items[snapshot.item_id] = snapshot

    def remove(self, item_id: int) -> None:
        """Drops an item together with its pending deductions and usage log."""
        self._items.pop(item_id, None)
        self._pending.pop(item_id, None)
        self._usage.pop(item_id, None)

    def items(self) -> list[InventoryItemSnapshot]:
        """Snapshots ordered by name."""
        return sorted(self._items.values(), key=lambda s: s.name.lower())

    def low_stock(self) -> list[InventoryItemSnapshot]:
        return [s for s in self.items() if s.is_low_stock]

    def expiring_soon(
        self,
        today: Optional[datetime.date] = None,
        window_days: Optional[int] = None,
    ) -> list[InventoryItemSnapshot]:
        """Items expiring within the window, soonest first."""
        items = [s for s in self._items.values() if s.is_expiring_soon(today, window_days)]
        return sorted(items, key=lambda s: s.expiry_date)

    def summary(
        self,
        today: Optional[datetime.date] = None,
        window_days: Optional[int] = None,
    ) -> InventorySummary:
        snapshots = list(self._items.values())
        return InventorySummary(
            total_items=len(snapshots),
            low_stock_count=sum(1 for s in snapshots if s.is_low_stock),
            expiring_soon_count=sum(1 for s in snapshots if s.is_expiring_soon(today, window_days)),
            expired_count=sum(1 for s in snapshots if s.is_expired(today)),
            total_quantity=sum((s.quantity for s in snapshots), ZERO),
        )

    def pending_count(self, item_id: int) -> int:
        """Number of deductions on the item still waiting for the backend."""
        return len(self._pending.get(item_id, []))

    def last_use(self, item_id: int) -> Decimal:
        """
        Quantity of the most recent confirmed use of the item.

        Raises:
            InvalidInputError: if no use was confirmed in this session
        """
        usage = self._usage.get(item_id)
        if not usage:
            raise InvalidInputError(
                "No recent usage recorded to undo for this item.",
                extra={"item_id": item_id},
            )
        return usage[-1]

    def pop_last_use(self, item_id: int) -> Decimal:
        """Removes and returns the most recent confirmed use."""
        quantity = self.last_use(item_id)
        self._usage[item_id].pop()
        return quantity

    # ------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------

    def issue(self, request: StockUseRequest) -> PendingUse:
        """
        Applies a deduction to the mirror before the backend call.

        A second request on the same item is checked against the quantity
        already reduced by the first, so rapid repeated submissions cannot
        jointly exceed the known stock.

        Raises:
            NotFoundError: if the item is unknown
            InsufficientStockError: if the request exceeds the local quantity
        """
        previous = self.get(request.item_id)
        updated, error = apply_optimistic_use(previous, request)
        if error is not None:
            raise error

        self._items[request.item_id] = updated
        self._pending.setdefault(request.item_id, []).append(request)
        logger.info(
            "Optimistic use on %s: %s -> %s",
            previous.label,
            previous.quantity,
            updated.quantity,
        )
        return PendingUse(request=request, previous=previous, optimistic=updated)

    def on_result(self, pending: PendingUse, result: BackendUseResult) -> InventoryItemSnapshot:
        """
        Commits or rolls back an issued deduction.

        With a single command in flight this is exactly reconcile(). When
        other deductions on the same item are still pending they stay
        applied: a rollback only gives back this command's quantity, and a
        confirmed quantity is reduced by the ones not yet confirmed.

        A command issued before the last load() is no longer applied to the
        mirror: its rollback changes nothing, and its confirmation adopts
        the backend quantity.

        Returns:
            InventoryItemSnapshot: the snapshot now stored in the mirror
        """
        item_id = pending.request.item_id
        outstanding = self._pending.get(item_id, [])
        tracked = any(r is pending.request for r in outstanding)
        if tracked:
            outstanding[:] = [r for r in outstanding if r is not pending.request]
        if not outstanding:
            self._pending.pop(item_id, None)
        others = sum((r.quantity for r in outstanding), ZERO)

        current = self._items.get(item_id)
        if current is None:
            logger.warning("Result for %s ignored, item no longer mirrored", pending.optimistic.label)
            return reconcile(pending, result)

        restored = current.quantity + pending.request.quantity if tracked else current.quantity
        base = pending.model_copy(
            update={
                "optimistic": current,
                "previous": current.model_copy(update={"quantity": restored}),
            }
        )
        final = reconcile(base, result)
        if others and result.success and result.quantity is not None:
            final = final.model_copy(update={"quantity": max(ZERO, final.quantity - others)})

        self._items[item_id] = final
        if result.success:
            self._usage.setdefault(item_id, []).append(pending.request.quantity)
            logger.info("Use on %s confirmed, quantity=%s", final.label, final.quantity)
        else:
            logger.warning(
                "Use on %s rolled back (%s), quantity=%s",
                final.label,
                result.error,
                final.quantity,
            )
        return final

    def apply_addition(self, item_id: int, quantity: Decimal) -> InventoryItemSnapshot:
        """Adds received stock to the mirror."""
        snapshot = self.get(item_id)
        updated = snapshot.model_copy(update={"quantity": snapshot.quantity + quantity})
        self._items[item_id] = updated
        return updated

    def set_quantity(self, item_id: int, quantity: Decimal) -> InventoryItemSnapshot:
        """Overwrites the quantity with a backend-confirmed value."""
        snapshot = self.get(item_id)
        updated = snapshot.model_copy(update={"quantity": max(ZERO, quantity)})
        self._items[item_id] = updated
        return updated
