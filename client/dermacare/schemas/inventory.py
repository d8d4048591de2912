"""
Pydantic schemas for inventory and stock movements
Project: DermaCare Client

Contains every schema used to validate inventory records coming from the
backend and the requests the client sends when stock is used or added.
"""

import datetime
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)

from dermacare.core.config import get_settings

logger = logging.getLogger(__name__)

# Values the backend and the mobile forms use for "no expiry"
_NO_EXPIRY = {"", "n/a", "na", "none", "null", "-"}


class TransactionType(str, Enum):
    """Kinds of stock transactions recorded by the backend."""
    USE = "use"
    ADD = "add"
    UNDO = "undo"
    AUDIT = "audit"


def json_number(value: Decimal) -> Union[int, float]:
    """Converts a quantity to a JSON-serializable number."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _default_min_stock_level() -> Decimal:
    return Decimal(get_settings().default_min_stock_level)


# ------------------------------------------------------------
# Snapshot
# ------------------------------------------------------------

class InventoryItemSnapshot(BaseModel):
    """
    Client-side mirror of one stock-keeping unit.

    The backend owns the authoritative quantity; this is a cache that is
    overwritten on every refresh or reconciliation.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    item_id: int = Field(..., validation_alias=AliasChoices("item_id", "id"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "item_name"))
    category: Optional[str] = None
    unit: Optional[str] = None
    supplier: Optional[str] = None
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    min_stock_level: Decimal = Field(
        default_factory=_default_min_stock_level,
        ge=0,
        validation_alias=AliasChoices("min_stock_level", "minimum_stock", "min_quantity"),
    )
    expiry_date: Optional[datetime.date] = Field(
        None, validation_alias=AliasChoices("expiry_date", "expiry")
    )

    @field_validator("quantity", mode="before")
    @classmethod
    def clamp_negative_quantity(cls, v: Any) -> Any:
        """A negative count from the backend is reported as zero."""
        if v is None:
            return Decimal("0")
        try:
            if Decimal(str(v)) < 0:
                logger.warning("Negative quantity received from backend: %s", v)
                return Decimal("0")
        except ArithmeticError:
            pass  # left to pydantic, which reports the type error
        return v

    @field_validator("min_stock_level", mode="before")
    @classmethod
    def default_min_stock_level(cls, v: Any) -> Any:
        if v is None or v == "":
            return _default_min_stock_level()
        return v

    @field_validator("expiry_date", mode="before")
    @classmethod
    def parse_expiry(cls, v: Any) -> Any:
        """'N/A' and blanks mean the item does not expire."""
        if v is None:
            return None
        if isinstance(v, str):
            if v.strip().lower() in _NO_EXPIRY:
                return None
            # Datetime strings are cut to the date part
            return v.strip()[:10]
        return v

    @property
    def label(self) -> str:
        """Name used in user-facing messages."""
        return self.name or f"item {self.item_id}"

    @computed_field
    @property
    def is_low_stock(self) -> bool:
        """True when quantity is at or below the minimum level."""
        return self.quantity <= self.min_stock_level

    def is_expired(self, today: Optional[datetime.date] = None) -> bool:
        if self.expiry_date is None:
            return False
        today = today or datetime.date.today()
        return self.expiry_date < today

    def is_expiring_soon(
        self,
        today: Optional[datetime.date] = None,
        window_days: Optional[int] = None,
    ) -> bool:
        """
        True when the item expires within the look-ahead window.

        Already expired items are included, the inventory report lists
        them in the same group.

        Args:
            today: Reference date (default: today)
            window_days: Look-ahead in days (default: settings.near_expiry_days)
        """
        if self.expiry_date is None:
            return False
        today = today or datetime.date.today()
        if window_days is None:
            window_days = get_settings().near_expiry_days
        return self.expiry_date <= today + datetime.timedelta(days=window_days)

    def days_to_expiry(self, today: Optional[datetime.date] = None) -> Optional[int]:
        """Days left before expiry, negative once expired."""
        if self.expiry_date is None:
            return None
        today = today or datetime.date.today()
        return (self.expiry_date - today).days


# ------------------------------------------------------------
# Requests
# ------------------------------------------------------------

def _not_expired(v: Optional[datetime.date]) -> Optional[datetime.date]:
    if v is not None and v < datetime.date.today():
        raise ValueError("This date is expired.")
    return v


class StockUseRequest(BaseModel):
    """One deduction attempt."""

    model_config = ConfigDict(frozen=True)

    item_id: int
    quantity: Decimal = Field(..., gt=0, description="Quantity to deduct")
    performed_by: str = Field(default="", max_length=100)
    notes: str = Field(default="")

    def to_payload(self) -> dict[str, Any]:
        return {
            "quantity": json_number(self.quantity),
            "notes": self.notes,
            "performed_by": self.performed_by,
        }


class StockAddRequest(BaseModel):
    """Stock replenishment for an existing item."""

    quantity: Decimal = Field(..., gt=0, description="Quantity received")
    performed_by: str = Field(default="", max_length=100)
    notes: str = Field(default="")
    supplier: Optional[str] = Field(None, max_length=100)
    expiry_date: Optional[datetime.date] = None

    @field_validator("expiry_date")
    @classmethod
    def validate_expiry_date(cls, v: Optional[datetime.date]) -> Optional[datetime.date]:
        """Received stock cannot already be expired."""
        return _not_expired(v)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "quantity": json_number(self.quantity),
            "notes": self.notes,
            "performed_by": self.performed_by,
        }
        if self.supplier:
            payload["supplier"] = self.supplier
        if self.expiry_date is not None:
            payload["expiry_date"] = self.expiry_date.isoformat()
        return payload


class InventoryItemCreate(BaseModel):
    """New stock-keeping unit registered from the inventory screen."""

    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    unit: Optional[str] = Field(None, max_length=50)
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    min_stock_level: Optional[Decimal] = Field(None, ge=0)
    supplier: Optional[str] = Field(None, max_length=100)
    expiry_date: Optional[datetime.date] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Item name is required")
        return v

    @field_validator("expiry_date")
    @classmethod
    def validate_expiry_date(cls, v: Optional[datetime.date]) -> Optional[datetime.date]:
        return _not_expired(v)

    def to_payload(self) -> dict[str, Any]:
        min_level = (
            self.min_stock_level
            if self.min_stock_level is not None
            else _default_min_stock_level()
        )
        payload: dict[str, Any] = {
            "item_name": self.name,
            "quantity": json_number(self.quantity),
            "min_stock_level": json_number(min_level),
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else "N/A",
        }
        for key in ("category", "unit", "supplier"):
            value = getattr(self, key)
            if value:
                payload[key] = value
        return payload


class InventoryItemUpdate(BaseModel):
    """Partial edit of an item's descriptive fields; quantity moves through use/add."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    unit: Optional[str] = Field(None, max_length=50)
    min_stock_level: Optional[Decimal] = Field(None, ge=0)
    supplier: Optional[str] = Field(None, max_length=100)
    expiry_date: Optional[datetime.date] = None

    @field_validator("expiry_date")
    @classmethod
    def validate_expiry_date(cls, v: Optional[datetime.date]) -> Optional[datetime.date]:
        return _not_expired(v)

    def changes(self) -> dict[str, Any]:
        """Fields that were set, keyed by snapshot attribute."""
        return self.model_dump(exclude_none=True)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key, value in self.changes().items():
            if key == "name":
                payload["item_name"] = value
            elif key == "min_stock_level":
                payload[key] = json_number(value)
            elif key == "expiry_date":
                payload[key] = value.isoformat()
            else:
                payload[key] = value
        return payload


# ------------------------------------------------------------
# Optimistic command and reconciliation
# ------------------------------------------------------------

class PendingUse(BaseModel):
    """A use request whose deduction is applied locally but not yet confirmed."""

    model_config = ConfigDict(frozen=True)

    request: StockUseRequest
    previous: InventoryItemSnapshot
    optimistic: InventoryItemSnapshot


class BackendUseResult(BaseModel):
    """Outcome of a use-stock call, as far as the ledger is concerned."""

    success: bool
    quantity: Optional[Decimal] = Field(None, description="Quantity confirmed by the backend")
    error: Optional[str] = None

    @classmethod
    def from_data(cls, data: Any) -> "BackendUseResult":
        """
        Builds a successful result from the use-stock response body.

        The backend returns either the updated item or a small dict with
        the new quantity, optionally nested under "item".
        """
        quantity = None
        if isinstance(data, dict):
            source = data.get("item") if isinstance(data.get("item"), dict) else data
            for key in ("quantity", "new_quantity", "remaining_quantity"):
                if source.get(key) is None:
                    continue
                try:
                    value = Decimal(str(source[key]))
                except ArithmeticError:
                    value = None
                if value is None or not value.is_finite():
                    logger.warning("Ignoring non-numeric %s in backend response: %r", key, source[key])
                    continue
                quantity = value
                break
        return cls(success=True, quantity=quantity)

    @classmethod
    def failure(cls, error: str) -> "BackendUseResult":
        return cls(success=False, error=error)


class UseFailure(BaseModel):
    """One failed deduction in a multi-item consumption."""

    item_id: int
    item_name: str
    quantity: Decimal
    reason: str

    def describe(self) -> str:
        return f"{self.item_name} (x{self.quantity}): {self.reason}"


class ConsumptionReport(BaseModel):
    """Result of deducting several consumables in one session."""

    succeeded: list[InventoryItemSnapshot] = Field(default_factory=list)
    failures: list[UseFailure] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def message(self) -> str:
        """Single consolidated message listing every failed item."""
        if not self.failures:
            return f"{len(self.succeeded)} item(s) deducted"
        lines = [f"{len(self.failures)} item(s) could not be deducted:"]
        lines.extend(f"- {failure.describe()}" for failure in self.failures)
        return "\n".join(lines)


# ------------------------------------------------------------
# Reporting
# ------------------------------------------------------------

class InventorySummary(BaseModel):
    """Counters shown on dashboards and inventory reports."""

    total_items: int = 0
    low_stock_count: int = 0
    expiring_soon_count: int = 0
    expired_count: int = 0
    total_quantity: Decimal = Decimal("0")


class StockTransaction(BaseModel):
    """Stock movement as recorded by the backend."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    item_id: int = Field(..., validation_alias=AliasChoices("item_id", "item"))
    transaction_type: TransactionType = Field(
        ..., validation_alias=AliasChoices("transaction_type", "type", "action_type")
    )
    quantity: Decimal
    performed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime.datetime] = Field(
        None, validation_alias=AliasChoices("created_at", "timestamp")
    )

    @field_validator("transaction_type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v
