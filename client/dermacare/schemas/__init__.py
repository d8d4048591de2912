"""
Pydantic schemas
Project: DermaCare Client

Centralized import of the schemas used at the API boundary.
"""

from dermacare.schemas.diagnosis import (
    ConsumableUsage,
    DiagnosisCreate,
    MedicationEntry,
    SessionType,
)
from dermacare.schemas.envelope import ApiResponse
from dermacare.schemas.inventory import (
    BackendUseResult,
    ConsumptionReport,
    InventoryItemCreate,
    InventoryItemSnapshot,
    InventoryItemUpdate,
    InventorySummary,
    PendingUse,
    StockAddRequest,
    StockTransaction,
    StockUseRequest,
    TransactionType,
    UseFailure,
)
from dermacare.schemas.invoice import (
    VALID_STATUS_TRANSITIONS,
    Invoice,
    InvoiceTotals,
    PaymentMethod,
    PaymentStatus,
    ServiceLine,
    ServiceLineError,
    ServiceLineValidation,
    StatusChange,
)

__all__ = [
    # Diagnosis
    "ConsumableUsage",
    "DiagnosisCreate",
    "MedicationEntry",
    "SessionType",
    # Envelope
    "ApiResponse",
    # Inventory
    "BackendUseResult",
    "ConsumptionReport",
    "InventoryItemCreate",
    "InventoryItemSnapshot",
    "InventoryItemUpdate",
    "InventorySummary",
    "PendingUse",
    "StockAddRequest",
    "StockTransaction",
    "StockUseRequest",
    "TransactionType",
    "UseFailure",
    # Invoice
    "VALID_STATUS_TRANSITIONS",
    "Invoice",
    "InvoiceTotals",
    "PaymentMethod",
    "PaymentStatus",
    "ServiceLine",
    "ServiceLineError",
    "ServiceLineValidation",
    "StatusChange",
]
