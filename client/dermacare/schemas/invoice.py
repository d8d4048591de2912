"""
Pydantic schemas for invoices
Project: DermaCare Client

Contains:
- Enums: PaymentStatus, PaymentMethod, ServiceLineError
- ServiceLine and its validation result
- InvoiceTotals (the values printed on receipts)
- StatusChange (payment status audit entry)
- Invoice (draft or finalized)
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class PaymentStatus(str, Enum):
    """Payment status of an invoice."""
    NOT_PAID = "not_paid"
    PAID = "paid"
    CANCELED = "canceled"


class PaymentMethod(str, Enum):
    """Supported payment methods."""
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    E_WALLET = "e_wallet"


class ServiceLineError(str, Enum):
    """Reasons a service line is rejected."""
    INVALID_QUANTITY = "InvalidQuantity"
    INVALID_PRICE = "InvalidPrice"
    EMPTY_DESCRIPTION = "EmptyDescription"


# -------------------------------------------------------------------
# Valid status transitions
# -------------------------------------------------------------------

# Single source of truth, enforced by InvoiceService.
VALID_STATUS_TRANSITIONS: dict[PaymentStatus, list[PaymentStatus]] = {
    PaymentStatus.NOT_PAID: [PaymentStatus.PAID, PaymentStatus.CANCELED],
    PaymentStatus.PAID: [PaymentStatus.NOT_PAID],
    PaymentStatus.CANCELED: [],  # terminal
}


# -------------------------------------------------------------------
# ServiceLine
# -------------------------------------------------------------------

class ServiceLine(BaseModel):
    """One billable service on an invoice."""

    description: str = Field(..., min_length=1, max_length=255, description="Service name")
    quantity: int = Field(default=1, ge=1, description="Quantity")
    unit_price: Decimal = Field(..., ge=0, description="Unit price")
    service_id: Optional[int] = Field(None, description="Backend service id, if any")

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        """Rejects descriptions made only of whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("description cannot be blank")
        return v

    @computed_field
    @property
    def line_amount(self) -> Decimal:
        """quantity * unit_price."""
        return self.quantity * self.unit_price


class ServiceLineValidation(BaseModel):
    """Outcome of validate_service_line."""

    valid: bool
    reason: Optional[ServiceLineError] = None


# -------------------------------------------------------------------
# Totals
# -------------------------------------------------------------------

class InvoiceTotals(BaseModel):
    """
    Derived monetary fields of an invoice.

    These are the exact values embedded in printed receipts.
    """

    model_config = ConfigDict(frozen=True)

    subtotal: Decimal = Field(default=Decimal("0.00"))
    discount_applied: Decimal = Field(default=Decimal("0.00"))
    insurance_amount: Decimal = Field(default=Decimal("0.00"))
    patient_due: Decimal = Field(default=Decimal("0.00"))

    def as_export_dict(self, currency_label: str = "") -> dict[str, str]:
        """
        Formats the totals for print/PDF templates.

        Args:
            currency_label: Prefix such as "L.E"

        Returns:
            Mapping field name -> formatted amount
        """
        prefix = f"{currency_label} " if currency_label else ""
        return {
            "subtotal": f"{prefix}{self.subtotal:.2f}",
            "discount": f"{prefix}{self.discount_applied:.2f}",
            "insurance": f"{prefix}{self.insurance_amount:.2f}",
            "total": f"{prefix}{self.patient_due:.2f}",
        }


# -------------------------------------------------------------------
# Status audit
# -------------------------------------------------------------------

class StatusChange(BaseModel):
    """Append-only record of a payment status change."""

    model_config = ConfigDict(frozen=True)

    from_status: PaymentStatus
    to_status: PaymentStatus
    reason: Optional[str] = None
    changed_by: Optional[str] = None
    changed_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


# -------------------------------------------------------------------
# Invoice
# -------------------------------------------------------------------

class Invoice(BaseModel):
    """
    Invoice for a patient.

    Derived totals are always recomputed from the stored services,
    discount and insurance snapshot; they are never stored.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: Optional[int] = Field(None, description="Backend id, None until saved")
    patient_id: int = Field(..., description="Patient the invoice belongs to")
    services: list[ServiceLine] = Field(default_factory=list)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="Flat discount")
    insurance_provider: Optional[str] = Field(None, max_length=100)
    insurance_coverage_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    payment_status: PaymentStatus = Field(default=PaymentStatus.NOT_PAID)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    status_history: list[StatusChange] = Field(default_factory=list)

    @field_validator("insurance_provider")
    @classmethod
    def blank_provider_is_none(cls, v: Optional[str]) -> Optional[str]:
        """An empty provider means no insurance."""
        if v is not None:
            v = v.strip()
        return v or None

    @property
    def label(self) -> str:
        """Name used in user-facing messages."""
        return f"invoice {self.id}" if self.id is not None else "draft invoice"

    @property
    def has_insurance(self) -> bool:
        return self.insurance_provider is not None

    @property
    def is_draft(self) -> bool:
        """Drafts are the only invoices whose lines may be edited."""
        return self.payment_status == PaymentStatus.NOT_PAID

    @computed_field
    @property
    def totals(self) -> InvoiceTotals:
        """Totals recomputed from the current snapshot."""
        from dermacare.services.invoice_calculator import compute_totals

        coverage = self.insurance_coverage_percent if self.has_insurance else Decimal("0")
        return compute_totals(self.services, self.discount_amount, coverage)

    def to_payload(self) -> dict[str, Any]:
        """Request body sent to the backend when saving."""
        totals = self.totals
        return {
            "patient": self.patient_id,
            "services": [
                {
                    "service": line.service_id,
                    "description": line.description,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                }
                for line in self.services
            ],
            "discount": str(self.discount_amount),
            "insurance_provider": self.insurance_provider or "",
            "insurance_coverage": str(self.insurance_coverage_percent),
            "payment_status": self.payment_status.value,
            "payment_method": self.payment_method.value,
            "subtotal": str(totals.subtotal),
            "insurance_amount": str(totals.insurance_amount),
            "total_amount": str(totals.patient_due),
        }
