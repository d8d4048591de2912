"""
Invoice service
Project: DermaCare Client

Business logic for invoices prepared at the reception desk:
- Editing draft service lines, discount and insurance
- Payment status transitions with an append-only audit trail
- Saving to the backend with the recomputed totals
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from dermacare.api.client import ClinicApiClient
from dermacare.core.exceptions import (
    InvalidInputError,
    InvalidStatusTransitionError,
)
from dermacare.schemas.invoice import (
    VALID_STATUS_TRANSITIONS,
    Invoice,
    InvoiceTotals,
    PaymentMethod,
    PaymentStatus,
    ServiceLine,
    StatusChange,
)
from dermacare.services.invoice_calculator import parse_amount, validate_service_line

logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Service for invoice drafts and payment status.

    The in-memory operations are synchronous; only save() and
    sync_mark_paid() talk to the backend.

    Implements:
    - Line validation before any change to a draft
    - Status matrix VALID_STATUS_TRANSITIONS
    - Mandatory reason when a paid invoice is reopened
    """

    def __init__(self, api: Optional[ClinicApiClient] = None) -> None:
        self.api = api

    # ------------------------------------------------------------
    # Draft editing
    # ------------------------------------------------------------

    @staticmethod
    def _ensure_draft(invoice: Invoice) -> None:
        if not invoice.is_draft:
            raise InvalidInputError(
                f"Cannot edit {invoice.label}: status is {invoice.payment_status.value}"
            )

    @staticmethod
    def _build_line(data: Any) -> ServiceLine:
        """
        Validates raw line data and converts it to a ServiceLine.

        Raises:
            InvalidInputError: with the failing reason as error_code extra
        """
        validation = validate_service_line(data)
        if not validation.valid:
            description = data.get("description") if isinstance(data, dict) else getattr(data, "description", None)
            raise InvalidInputError(
                f"Service '{description or '?'}' rejected: {validation.reason.value}",
                extra={"reason": validation.reason.value},
            )
        if isinstance(data, ServiceLine):
            return data
        return ServiceLine(
            description=str(data["description"]).strip(),
            quantity=int(parse_amount(data["quantity"])),
            unit_price=parse_amount(data["unit_price"]),
            service_id=data.get("service_id"),
        )

    def add_service(self, invoice: Invoice, data: Any) -> InvoiceTotals:
        """
        Appends a service line to a draft.

        Args:
            invoice: Draft invoice
            data: ServiceLine or dict with description/quantity/unit_price

        Returns:
            InvoiceTotals: totals after the change

        Raises:
            InvalidInputError: invoice not a draft, or invalid line
        """
        self._ensure_draft(invoice)
        line = self._build_line(data)
        invoice.services = [*invoice.services, line]
        return invoice.totals

    def update_service(self, invoice: Invoice, index: int, data: Any) -> InvoiceTotals:
        """Replaces the line at index."""
        self._ensure_draft(invoice)
        if not 0 <= index < len(invoice.services):
            raise InvalidInputError(f"No service line {index} on {invoice.label}")
        line = self._build_line(data)
        services = list(invoice.services)
        services[index] = line
        invoice.services = services
        return invoice.totals

    def remove_service(self, invoice: Invoice, index: int) -> InvoiceTotals:
        """Removes the line at index."""
        self._ensure_draft(invoice)
        if not 0 <= index < len(invoice.services):
            raise InvalidInputError(f"No service line {index} on {invoice.label}")
        invoice.services = [s for i, s in enumerate(invoice.services) if i != index]
        return invoice.totals

    def apply_discount(self, invoice: Invoice, raw_discount: Any) -> InvoiceTotals:
        """
        Sets the flat discount from user input.

        Non-numeric input counts as 0 and negatives are clamped to 0.
        A discount above the subtotal is accepted.
        """
        self._ensure_draft(invoice)
        invoice.discount_amount = max(Decimal("0"), parse_amount(raw_discount))
        return invoice.totals

    def set_insurance(
        self,
        invoice: Invoice,
        provider: Optional[str],
        raw_coverage_percent: Any,
    ) -> InvoiceTotals:
        """
        Sets insurance provider and coverage from user input.

        An empty provider removes the insurance. Coverage is clamped
        to [0, 100].
        """
        self._ensure_draft(invoice)
        coverage = min(Decimal("100"), max(Decimal("0"), parse_amount(raw_coverage_percent)))
        invoice.insurance_provider = provider
        invoice.insurance_coverage_percent = coverage if invoice.insurance_provider else Decimal("0")
        return invoice.totals

    # ------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------

    @staticmethod
    def _transition(
        invoice: Invoice,
        new_status: PaymentStatus,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> StatusChange:
        """
        Validates the transition with VALID_STATUS_TRANSITIONS and records it.

        Raises:
            InvalidStatusTransitionError: if the matrix forbids it
        """
        current = invoice.payment_status
        allowed = VALID_STATUS_TRANSITIONS.get(current, [])
        if new_status not in allowed:
            logger.warning(
                "Rejected status change on %s: %s -> %s",
                invoice.label,
                current.value,
                new_status.value,
            )
            raise InvalidStatusTransitionError(
                f"Cannot change {invoice.label} from {current.value} to {new_status.value}",
                extra={"from": current.value, "to": new_status.value},
            )

        change = StatusChange(
            from_status=current,
            to_status=new_status,
            reason=reason,
            changed_by=changed_by,
        )
        invoice.payment_status = new_status
        invoice.status_history = [*invoice.status_history, change]
        logger.info("%s: %s -> %s", invoice.label, current.value, new_status.value)
        return change

    def mark_paid(
        self,
        invoice: Invoice,
        payment_method: PaymentMethod,
        confirmed: bool,
        changed_by: Optional[str] = None,
    ) -> StatusChange:
        """
        NotPaid -> Paid.

        Requires an explicit confirmation and a recomputed patient due
        greater than zero.

        Raises:
            InvalidInputError: not confirmed, or nothing due
            InvalidStatusTransitionError: invoice not NotPaid
        """
        if not confirmed:
            raise InvalidInputError(f"Payment of {invoice.label} was not confirmed")
        if invoice.payment_status == PaymentStatus.NOT_PAID:
            due = invoice.totals.patient_due
            if due <= 0:
                raise InvalidInputError(
                    f"Nothing due on {invoice.label}: patient due is {due}"
                )
        change = self._transition(invoice, PaymentStatus.PAID, changed_by=changed_by)
        invoice.payment_method = payment_method
        return change

    def cancel(
        self,
        invoice: Invoice,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> StatusChange:
        """NotPaid -> Canceled (terminal)."""
        return self._transition(invoice, PaymentStatus.CANCELED, reason, changed_by)

    def reopen(
        self,
        invoice: Invoice,
        reason: str,
        changed_by: Optional[str] = None,
    ) -> StatusChange:
        """
        Paid -> NotPaid, e.g. to correct a mis-click.

        A non-blank reason is mandatory and kept in the status history.

        Raises:
            InvalidInputError: missing reason
            InvalidStatusTransitionError: invoice not Paid
        """
        if not reason or not reason.strip():
            raise InvalidInputError(f"A reason is required to reopen {invoice.label}")
        return self._transition(invoice, PaymentStatus.NOT_PAID, reason.strip(), changed_by)

    # ------------------------------------------------------------
    # Backend
    # ------------------------------------------------------------

    def _require_api(self) -> ClinicApiClient:
        if self.api is None:
            raise RuntimeError("InvoiceService was created without an API client")
        return self.api

    async def save(self, invoice: Invoice) -> Invoice:
        """
        Creates or updates the invoice on the backend.

        The payload carries the totals recomputed from the snapshot.

        Raises:
            BackendError: if the backend rejects the invoice
        """
        api = self._require_api()
        payload = invoice.to_payload()
        if invoice.id is None:
            response = await api.create_invoice(payload)
        else:
            response = await api.update_invoice(invoice.id, payload)
        data = response.unwrap(f"Could not save {invoice.label}")

        if invoice.id is None and isinstance(data, dict) and data.get("id") is not None:
            invoice.id = int(data["id"])
        logger.info("Saved %s, patient due=%s", invoice.label, invoice.totals.patient_due)
        return invoice

    async def sync_mark_paid(
        self,
        invoice: Invoice,
        payment_method: PaymentMethod,
        changed_by: Optional[str] = None,
    ) -> StatusChange:
        """
        Marks the invoice paid locally and on the backend.

        The local change is reverted if the backend call fails.

        Raises:
            InvalidInputError: invoice never saved, or nothing due
            BackendError: backend rejected the change
        """
        api = self._require_api()
        if invoice.id is None:
            raise InvalidInputError("Save the draft invoice before marking it paid")

        previous_status = invoice.payment_status
        previous_method = invoice.payment_method
        previous_history = list(invoice.status_history)

        change = self.mark_paid(invoice, payment_method, confirmed=True, changed_by=changed_by)
        response = await api.mark_invoice_paid(invoice.id, payment_method.value)
        if not response.success:
            invoice.payment_status = previous_status
            invoice.payment_method = previous_method
            invoice.status_history = previous_history
            response.unwrap(f"Could not mark {invoice.label} as paid")
        return change
