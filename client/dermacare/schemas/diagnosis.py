"""
Pydantic schemas for diagnoses and clinical sessions
Project: DermaCare Client
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from dermacare.schemas.inventory import StockUseRequest, json_number


class SessionType(str, Enum):
    """Kind of visit being recorded."""
    DIAGNOSIS = "diagnosis"
    LASER = "laser"


class MedicationEntry(BaseModel):
    """One prescribed medication."""

    name: str = Field(..., min_length=1, max_length=200)
    dosage: str = Field(default="", max_length=100)
    frequency: str = Field(default="", max_length=100)
    duration: str = Field(default="", max_length=100)


class ConsumableUsage(BaseModel):
    """Inventory item consumed during the session."""

    item_id: int
    quantity: Decimal = Field(..., gt=0)
    notes: str = Field(default="")


class DiagnosisCreate(BaseModel):
    """Diagnosis / medical record sent to save_diagnosis."""

    doctor_id: int
    appointment_id: Optional[int] = None
    diagnosis: str = Field(..., min_length=1)
    notes: str = Field(default="")
    session_type: SessionType = Field(default=SessionType.DIAGNOSIS)
    medications: list[MedicationEntry] = Field(default_factory=list)
    consumables: list[ConsumableUsage] = Field(default_factory=list)

    @field_validator("diagnosis")
    @classmethod
    def validate_diagnosis(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("diagnosis cannot be blank")
        return v

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "doctor_id": self.doctor_id,
            "diagnosis": self.diagnosis,
            "notes": self.notes,
            "session_type": self.session_type.value,
            "medications": [m.model_dump() for m in self.medications],
            "consumables": [
                {"item_id": c.item_id, "quantity": json_number(c.quantity), "notes": c.notes}
                for c in self.consumables
            ],
        }
        if self.appointment_id is not None:
            payload["appointment_id"] = self.appointment_id
        return payload

    def use_requests(self, performed_by: str) -> list[StockUseRequest]:
        """One use request per consumable, tagged with the session."""
        return [
            StockUseRequest(
                item_id=c.item_id,
                quantity=c.quantity,
                performed_by=performed_by,
                notes=c.notes or f"{self.session_type.value} session",
            )
            for c in self.consumables
        ]
