"""
Diagnosis service
Project: DermaCare Client

Saves a diagnosis / medical record and deducts the consumables used during
the session (e.g. the supplies of a laser session) from inventory.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from dermacare.api.client import ClinicApiClient
from dermacare.schemas.diagnosis import DiagnosisCreate
from dermacare.schemas.inventory import ConsumptionReport
from dermacare.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)


class DiagnosisResult(BaseModel):
    """Saved record plus the outcome of the consumable deductions."""

    record: Any = None
    consumption: ConsumptionReport = Field(default_factory=ConsumptionReport)

    @property
    def has_failures(self) -> bool:
        return self.consumption.has_failures


class DiagnosisService:
    """Service for the diagnosis and laser session screens."""

    def __init__(self, api: ClinicApiClient, inventory: InventoryService) -> None:
        self.api = api
        self.inventory = inventory

    async def save_diagnosis(
        self,
        patient_id: int,
        data: DiagnosisCreate,
        performed_by: str = "",
    ) -> DiagnosisResult:
        """
        Saves the record, then deducts every consumable.

        A failed save stops before any stock is touched. Failed deductions
        do not undo the saved record: they are returned in the report so
        the doctor sees every affected item at once.

        Args:
            patient_id: Patient id
            data: Diagnosis payload
            performed_by: Actor label stored on the stock transactions

        Returns:
            DiagnosisResult: backend record data and consumption report

        Raises:
            BackendError: if the diagnosis cannot be saved
        """
        response = await self.api.save_diagnosis(patient_id, data.to_payload())
        record = response.unwrap(f"Could not save diagnosis for patient {patient_id}")
        logger.info(
            "Saved %s record for patient %s", data.session_type.value, patient_id
        )

        result = DiagnosisResult(record=record)
        if data.consumables:
            result.consumption = await self.inventory.use_consumables(
                data.use_requests(performed_by)
            )
        return result
