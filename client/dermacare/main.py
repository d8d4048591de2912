"""
Application context
Project: DermaCare Client

Explicit application-state object wiring settings, API client, stock
ledger and services. Screens receive the context instead of reaching for
global state; the ledger is the single owner of the inventory mirror.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from dermacare.api.client import ClinicApiClient
from dermacare.core.config import Settings, get_settings
from dermacare.core.logging_config import configure_logging
from dermacare.services.dashboard_service import DashboardService
from dermacare.services.diagnosis_service import DiagnosisService
from dermacare.services.inventory_service import InventoryService
from dermacare.services.invoice_service import InvoiceService
from dermacare.services.options_service import CustomOptionsService
from dermacare.services.stock_ledger import StockLedger
from dermacare.storage.memory import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class ClinicContext:
    """Everything a screen needs, created once per session."""

    settings: Settings
    api: ClinicApiClient
    ledger: StockLedger
    inventory: InventoryService
    invoices: InvoiceService
    diagnoses: DiagnosisService
    dashboard: DashboardService
    options: CustomOptionsService

    async def aclose(self) -> None:
        await self.api.aclose()
        logger.info("%s context closed", self.settings.app_name)

    async def __aenter__(self) -> "ClinicContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def create_context(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ClinicContext:
    """
    Builds the application context.

    Args:
        settings: Settings (default: get_settings())
        store: Device key-value storage (default: in-memory)
        transport: httpx transport override, used by tests
    """
    settings = settings or get_settings()
    configure_logging(settings)
    logger.info("Starting %s v%s (%s)", settings.app_name, settings.app_version, settings.app_env)

    api = ClinicApiClient(settings, transport=transport)
    ledger = StockLedger()
    inventory = InventoryService(api, ledger, settings)
    return ClinicContext(
        settings=settings,
        api=api,
        ledger=ledger,
        inventory=inventory,
        invoices=InvoiceService(api),
        diagnoses=DiagnosisService(api, inventory),
        dashboard=DashboardService(api, settings),
        options=CustomOptionsService(store or InMemoryStore()),
    )
