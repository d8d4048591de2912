"""
REST client for the clinic backend
Project: DermaCare Client

Thin async wrappers over the backend endpoints. Every method returns an
ApiResponse envelope instead of raising: HTTP and transport errors become
success=False with the server-provided "error" message when available,
a per-call fallback message otherwise.
"""

import logging
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from dermacare.core.config import Settings, get_settings
from dermacare.schemas.envelope import ApiResponse

logger = logging.getLogger(__name__)


class ClinicApiClient:
    """
    Async client for the clinic REST API.

    Usage:
        async with ClinicApiClient() as api:
            response = await api.get_inventory()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            settings: Settings (default: get_settings())
            transport: Custom httpx transport, used by tests
        """
        self.settings = settings or get_settings()
        self.base_url = self.settings.api_base_url
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.settings.api_timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "ClinicApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------
    # Core request
    # ------------------------------------------------------------

    @staticmethod
    def _error_message(response: httpx.Response, fallback: str) -> str:
        """Extracts the backend error message from a failed response."""
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict):
            for key in ("error", "detail", "message"):
                if body.get(key):
                    return str(body[key])
        return fallback

    async def _request(
        self,
        method: str,
        path: str,
        fallback_error: str,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> ApiResponse:
        """
        Sends a request and wraps the outcome in an ApiResponse.

        Args:
            method: HTTP method
            path: Path relative to the base URL (trailing slash included)
            fallback_error: Message used when the backend gives none
            json: Request body
            params: Query string parameters
        """
        logger.info("%s %s", method, path)
        # Only GETs are retried, writes are not idempotent
        attempts = 1 + (self.settings.api_max_retries if method == "GET" else 0)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self.settings.api_retry_delay_seconds),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.request(
                        method, path, json=json, params=params
                    )
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            return ApiResponse.fail(fallback_error)

        if response.is_error:
            message = self._error_message(response, fallback_error)
            logger.error(
                "%s %s returned %s: %s", method, path, response.status_code, message
            )
            return ApiResponse.fail(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return ApiResponse.ok(status_code=response.status_code)

        try:
            data = response.json()
        except ValueError:
            logger.error("%s %s returned a malformed body", method, path)
            return ApiResponse.fail(fallback_error, status_code=response.status_code)
        return ApiResponse.ok(data, status_code=response.status_code)

    # ------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------

    async def get_inventory(self) -> ApiResponse:
        return await self._request("GET", "/inventory/", "Failed to fetch inventory")

    async def get_inventory_item(self, item_id: int) -> ApiResponse:
        return await self._request(
            "GET", f"/inventory/{item_id}/", "Failed to fetch inventory item"
        )

    async def create_inventory_item(self, payload: dict[str, Any]) -> ApiResponse:
        return await self._request(
            "POST", "/inventory/", "Failed to create inventory item", json=payload
        )

    async def update_inventory_item(self, item_id: int, payload: dict[str, Any]) -> ApiResponse:
        return await self._request(
            "PATCH",
            f"/inventory/{item_id}/",
            "Failed to update inventory item",
            json=payload,
        )

    async def delete_inventory_item(self, item_id: int) -> ApiResponse:
        return await self._request(
            "DELETE", f"/inventory/{item_id}/", "Failed to delete inventory item"
        )

    async def use_stock(self, item_id: int, payload: dict[str, Any]) -> ApiResponse:
        """Deducts stock; payload is {quantity, notes, performed_by}."""
        return await self._request(
            "POST", f"/inventory/{item_id}/use_stock/", "Failed to use stock", json=payload
        )

    async def add_stock(self, item_id: int, payload: dict[str, Any]) -> ApiResponse:
        """Adds stock; payload may include supplier and expiry_date."""
        return await self._request(
            "POST", f"/inventory/{item_id}/add_stock/", "Failed to add stock", json=payload
        )

    async def get_low_stock(self) -> ApiResponse:
        return await self._request(
            "GET", "/inventory/low_stock/", "Failed to fetch low stock items"
        )

    async def get_expiring(self) -> ApiResponse:
        return await self._request(
            "GET", "/inventory/expiring_soon/", "Failed to fetch expiring items"
        )

    async def get_inventory_summary(self) -> ApiResponse:
        return await self._request(
            "GET", "/inventory/summary/", "Failed to fetch inventory summary"
        )

    async def get_stock_transactions(self, item_id: Optional[int] = None) -> ApiResponse:
        params = {"item": item_id} if item_id is not None else None
        return await self._request(
            "GET", "/stock-transactions/", "Failed to fetch transactions", params=params
        )

    # ------------------------------------------------------------
    # Doctors / patients
    # ------------------------------------------------------------

    async def get_doctor_dashboard(self, doctor_id: int) -> ApiResponse:
        return await self._request(
            "GET", f"/doctors/{doctor_id}/dashboard/", "Failed to fetch dashboard data"
        )

    async def save_diagnosis(self, patient_id: int, payload: dict[str, Any]) -> ApiResponse:
        return await self._request(
            "POST",
            f"/patients/{patient_id}/save_diagnosis/",
            "Failed to save diagnosis",
            json=payload,
        )

    # ------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------

    async def get_invoices(self) -> ApiResponse:
        return await self._request("GET", "/invoices/", "Failed to fetch invoices")

    async def get_invoice(self, invoice_id: int) -> ApiResponse:
        return await self._request(
            "GET", f"/invoices/{invoice_id}/", "Failed to fetch invoice"
        )

    async def create_invoice(self, payload: dict[str, Any]) -> ApiResponse:
        return await self._request(
            "POST", "/invoices/", "Failed to create invoice", json=payload
        )

    async def update_invoice(self, invoice_id: int, payload: dict[str, Any]) -> ApiResponse:
        return await self._request(
            "PATCH", f"/invoices/{invoice_id}/", "Failed to update invoice", json=payload
        )

    async def mark_invoice_paid(self, invoice_id: int, payment_method: str) -> ApiResponse:
        return await self._request(
            "POST",
            f"/invoices/{invoice_id}/mark_paid/",
            "Failed to mark invoice as paid",
            json={"payment_method": payment_method},
        )
