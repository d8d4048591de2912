"""
Doctor dashboard
Project: DermaCare Client
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from dermacare.api.client import ClinicApiClient
from dermacare.core.config import Settings, get_settings
from dermacare.core.exceptions import BackendError

logger = logging.getLogger(__name__)

DashboardCallback = Callable[[Any], Awaitable[None]]


class DashboardService:
    """Fetches dashboard data and refreshes it at a fixed interval."""

    def __init__(self, api: ClinicApiClient, settings: Optional[Settings] = None) -> None:
        self.api = api
        self.settings = settings or get_settings()

    async def fetch(self, doctor_id: int) -> Any:
        """
        Raises:
            BackendError: if the dashboard cannot be fetched
        """
        response = await self.api.get_doctor_dashboard(doctor_id)
        return response.unwrap(f"Dashboard of doctor {doctor_id}")

    async def poll(
        self,
        doctor_id: int,
        on_update: DashboardCallback,
        stop: asyncio.Event,
        interval: Optional[float] = None,
    ) -> int:
        """
        Refreshes the dashboard until stop is set.

        A failed refresh is logged and the previous data stays on screen;
        the next tick tries again.

        Returns:
            int: number of successful refreshes
        """
        interval = interval if interval is not None else self.settings.dashboard_refresh_seconds
        refreshes = 0
        while not stop.is_set():
            try:
                data = await self.fetch(doctor_id)
            except BackendError as e:
                logger.error("Dashboard refresh failed: %s", e.detail)
            else:
                await on_update(data)
                refreshes += 1
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        return refreshes
