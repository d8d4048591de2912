"""
API client
Project: DermaCare Client
"""

from dermacare.api.client import ClinicApiClient

__all__ = ["ClinicApiClient"]
