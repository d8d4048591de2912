"""
Logging setup
Project: DermaCare Client
"""

import logging

from dermacare.core.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """
    Configures the root logger from the settings.

    Args:
        settings: Application settings (log_level is used)
    """
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    # httpx logs every request at INFO; keep it quiet unless debugging
    if not settings.debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
