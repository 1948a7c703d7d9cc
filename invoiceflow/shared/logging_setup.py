"""Process-wide logging configuration."""

import logging

from invoiceflow.shared.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: Application settings with log_level
    """
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    # httpx logs every request at INFO, which includes presigned URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
