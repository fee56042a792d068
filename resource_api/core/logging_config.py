# Logging setup
# resource_api/core/logging_config.py

import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None) -> None:
    """Configures root logging once for the process."""
    if level is None:
        from resource_api.core.config import settings
        level = settings.LOG_LEVEL

    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
