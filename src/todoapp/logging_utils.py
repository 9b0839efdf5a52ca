"""Process-wide logging setup shared by the API server and the sync client."""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s level=%(levelname)s logger=%(name)s message="%(message)s"'


def configure_logging(level: Optional[str] = None) -> None:
    """Install a key=value formatter on the root logger unless one is already configured."""
    resolved = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
    else:
        root_logger.setLevel(resolved)
