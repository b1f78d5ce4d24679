"""
Logging configuration helpers.

Deutsch:
    Logging-Konfiguration.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def configure_logging(default_level: str = "INFO", override: Optional[str] = None) -> None:
    """
    Configure the root logger once.

    ``override`` (from the command line) wins over ``E2DUPES_LOGLEVEL``, which
    wins over ``default_level``.

    Deutsch:
        Richtet das Root-Logging einmalig ein.
    """

    level_name = (override or os.getenv("E2DUPES_LOGLEVEL", default_level)).upper()
    level = getattr(logging, level_name, logging.INFO)

    if len(logging.getLogger().handlers) > 0:
        logging.getLogger().setLevel(level)
        return

    logging.basicConfig(level=level, format=LOG_FORMAT)
