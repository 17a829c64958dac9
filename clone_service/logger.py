"""Shared service logger.  Every module does ``from logger import logger``."""

import logging
import sys

from config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(module)s] %(message)s"

logger = logging.getLogger("mongo_cloner")

if not logger.handlers:
    _handler = logging.StreamHandler(sys.stdout)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(_handler)
    logger.setLevel(LOG_LEVEL.upper())
    logger.propagate = False
