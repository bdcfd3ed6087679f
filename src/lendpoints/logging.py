"""
Package-wide logger. The level defaults to INFO and can be overridden with the `LENDPOINTS_LOG_LEVEL`
environment variable, e.g. `LENDPOINTS_LOG_LEVEL=DEBUG lendpoints index update`.
"""

import logging
import os

LOG_LEVEL_ENV_VAR = "LENDPOINTS_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def _configured_level() -> int:
    level = logging.getLevelNamesMapping().get(os.environ.get(LOG_LEVEL_ENV_VAR, "").upper())
    return level if level is not None else logging.INFO


_handler = logging.StreamHandler()
_handler.setFormatter(logging.Formatter(LOG_FORMAT))

logger = logging.getLogger("lendpoints")
logger.propagate = False
logger.setLevel(_configured_level())
logger.addHandler(_handler)
