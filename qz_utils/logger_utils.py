import logging
import os
import sys
from pythonjsonlogger.json import JsonFormatter

# This function can be called from the app factory to get a configured logger


def get_logger(name: str, log_level: str = "INFO"):
    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.propagate = False

    formatter = JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(module)s %(funcName)s %(message)s'
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(handler)

    return logger


# Default logger instance
logger = get_logger("quizportal", os.getenv("LOG_LEVEL", "INFO").upper())
