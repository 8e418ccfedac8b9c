import logging

from pythonjsonlogger import jsonlogger

from honeyintel.core.config import settings

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'


def get_logger(name: str) -> logging.Logger:
    """Returns a logger emitting structured JSON lines."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        logHandler = logging.StreamHandler()
        logHandler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
        logger.addHandler(logHandler)
        logger.setLevel(settings.LOG_LEVEL)
    return logger
