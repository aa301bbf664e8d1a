import logging
import sys
from dashboard.core.config import get_settings

settings = get_settings()

logger = logging.getLogger("dashboard")
logger.setLevel(settings.LOG_LEVEL)

if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)

def get_logger(name: str):
    return logger.getChild(name)
