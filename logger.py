import logging
import sys


def setup_logger(name: str = "travel_guide", level: str = "INFO"):
    """
    Console logger for the service

    Args:
      name: Logger name
      level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(handler)
    return logger


logger = logging.getLogger("travel_guide")
