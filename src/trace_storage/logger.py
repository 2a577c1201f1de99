import logging
import os

LOGGER_NAME = 'trace-storage'


def setup_logger(level: str | None = None):
    # Create logger
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel((level or os.getenv('TRACE_STORAGE_LOG_LEVEL', 'INFO')).upper())

    # Adding local handler
    if not logger.handlers:
        console_handler = logging.StreamHandler()

        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(formatter)

        logger.addHandler(console_handler)

    return logger


def get_logger(component: str) -> logging.Logger:
    """Child logger per component, e.g. ``trace-storage.span-consumer``"""
    return logging.getLogger(f"{LOGGER_NAME}.{component}")


# Create and configure logger
logger = setup_logger()
