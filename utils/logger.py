import logging
import os
import sys

# Libraries that log whole protocol exchanges at DEBUG/INFO
NOISY_LOGGERS = ("imapclient", "httpx", "anthropic")


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name.

    Usage in any module:
        from utils.logger import get_logger
        logger = get_logger(__name__)
        logger.info("Something happened")
    """
    return logging.getLogger(name)


def setup_logging(log_level: str = "INFO", log_file: str = "") -> None:
    """Call once at startup from main.py to configure logging globally."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for h in handlers:
        h.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # imapclient logs every command (including AUTHENTICATE) below WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
