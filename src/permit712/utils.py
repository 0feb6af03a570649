import logging
import sys
from typing import Optional, Union

LOGGER_NAME = "permit712"

logger = logging.getLogger(LOGGER_NAME)


def setup_logger(level: Union[int, str] = logging.INFO, stream=None) -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    Calling it again only updates the level; handlers are not duplicated.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        logger.addHandler(handler)
    return logger


def redact_hex(value: Optional[str], keep: int = 6) -> str:
    """Shorten a hex blob for logs: ``0x1234ab…(130)…9f1c1b``."""
    if not value:
        return ""
    body = value[2:] if value.startswith("0x") else value
    if len(body) <= keep * 2:
        return value
    return f"0x{body[:keep]}…({len(body)})…{body[-keep:]}"


def abbreviate_address(address: Optional[str]) -> str:
    """Display form of an address: ``0x1234...abcd``."""
    if not address:
        return ""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"

