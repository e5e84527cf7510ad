"""Utility functions and helpers for the clusterkit application."""
import logging
import threading
import time
from typing import Callable, Optional, TypeVar

from ..config import get_config

T = TypeVar('T')

SleepFunc = Callable[[float], None]


def setup_logging(name: str = None) -> logging.Logger:
    """Set up and return a configured logger instance.

    Args:
        name: Name for the logger (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name or __name__)

    # Only configure if not already configured
    if not logger.handlers:
        config = get_config()
        handler = logging.StreamHandler()
        formatter = logging.Formatter(config.logging.format)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(config.logging.level.upper())

    return logger


class RetryError(Exception):
    """Raised when a wait loop runs out of attempts."""
    pass


def wait_until(
    check: Callable[[], Optional[T]],
    attempts: int,
    interval: float,
    sleep: SleepFunc = time.sleep,
    cancel: Optional[threading.Event] = None,
    description: str = "condition",
) -> T:
    """Poll ``check`` until it returns a truthy value.

    Exceptions raised by ``check`` count as a failed attempt; the last one is
    chained onto the RetryError.

    Args:
        check: Callable returning a truthy value when the wait is over
        attempts: Maximum number of calls to ``check``
        interval: Seconds to sleep between attempts
        sleep: Sleep function, replaceable in tests
        cancel: Optional event; when set the wait stops before the next attempt
        description: What is being waited on, for error messages

    Returns:
        The first truthy value returned by ``check``

    Raises:
        CancelledError: If ``cancel`` is set
        RetryError: If every attempt failed
    """
    from ..modules.errors import CancelledError

    logger = logging.getLogger("clusterkit.utils")
    last_exception = None

    for attempt in range(attempts):
        if cancel is not None and cancel.is_set():
            raise CancelledError(f"Cancelled while waiting for {description}")
        try:
            result = check()
            if result:
                return result
        except Exception as e:
            last_exception = e
            logger.debug("Waiting for %s (attempt %d/%d): %s", description, attempt + 1, attempts, e)

        if attempt < attempts - 1:
            sleep(interval)

    message = f"Timed out waiting for {description} after {attempts} attempts"
    if last_exception is not None:
        raise RetryError(f"{message}. Last error: {last_exception}") from last_exception
    raise RetryError(message)
