"""Retry decorator for polling operations."""
import functools
import time
from typing import Tuple, Type

from sitebox.core.logger import get_logger

logger = get_logger(__name__)


def retry(
    attempts: int = 3,
    delay: float = 2.0,
    backoff: float = 1.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
):
    """Call the wrapped function until it stops raising ``exceptions``.

    The last exception is re-raised once ``attempts`` calls have failed.
    ``attempts``/``delay`` may be overridden per call with the keyword
    arguments ``_attempts`` and ``_delay``.

    Example:
        @retry(attempts=10, delay=3, exceptions=(ProvisioningError,))
        def probe(url):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, _attempts: int = None, _delay: float = None, **kwargs):
            max_attempts = _attempts if _attempts is not None else attempts
            current_delay = _delay if _delay is not None else delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.debug(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        raise
                    logger.debug(f"{func.__name__} attempt {attempt}/{max_attempts} failed: {e}")
                    if current_delay:
                        time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator
