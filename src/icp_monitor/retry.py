import logging
import time
from typing import Callable, Tuple, Type, TypeVar

from .errors import FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_call(
    func: Callable[..., T],
    *args,
    attempts: int = 3,
    delay: float = 10.0,
    retry_on: Tuple[Type[BaseException], ...] = (FetchError,),
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
    **kwargs
) -> T:
    """Call func with a bounded number of attempts and a fixed delay between them

    Only exceptions listed in retry_on are retried; anything else propagates
    immediately. The last error is re-raised once attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    name = label or getattr(func, "__name__", "call")
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except retry_on as e:
            last_error = e
            logger.warning(f"{name} failed (attempt {attempt}/{attempts}): {e}")
            if attempt < attempts:
                sleep(delay)

    logger.error(f"{name} giving up after {attempts} attempts: {last_error}")
    raise last_error
