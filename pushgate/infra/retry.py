# pushgate/infra/retry.py
import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from pushgate.core.logging_config import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


def backoff_delay(base: float, factor: float, attempt: int, cap: float, jitter: bool = True) -> float:
    # exponential backoff, up to 25% jitter on top
    delay = min(base * (factor ** attempt), cap)
    if jitter:
        delay += random.uniform(0, delay * 0.25)
    return delay


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base: float = 0.5,
    factor: float = 2.0,
    cap: float = 8.0,
    jitter: bool = True,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run fn up to `attempts` times. Non-retryable errors propagate immediately."""
    last_exc: Optional[Exception] = None
    for i in range(max(1, attempts)):
        try:
            return await fn()
        except Exception as e:
            if is_retryable and not is_retryable(e):
                raise
            last_exc = e
            if i == attempts - 1:
                break
            sleep_s = backoff_delay(base, factor, i, cap, jitter)
            if on_retry:
                on_retry(i + 1, e, sleep_s)
            else:
                logger.warning("retry_scheduled", attempt=i + 1, delay=round(sleep_s, 2), error=repr(e))
            await sleep(sleep_s)
    assert last_exc is not None
    raise last_exc
