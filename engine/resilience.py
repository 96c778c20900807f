"""
Retry policy for chain calls.

Transient network failures (connection drops, timeouts, gateway errors)
are retried with exponential backoff. Contract-level failures (reverts,
custom errors, panics) are terminal and re-raised on the first attempt.
"""
from __future__ import annotations

import logging
import random
import time
from functools import wraps
from typing import Callable, Optional, TypeVar

import requests
from web3.exceptions import ContractLogicError, TimeExhausted

T = TypeVar('T')

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry logic."""

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 0.5,
        max_delay: float = 5.0,
        exponential_base: float = 2.0,
        jitter: bool = True
    ):
        self.max_retries = max(1, int(max_retries))
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt with exponential backoff."""
        delay = min(
            self.initial_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random())
        return delay


NETWORK_KEYWORDS = (
    'connection',
    'timeout',
    'timed out',
    'network',
    'unreachable',
    'refused',
    'reset',
    'broken pipe',
    'failed to connect',
    'unavailable',
    'bad gateway',
    'too many requests',
)


def is_contract_error(error: BaseException) -> bool:
    return isinstance(error, ContractLogicError)


def is_network_error(error: BaseException) -> bool:
    """Check if error is a transient network failure worth retrying."""
    if is_contract_error(error) or isinstance(error, TimeExhausted):
        return False
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout, ConnectionError, TimeoutError)):
        return True
    error_str = str(error).lower()
    return any(keyword in error_str for keyword in NETWORK_KEYWORDS)


def retry_network(
    func: Callable[..., T],
    *args,
    retry_config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    **kwargs
) -> T:
    """
    Call ``func`` and retry it on transient network errors.

    Non-network errors are raised immediately. When retries are exhausted
    the last network error is raised.
    """
    config = retry_config or RetryConfig()

    for attempt in range(config.max_retries):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not is_network_error(e) or attempt == config.max_retries - 1:
                raise
            if on_retry:
                on_retry(attempt, e)
            delay = config.get_delay(attempt)
            logger.warning("Network error on attempt %d/%d: %s; retrying in %.1fs", attempt + 1, config.max_retries, e, delay)
            time.sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover


def network_retry(config_attr: str = "retry_config"):
    """
    Decorator form of :func:`retry_network` for client methods.

    The retry configuration is read from ``self.<config_attr>`` at call time.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            config: Optional[RetryConfig] = getattr(self, config_attr, None)
            return retry_network(func, self, *args, retry_config=config, **kwargs)
        return wrapper
    return decorator
