"""
Retry Utility

Bounded exponential-backoff wrapper around any fallible callable.
"""

import time
import logging

logger = logging.getLogger(__name__)


def retry(
    operation,
    max_attempts=3,
    initial_delay=1.0,
    backoff_multiplier=2.0,
    on_attempt_failed=None,
    sleep=time.sleep,
    description=None,
):
    """
    Call `operation` until it succeeds or `max_attempts` is reached.

    After each failure `on_attempt_failed(attempt, error)` is invoked, then,
    if attempts remain, the call sleeps for the current delay and multiplies
    it by `backoff_multiplier`. There is no delay after the final attempt.

    Args:
        operation (callable): Zero-argument callable to invoke
        max_attempts (int): Maximum number of invocations
        initial_delay (float): Seconds to wait after the first failure
        backoff_multiplier (float): Factor applied to the delay after each wait
        on_attempt_failed (callable, optional): Hook called with (attempt, error)
        sleep (callable): Suspension function, injectable for tests
        description (str, optional): Label used in log messages

    Returns:
        The result of the first successful invocation.

    Raises:
        The exception from the last attempt once all attempts have failed.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    label = description or getattr(operation, "__name__", "operation")
    delay = initial_delay
    last_error = None

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except Exception as e:
            last_error = e
            if on_attempt_failed:
                on_attempt_failed(attempt, e)
            logger.warning(f"{label} failed (attempt {attempt}/{max_attempts}): {e}")

            if attempt < max_attempts:
                sleep(delay)
                delay *= backoff_multiplier

    logger.error(f"{label}: all {max_attempts} attempts exhausted")
    raise last_error
