"""
Bounded readiness polling for asynchronous provider state transitions.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .errors import InfrastructureError

logger = logging.getLogger(__name__)

BACKOFF_FACTOR = 1.5


@dataclass
class AttemptBudget:
    """Attempt cap and delay bounds for one polling loop (seconds)."""
    max_attempts: int
    base_delay: float
    max_delay: float

    def delay_for(self, attempt: int) -> float:
        """Exponential delay after the given 0-based attempt."""
        return min(self.base_delay * (BACKOFF_FACTOR ** attempt), self.max_delay)


def poll_until(check: Callable[[], bool], max_attempts: int = 30, wait_time: float = 3.0,
               description: str = "resource") -> bool:
    """
    Poll a predicate at a fixed interval.

    A query that raises still uses up its attempt, so a failing API is
    never retried forever.

    Args:
        check: Predicate querying remote state
        max_attempts: Number of queries to perform at most
        wait_time: Seconds to sleep between attempts
        description: What is being waited on, for log messages

    Returns:
        True as soon as the predicate succeeds, False once the budget is spent
    """
    for attempt in range(1, max_attempts + 1):
        try:
            if check():
                return True
            logger.info(f"Waiting for {description} (attempt {attempt}/{max_attempts})")
        except Exception as e:
            logger.warning(f"Error checking {description} (attempt {attempt}/{max_attempts}): {e}")

        if attempt < max_attempts:
            time.sleep(wait_time)

    return False


def poll_with_backoff(check: Callable[[], bool], budget: AttemptBudget, description: str,
                      error_code: str, error_message: str = None) -> None:
    """
    Poll a predicate with exponential backoff, failing hard on exhaustion.

    Args:
        check: Predicate querying remote state; exceptions propagate
        budget: Attempt cap and delay bounds
        description: What is being waited on, for log messages
        error_code: Code of the InfrastructureError raised on exhaustion
        error_message: Optional message for that error

    Raises:
        InfrastructureError: If the predicate never succeeds
    """
    for attempt in range(budget.max_attempts):
        if check():
            logger.info(f"{description} is ready")
            return

        if attempt < budget.max_attempts - 1:
            delay = budget.delay_for(attempt)
            logger.info(
                f"Waiting for {description} (attempt {attempt + 1}/{budget.max_attempts}), "
                f"delay: {delay:.1f}s"
            )
            time.sleep(delay)

    raise InfrastructureError(
        error_message or f"{description} failed to become ready after {budget.max_attempts} attempts",
        error_code,
    )
