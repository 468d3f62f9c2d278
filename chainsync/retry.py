"""
Exponential backoff policy of the indexer iterations.
"""

from __future__ import annotations


class RetryPolicy:
    """
    Retry ceiling with exponentially growing delays.

    The n-th consecutive failure (counting from 1) waits
    ``base_delay * 2 ** (n - 1)`` seconds before the next attempt.
    The ``max_retries``-th failure exhausts the policy.

    Args:
        max_retries: number of failures that exhausts the policy
        base_delay: delay after the first failure, in seconds
    """

    max_retries: int
    base_delay: float

    def __init__(self, max_retries: int, base_delay: float):
        if max_retries < 1:
            raise ValueError("max_retries must be positive")
        if base_delay < 0:
            raise ValueError("base_delay must not be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay

    def delay(self, attempt: int) -> float:
        """
        Delay in seconds after the ``attempt``-th consecutive failure.
        """
        return self.base_delay * 2 ** (max(attempt, 1) - 1)

    def exhausted(self, attempt: int) -> bool:
        return attempt >= self.max_retries

    def __repr__(self):
        return f"RetryPolicy(max_retries={self.max_retries}, base_delay={self.base_delay})"
