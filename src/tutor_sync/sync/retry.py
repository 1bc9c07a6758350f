"""Retry policy for store loads."""

from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass

# Injected so tests can replace asyncio.sleep with a fake clock
SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``base_delay * multiplier ** attempt``.

    With the defaults the retries wait 1s, 3s and 9s.

    Attributes:
        max_attempts: Number of retries after the first failed fetch.
        base_delay: Delay before the first retry, in seconds.
        multiplier: Growth factor between consecutive delays.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 3.0

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    def delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-based)."""
        return self.base_delay * self.multiplier**attempt

    def delays(self) -> Iterator[float]:
        """Yield the delay before each retry, in order."""
        for attempt in range(self.max_attempts):
            yield self.delay(attempt)
