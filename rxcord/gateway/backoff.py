"""Reconnection delays for the gateway."""

import random
from dataclasses import dataclass


@dataclass
class RetryPolicy:
    """Configurable retry behavior for gateway reconnection.

    Retries are unbounded; a long-running bot keeps trying.

    Attributes:
        base_delay: Initial delay between failed connection attempts, seconds.
        max_delay: Maximum delay between failed connection attempts.
        backoff_factor: Multiplier for exponential backoff.
        jitter: Randomization factor (0.0-1.0) applied to the exponential delay.
        session_delay_min: Lower bound of the delay before re-identifying or
            reopening after the server dropped or invalidated a session.
        session_delay_max: Upper bound of that delay.
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: float = 0.1
    session_delay_min: float = 1.0
    session_delay_max: float = 6.0

    def get_delay(self, attempt: int) -> float:
        """Delay before connection attempt ``attempt + 1`` (0-indexed).

        delay = min(base_delay * (backoff_factor ^ attempt), max_delay) +/- jitter
        """
        try:
            delay = min(self.base_delay * (self.backoff_factor**attempt), self.max_delay)
        except OverflowError:
            # attempt grows without bound during a long outage
            delay = self.max_delay
        jitter_range = delay * self.jitter
        return delay + random.uniform(-jitter_range, jitter_range)

    def get_session_delay(self) -> float:
        """Uniformly random delay, spreading out clients reconnecting together."""
        return random.uniform(self.session_delay_min, self.session_delay_max)
