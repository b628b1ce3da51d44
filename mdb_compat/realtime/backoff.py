"""
Reconnect backoff policy.
"""

from ..constants import MAX_RECONNECT_ATTEMPTS, RECONNECT_BASE_DELAY_SECONDS


class ReconnectPolicy:
    """
    Exponential backoff with a hard attempt cap.

    Attempt ``n`` (1-based) waits ``base_delay * 2 ** (n - 1)`` seconds. Once
    ``max_attempts`` delays have been handed out, ``next_delay()`` returns
    None and the caller must stop reconnecting.

    Example:
        policy = ReconnectPolicy()
        [policy.next_delay() for _ in range(6)]
        # -> [1.0, 2.0, 4.0, 8.0, 16.0, None]
    """

    def __init__(
        self,
        base_delay: float = RECONNECT_BASE_DELAY_SECONDS,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ):
        if base_delay <= 0:
            raise ValueError(f"base_delay must be > 0, got {base_delay}")
        if max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {max_attempts}")
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.attempts = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self) -> float | None:
        if self.exhausted:
            return None
        self.attempts += 1
        return self.base_delay * 2 ** (self.attempts - 1)

    def reset(self) -> None:
        self.attempts = 0
