"""Backoff utility for connection retry logic."""


class FixedBackoff:
    """Constant reconnect delay with no retry ceiling; attempts are counted for logs."""

    def __init__(self, delay_s: float = 2.0):
        self.delay_s = delay_s
        self._attempt = 0

    @property
    def attempts(self) -> int:
        return self._attempt

    def get_backoff_delay(self) -> float:
        """Get delay before next attempt."""
        return self.delay_s

    def record_failure(self) -> None:
        """Record a failure attempt."""
        self._attempt += 1

    def reset(self) -> None:
        """Reset backoff counter."""
        self._attempt = 0
