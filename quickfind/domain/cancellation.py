"""
Cooperative cancellation for long-running searches.
"""

import threading
import time
from typing import Optional


class CancellationToken:
    """
    Thread-safe cancellation signal with an optional deadline.

    Search shards poll ``cancelled``; they never block on the token.
    """

    def __init__(self, deadline: Optional[float] = None):
        # deadline is a time.monotonic() value
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Create a token that cancels itself ``seconds`` from now."""
        if seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {seconds}")
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False
