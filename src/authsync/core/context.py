"""
Cooperative cancellation for lifecycle calls.

A CallContext carries an optional deadline and a cancel flag. The gateway
checks both before each request, so `cancel()` only stops the next request:
a request already on the wire runs until the service answers or the
timeout fires.

The deadline is enforced through the requests `timeout`, set to the time
remaining when the request starts. requests applies that value to each
socket wait (connect, then every read), not to the whole exchange, so a
service that keeps trickling bytes can hold a call past its deadline.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import Cancelled


class CallContext:
    def __init__(self, deadline: Optional[float] = None) -> None:
        self._deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def background(cls) -> "CallContext":
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CallContext":
        return cls(deadline=time.monotonic() + float(seconds))

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def done(self) -> bool:
        if self.cancelled:
            return True
        left = self.remaining()
        return left is not None and left <= 0.0

    def raise_if_done(self) -> None:
        if self.cancelled:
            raise Cancelled("operation cancelled by caller")
        left = self.remaining()
        if left is not None and left <= 0.0:
            raise Cancelled("deadline exceeded")
