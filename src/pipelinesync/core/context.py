"""
Per-call context: an optional absolute deadline plus a cancel flag.

A context is created by the caller for one reconciliation attempt and passed
down to every remote call. The gateway checks it before issuing a request
and bounds the request timeout by the remaining time.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CallContext:
    deadline: Optional[float] = None  # time.monotonic() based
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, seconds: float) -> "CallContext":
        return cls(deadline=time.monotonic() + float(seconds))

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (None when unbounded)."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def expired(self) -> bool:
        left = self.remaining()
        return left is not None and left <= 0

    def timeout_for(self, default: float) -> float:
        """Per-call timeout: the default, shortened to the remaining deadline."""
        left = self.remaining()
        if left is None:
            return default
        return max(0.0, min(default, left))
