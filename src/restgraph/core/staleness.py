# src/restgraph/core/staleness.py
"""
Refetch policy for cached property and label data.

A cached value is fresh while ``now - last_fetch < window``. The check is a
plain comparison on explicit timestamps; callers own the timestamps.
"""

import time
from typing import Callable, Optional

Clock = Callable[[], float]


class RefetchPolicy:
    """
    Decides whether a cached value must be fetched again.

    Args:
        window: Seconds a fetched value stays valid. ``0`` refetches on every
                access, ``None`` keeps values until explicitly invalidated.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(self, window: Optional[float] = None, clock: Optional[Clock] = None):
        if window is not None and window < 0:
            raise ValueError("Refetch window cannot be negative")
        self.window = window
        self.clock: Clock = clock or time.monotonic

    def now(self) -> float:
        return self.clock()

    def has_to_update(self, last_fetch: Optional[float], now: Optional[float] = None) -> bool:
        """True when data fetched at ``last_fetch`` can no longer be served."""
        if last_fetch is None:
            return True
        if self.window is None:
            return False
        if now is None:
            now = self.clock()
        return now - last_fetch >= self.window

    def __repr__(self) -> str:
        window = "forever" if self.window is None else f"{self.window}s"
        return f"RefetchPolicy(window={window})"
