import time
from typing import Callable


class TtlPolicy:
    """Decides whether a lock written at ``locked_at`` has outlived its TTL.

    Wall-clock seconds; TTLs are human scale so no monotonic clock is needed.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time

    def now(self) -> float:
        return float(self._clock())

    def is_expired(self, locked_at: float, ttl_seconds: int | None, now: float | None = None) -> bool:
        if ttl_seconds is None:
            return False
        current = self.now() if now is None else now
        return current >= locked_at + ttl_seconds

    def remaining(self, locked_at: float, ttl_seconds: int | None) -> int | None:
        if ttl_seconds is None:
            return None
        return max(0, int(locked_at + ttl_seconds - self.now()))
