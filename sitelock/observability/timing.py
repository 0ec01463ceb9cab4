import time
from contextlib import contextmanager


class Timer:
    """Collects named wall-clock durations in whole milliseconds."""

    def __init__(self) -> None:
        self.durations_ms: dict[str, int] = {}

    @contextmanager
    def measure(self, key: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.durations_ms[key] = int(round((time.perf_counter() - start) * 1000))
