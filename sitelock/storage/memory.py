import threading

from sitelock.storage.base import LockRecord, LockStore
from sitelock.storage.ttl import TtlPolicy


class MemoryLockStore(LockStore):
    """Process-local lock, shared by every request thread of one worker.

    Like a shared-memory segment it has no durable timestamp, so it does not
    offer TTL; a lock stays until it is explicitly released.
    """

    supports_ttl = False

    def __init__(self, *, ttl_policy: TtlPolicy | None = None, default_ttl: int | None = None) -> None:
        super().__init__(ttl_policy=ttl_policy, default_ttl=default_ttl)
        self._mutex = threading.Lock()
        self._record: LockRecord | None = None

    @property
    def kind(self) -> str:
        return "memory"

    def read_record(self) -> LockRecord | None:
        with self._mutex:
            return self._record

    def _write_record(self, record: LockRecord) -> LockRecord:
        with self._mutex:
            self._record = record
        return record

    def _clear_record(self, expected: LockRecord | None = None) -> bool:
        with self._mutex:
            if self._record is None:
                return False
            if expected is not None and self._record != expected:
                return False
            self._record = None
            return True
