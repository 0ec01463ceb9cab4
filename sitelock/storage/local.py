import json
import os
from pathlib import Path
from typing import Any
from uuid import uuid4

from sitelock.storage.base import LockRecord, LockStore, StoreUnavailableError, record_from_payload
from sitelock.storage.ttl import TtlPolicy


class FileLockStore(LockStore):
    """Lock kept as a JSON file; the file existing means the site is locked.

    The payload holds ``routes`` and ``ttl``. The file's modification time is
    the lock timestamp, so TTL expiry survives restarts without extra fields.
    """

    def __init__(
        self,
        file_path: Path | str,
        *,
        ttl_policy: TtlPolicy | None = None,
        default_ttl: int | None = None,
    ) -> None:
        super().__init__(ttl_policy=ttl_policy, default_ttl=default_ttl)
        self.file_path = Path(file_path)

    @property
    def kind(self) -> str:
        return "file"

    def read_record(self) -> LockRecord | None:
        try:
            stat = self.file_path.stat()
            raw = self.file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreUnavailableError("Lock store read failed.") from exc

        return record_from_payload(self._parse_payload(raw), locked_at=stat.st_mtime)

    def _write_record(self, record: LockRecord) -> LockRecord:
        payload = {"routes": list(record.allowed_routes), "ttl": record.ttl_seconds}
        self._atomic_write_text(json.dumps(payload, ensure_ascii=False), mtime=record.locked_at)
        return record

    def _clear_record(self, expected: LockRecord | None = None) -> bool:
        try:
            if expected is not None and self.file_path.stat().st_mtime != expected.locked_at:
                # Rewritten since it was read: a fresh lock, leave it.
                return False
            self.file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StoreUnavailableError("Lock store write failed.") from exc
        return True

    @staticmethod
    def _parse_payload(raw: str) -> dict[str, Any]:
        # An empty or hand-touched file still counts as a lock without options.
        if not raw.strip():
            return {}
        try:
            payload = json.loads(raw)
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    def _atomic_write_text(self, text: str, *, mtime: float) -> None:
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.file_path.with_name(f"{self.file_path.name}.tmp.{uuid4().hex}")
            with tmp.open("w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.utime(tmp, (mtime, mtime))
            os.replace(tmp, self.file_path)
        except OSError as exc:
            raise StoreUnavailableError("Lock store write failed.") from exc
