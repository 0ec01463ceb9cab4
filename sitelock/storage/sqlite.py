import json
import sqlite3
from contextlib import closing
from pathlib import Path

from sitelock.storage.base import LockRecord, LockStore, StoreUnavailableError, record_from_payload
from sitelock.storage.ttl import TtlPolicy

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sitelock_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    locked_at REAL NOT NULL,
    ttl_seconds INTEGER,
    routes TEXT NOT NULL DEFAULT '[]'
)
"""


class SqliteLockStore(LockStore):
    """Database driver: one row in ``sitelock_state`` while the site is locked."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        timeout_sec: float = 5.0,
        ttl_policy: TtlPolicy | None = None,
        default_ttl: int | None = None,
    ) -> None:
        super().__init__(ttl_policy=ttl_policy, default_ttl=default_ttl)
        self.db_path = str(db_path)
        self.timeout_sec = timeout_sec
        self._schema_ready = False

    @property
    def kind(self) -> str:
        return "sqlite"

    def _connect(self) -> sqlite3.Connection:
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=self.timeout_sec)
            if not self._schema_ready:
                with conn:
                    conn.execute(_SCHEMA)
                self._schema_ready = True
            return conn
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailableError("Lock store unavailable.") from exc

    def read_record(self) -> LockRecord | None:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute("SELECT locked_at, ttl_seconds, routes FROM sitelock_state WHERE id = 1").fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("Lock store read failed.") from exc
        if row is None:
            return None
        locked_at, ttl_seconds, routes = row
        try:
            parsed_routes = json.loads(routes or "[]")
        except ValueError:
            parsed_routes = []
        return record_from_payload({"ttl": ttl_seconds, "routes": parsed_routes}, locked_at=locked_at)

    def _write_record(self, record: LockRecord) -> LockRecord:
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "INSERT OR REPLACE INTO sitelock_state (id, locked_at, ttl_seconds, routes) VALUES (1, ?, ?, ?)",
                    (record.locked_at, record.ttl_seconds, json.dumps(list(record.allowed_routes))),
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError("Lock store write failed.") from exc
        return record

    def _clear_record(self, expected: LockRecord | None = None) -> bool:
        try:
            with closing(self._connect()) as conn, conn:
                if expected is None:
                    cursor = conn.execute("DELETE FROM sitelock_state WHERE id = 1")
                else:
                    cursor = conn.execute(
                        "DELETE FROM sitelock_state WHERE id = 1 AND locked_at = ?",
                        (expected.locked_at,),
                    )
                return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise StoreUnavailableError("Lock store write failed.") from exc
