import json
from typing import Any

import redis

from sitelock.storage.base import (
    LockRecord,
    LockStore,
    StoreUnavailableError,
    coerce_timestamp,
    record_from_payload,
)
from sitelock.storage.ttl import TtlPolicy


class RedisLockStore(LockStore):
    """Cache driver. The key carries a native expiry as well as the payload,
    so a lock disappears even when no request comes in to sweep it."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key: str = "sitelock:maintenance",
        redis_client: Any | None = None,
        *,
        ttl_policy: TtlPolicy | None = None,
        default_ttl: int | None = None,
    ) -> None:
        super().__init__(ttl_policy=ttl_policy, default_ttl=default_ttl)
        self.redis_url = redis_url
        self.key = key
        self._client = redis_client

    @property
    def kind(self) -> str:
        return "redis"

    @property
    def client(self):
        if self._client is None:
            self._client = redis.Redis.from_url(
                self.redis_url,
                socket_connect_timeout=2,
                socket_timeout=2,
                decode_responses=True,
            )
        return self._client

    def read_record(self) -> LockRecord | None:
        try:
            raw = self.client.get(self.key)
        except redis.RedisError as exc:
            raise StoreUnavailableError("Lock store read failed.") from exc
        return self._parse_record(raw)

    def _parse_record(self, raw: Any) -> LockRecord | None:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            payload = json.loads(raw)
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        locked_at = coerce_timestamp(payload.get("locked_at"))
        if locked_at is None:
            locked_at = self.ttl_policy.now()
        return record_from_payload(payload, locked_at=locked_at)

    def _write_record(self, record: LockRecord) -> LockRecord:
        try:
            self.client.set(self.key, _serialize(record), ex=record.ttl_seconds)
        except redis.RedisError as exc:
            raise StoreUnavailableError("Lock store write failed.") from exc
        return record

    def _clear_record(self, expected: LockRecord | None = None) -> bool:
        try:
            if expected is None:
                return bool(self.client.delete(self.key))
            return self._clear_if_unchanged(expected)
        except redis.RedisError as exc:
            raise StoreUnavailableError("Lock store write failed.") from exc

    def _clear_if_unchanged(self, expected: LockRecord) -> bool:
        # WATCH aborts the MULTI block if anyone writes the key after our read.
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(self.key)
                current = self._parse_record(pipe.get(self.key))
                if current is None or current.locked_at != expected.locked_at:
                    return False
                pipe.multi()
                pipe.delete(self.key)
                results = pipe.execute()
            except redis.WatchError:
                return False
        return bool(results[0])


def _serialize(record: LockRecord) -> str:
    return json.dumps(
        {
            "locked_at": record.locked_at,
            "ttl": record.ttl_seconds,
            "routes": list(record.allowed_routes),
        },
        separators=(",", ":"),
    )
