import json
import os
from typing import Any

from sitelock.storage.base import (
    LockRecord,
    LockStore,
    StoreUnavailableError,
    coerce_timestamp,
    record_from_payload,
)
from sitelock.storage.ttl import TtlPolicy

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}
_CHANGED_CODES = {"PreconditionFailed", "412"}


class S3LockStore(LockStore):
    """Lock object in a bucket, for fleets that already share S3 but no disk."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "sitelock/",
        s3_client: Any | None = None,
        *,
        ttl_policy: TtlPolicy | None = None,
        default_ttl: int | None = None,
    ) -> None:
        super().__init__(ttl_policy=ttl_policy, default_ttl=default_ttl)
        self.bucket = bucket
        self.prefix = prefix if prefix.endswith("/") else f"{prefix}/"
        self._s3_client = s3_client

    @property
    def kind(self) -> str:
        return "s3"

    @property
    def key(self) -> str:
        return f"{self.prefix}maintenance.lock.json"

    @property
    def client(self):
        if self._s3_client is not None:
            return self._s3_client
        try:
            import boto3  # type: ignore
        except Exception as exc:
            raise StoreUnavailableError("Lock store unavailable.") from exc
        self._s3_client = boto3.client("s3")
        return self._s3_client

    def read_record(self) -> LockRecord | None:
        record, _ = self._fetch()
        return record

    def _fetch(self) -> tuple[LockRecord | None, str | None]:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=self.key)
            raw = obj["Body"].read().decode("utf-8")
        except StoreUnavailableError:
            raise
        except Exception as exc:
            if _error_code(exc) in _MISSING_KEY_CODES:
                return None, None
            raise StoreUnavailableError("Lock store read failed.") from exc
        try:
            payload = json.loads(raw)
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        locked_at = coerce_timestamp(payload.get("locked_at"))
        if locked_at is None:
            last_modified = obj.get("LastModified")
            locked_at = last_modified.timestamp() if last_modified is not None else self.ttl_policy.now()
        return record_from_payload(payload, locked_at=locked_at), obj.get("ETag")

    def _write_record(self, record: LockRecord) -> LockRecord:
        body = json.dumps(
            {"locked_at": record.locked_at, "ttl": record.ttl_seconds, "routes": list(record.allowed_routes)},
            ensure_ascii=False,
        ).encode("utf-8")
        try:
            if not self.bucket:
                raise StoreUnavailableError("Lock store unavailable.")
            self.client.put_object(Bucket=self.bucket, Key=self.key, Body=body, ContentType="application/json")
        except Exception as exc:
            raise StoreUnavailableError("Lock store write failed.") from exc
        return record

    def _clear_record(self, expected: LockRecord | None = None) -> bool:
        current, etag = self._fetch()
        if current is None:
            return False
        if expected is not None and current.locked_at != expected.locked_at:
            return False
        params = {"Bucket": self.bucket, "Key": self.key}
        if expected is not None and etag:
            # Conditional delete: a lock rewritten since the read has a new ETag.
            params["IfMatch"] = etag
        try:
            self.client.delete_object(**params)
        except Exception as exc:
            if _error_code(exc) in _CHANGED_CODES:
                return False
            raise StoreUnavailableError("Lock store write failed.") from exc
        return True


def _error_code(exc: Exception) -> str:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return ""
    return str(response.get("Error", {}).get("Code", ""))


def s3_from_env(*, default_ttl: int | None = None) -> "S3LockStore":
    bucket = os.getenv("SITELOCK_S3_BUCKET", "")
    prefix = os.getenv("SITELOCK_S3_PREFIX", "sitelock/")
    return S3LockStore(bucket=bucket, prefix=prefix, default_ttl=default_ttl)
