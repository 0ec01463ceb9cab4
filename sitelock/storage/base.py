import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sitelock.observability.logging import log_event
from sitelock.storage.ttl import TtlPolicy

logger = logging.getLogger("sitelock.storage")


class StoreUnavailableError(Exception):
    pass


class LockRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    locked: bool = True
    locked_at: float
    ttl_seconds: int | None = None
    allowed_routes: tuple[str, ...] = Field(default_factory=tuple)

    @property
    def expires_at(self) -> float | None:
        if self.ttl_seconds is None:
            return None
        return self.locked_at + self.ttl_seconds


class LockStore(ABC):
    """Persists the maintenance lock.

    Backends implement the three primitive operations (`read_record`,
    `_write_record`, `_clear_record`); expiry resolution and the public
    lock/unlock contract live here so every backend behaves the same way.
    """

    supports_ttl: bool = True

    def __init__(self, *, ttl_policy: TtlPolicy | None = None, default_ttl: int | None = None) -> None:
        self.ttl_policy = ttl_policy or TtlPolicy()
        self.default_ttl = default_ttl

    @property
    @abstractmethod
    def kind(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def read_record(self) -> LockRecord | None:
        """Return the stored record without resolving expiry."""
        raise NotImplementedError

    @abstractmethod
    def _write_record(self, record: LockRecord) -> LockRecord:
        raise NotImplementedError

    @abstractmethod
    def _clear_record(self, expected: LockRecord | None = None) -> bool:
        """Remove the stored record.

        With ``expected`` set, only clear if the stored record is still that one,
        so an expiry sweep never removes a lock written after it was read.
        """
        raise NotImplementedError

    def has_ttl_support(self) -> bool:
        return self.supports_ttl

    def current_record(self) -> LockRecord | None:
        """Read the lock, clearing it first when its TTL has run out."""
        record = self.read_record()
        if record is None or not record.locked:
            return None
        if self.has_ttl_support() and self.ttl_policy.is_expired(record.locked_at, record.ttl_seconds):
            self._clear_record(expected=record)
            log_event(
                logger,
                {
                    "event": "maintenance.expired",
                    "driver": self.kind,
                    "locked_at": record.locked_at,
                    "ttl_seconds": record.ttl_seconds,
                },
            )
            return None
        return record

    def is_locked(self) -> bool:
        return self.current_record() is not None

    def lock(self, ttl_seconds: int | None = None, allowed_routes: Sequence[str] = ()) -> LockRecord:
        record = LockRecord(
            locked=True,
            locked_at=self.ttl_policy.now(),
            ttl_seconds=coerce_ttl(ttl_seconds) if self.has_ttl_support() else None,
            allowed_routes=tuple(allowed_routes),
        )
        return self._write_record(record)

    def unlock(self) -> bool:
        return self._clear_record()


def coerce_ttl(value: Any) -> int | None:
    """Stored or passed TTLs that are not a positive whole number mean no expiry."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        ttl = int(value)
    except (TypeError, ValueError):
        return None
    return ttl if ttl > 0 else None


def coerce_timestamp(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def record_from_payload(payload: dict[str, Any], *, locked_at: float) -> LockRecord:
    """Build a record from a stored ``{"ttl", "routes"}`` payload."""
    routes = payload.get("routes") or []
    if not isinstance(routes, (list, tuple)):
        routes = []
    try:
        return LockRecord(
            locked=True,
            locked_at=locked_at,
            ttl_seconds=coerce_ttl(payload.get("ttl")),
            allowed_routes=tuple(str(route) for route in routes),
        )
    except ValidationError as exc:
        raise StoreUnavailableError("Lock store returned an unreadable record.") from exc
