import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable

from sitelock.maintenance.messages import message
from sitelock.observability.logging import log_event
from sitelock.storage.base import LockRecord, LockStore, StoreUnavailableError

logger = logging.getLogger("sitelock.controller")


class InvalidInputError(Exception):
    pass


@dataclass(frozen=True)
class LockOutcome:
    success: bool
    message: str
    record: LockRecord | None = None
    notices: tuple[str, ...] = ()
    error: bool = False


def parse_ttl(value: Any) -> int | None:
    """Operator TTL input to seconds. Blank or zero means "not given"."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidInputError("Time must be an integer")
    if isinstance(value, int):
        ttl = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if not re.fullmatch(r"[+-]?\d+", text):
            raise InvalidInputError("Time must be an integer")
        ttl = int(text)
    if ttl < 0:
        raise InvalidInputError("Time must be a positive integer")
    return ttl or None


def normalize_routes(routes: Iterable[str] | None) -> tuple[str, ...]:
    normalized = []
    for route in routes or ():
        text = str(route).strip()
        if not text:
            continue
        try:
            re.compile(text)
        except re.error as exc:
            raise InvalidInputError(f"Invalid route pattern {text!r}") from exc
        normalized.append(text)
    return tuple(normalized)


class LockController:
    def __init__(self, store: LockStore) -> None:
        self.store = store

    def resolve_ttl(self, ttl_override: Any = None, interactive_ttl: Any = None) -> int | None:
        """Explicit argument, then the interactive answer, then the driver default."""
        for candidate in (ttl_override, interactive_ttl):
            ttl = parse_ttl(candidate)
            if ttl is not None:
                return ttl
        return self.store.default_ttl

    def lock(
        self,
        ttl_override: Any = None,
        routes: Iterable[str] | None = None,
        *,
        interactive_ttl: Any = None,
    ) -> LockOutcome:
        # Validate everything before touching the store.
        ttl = self.resolve_ttl(ttl_override, interactive_ttl)
        allowed_routes = normalize_routes(routes)

        notices: list[str] = []
        if ttl is not None and not self.store.has_ttl_support():
            notices.append(message("ttl_not_supported", driver=self.store.kind))
            ttl = None

        try:
            record = self.store.lock(ttl_seconds=ttl, allowed_routes=allowed_routes)
        except StoreUnavailableError as exc:
            log_event(
                logger,
                {"event": "maintenance.lock_failed", "driver": self.store.kind, "error": str(exc)},
                level=logging.ERROR,
            )
            return LockOutcome(False, message("not_success_lock"), notices=tuple(notices), error=True)

        log_event(
            logger,
            {
                "event": "maintenance.locked",
                "driver": self.store.kind,
                "ttl_seconds": record.ttl_seconds,
                "allowed_routes": list(record.allowed_routes),
            },
        )
        text = message("success_lock_ttl", ttl=record.ttl_seconds) if record.ttl_seconds else message("success_lock")
        return LockOutcome(True, text, record=record, notices=tuple(notices))

    def unlock(self) -> LockOutcome:
        try:
            removed = self.store.unlock()
        except StoreUnavailableError as exc:
            log_event(
                logger,
                {"event": "maintenance.unlock_failed", "driver": self.store.kind, "error": str(exc)},
                level=logging.ERROR,
            )
            return LockOutcome(False, message("unlock_failed"), error=True)

        log_event(logger, {"event": "maintenance.unlocked", "driver": self.store.kind, "removed": removed})
        return LockOutcome(removed, message("success_unlock" if removed else "not_success_unlock"))

    def status(self) -> LockRecord | None:
        return self.store.current_record()
