import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from sitelock.maintenance.rules import BypassRuleSet, match_mapping
from sitelock.observability.logging import log_event
from sitelock.storage.base import LockRecord, LockStore, StoreUnavailableError

logger = logging.getLogger("sitelock.admission")


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class AdmissionContext:
    client_ip: str | None = None
    host: str | None = None
    path: str = "/"
    route_name: str | None = None
    query_params: Mapping[str, Any] = field(default_factory=dict)
    cookies: Mapping[str, Any] = field(default_factory=dict)
    attributes: Mapping[str, Any] = field(default_factory=dict)
    is_authenticated: bool = False
    user_roles: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Admission:
    decision: Decision
    reason: str
    record: LockRecord | None = None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


def _match_bypass(context: AdmissionContext, rules: BypassRuleSet) -> str | None:
    """Name of the first bypass rule the request satisfies, in evaluation order."""
    if match_mapping(rules.query_patterns, context.query_params):
        return "query"
    if match_mapping(rules.cookie_patterns, context.cookies):
        return "cookie"
    if match_mapping(rules.attribute_patterns, context.attributes):
        return "attribute"
    if rules.path_pattern is not None and rules.path_pattern.search(context.path or ""):
        return "path"
    if rules.host_pattern is not None and rules.host_pattern.search(context.host or ""):
        return "host"
    if rules.match_ip(context.client_ip):
        return "ip"
    if rules.match_route(context.route_name):
        return "route"
    if context.is_authenticated and rules.required_role and rules.required_role in context.user_roles:
        return "role"
    return None


def _route_allowed_by_lock(route_name: str | None, record: LockRecord) -> bool:
    if not route_name:
        return False
    for pattern in record.allowed_routes:
        if pattern == route_name:
            return True
        try:
            if re.fullmatch(pattern, route_name):
                return True
        except re.error:
            continue
    return False


def evaluate(context: AdmissionContext, rules: BypassRuleSet, store: LockStore) -> Admission:
    bypass = _match_bypass(context, rules)
    if bypass is not None:
        return Admission(Decision.ALLOW, bypass)

    # Reading the store may clear an expired lock as a side effect.
    record = store.current_record()
    if record is None:
        return Admission(Decision.ALLOW, "unlocked")
    if _route_allowed_by_lock(context.route_name, record):
        return Admission(Decision.ALLOW, "lock_route", record)
    return Admission(Decision.DENY, "locked", record)


def decide(context: AdmissionContext, rules: BypassRuleSet, store: LockStore) -> Decision:
    """ALLOW or DENY a request. Storage failures propagate to the caller."""
    return evaluate(context, rules, store).decision


class AdmissionEvaluator:
    """`decide` bound to the configured rules, store and storage-failure policy.

    When the store cannot be read the request is admitted, unless
    ``lock_on_store_failure`` is set, in which case it is denied.
    """

    def __init__(self, rules: BypassRuleSet, store: LockStore, *, lock_on_store_failure: bool = False) -> None:
        self.rules = rules
        self.store = store
        self.lock_on_store_failure = lock_on_store_failure

    def evaluate(self, context: AdmissionContext) -> Admission:
        try:
            return evaluate(context, self.rules, self.store)
        except StoreUnavailableError as exc:
            log_event(
                logger,
                {
                    "event": "maintenance.store_unavailable",
                    "driver": self.store.kind,
                    "error": str(exc),
                    "lock_on_store_failure": self.lock_on_store_failure,
                },
                level=logging.WARNING,
            )
            if self.lock_on_store_failure:
                return Admission(Decision.DENY, "store_unavailable")
            return Admission(Decision.ALLOW, "store_unavailable")

    def decide(self, context: AdmissionContext) -> Decision:
        return self.evaluate(context).decision
