import logging
from typing import TYPE_CHECKING

from fastapi import Request

from sitelock.auth.identity import Identity, get_identity
from sitelock.maintenance.controller import LockController
from sitelock.maintenance.evaluator import Admission, AdmissionContext, AdmissionEvaluator
from sitelock.observability.logging import log_event
from sitelock.observability.timing import Timer
from sitelock.storage.base import LockStore

if TYPE_CHECKING:
    from sitelock.config import Settings

logger = logging.getLogger("sitelock.maintenance")

DEFAULT_EXCEPTION_MESSAGE = "Service temporarily unavailable."


class ServiceUnavailableError(Exception):
    def __init__(self, message: str | None = None) -> None:
        self.message = message or DEFAULT_EXCEPTION_MESSAGE
        super().__init__(self.message)


class MaintenanceGate:
    """Everything the request hook and the operator surfaces share for one app."""

    def __init__(self, settings: "Settings", store: LockStore) -> None:
        self.settings = settings
        self.store = store
        self.evaluator = AdmissionEvaluator(
            settings.rules,
            store,
            lock_on_store_failure=settings.lock_on_store_failure,
        )
        self.controller = LockController(store)


def get_gate(request: Request) -> MaintenanceGate:
    return request.app.state.maintenance_gate


def build_admission_context(request: Request, identity: Identity) -> AdmissionContext:
    route = request.scope.get("route")
    client = request.client
    return AdmissionContext(
        client_ip=client.host if client else None,
        host=request.url.hostname,
        # ASGI servers hand over the path already percent-decoded.
        path=request.scope.get("path") or "/",
        route_name=getattr(route, "name", None),
        query_params=dict(request.query_params),
        cookies=dict(request.cookies),
        attributes={key: str(value) for key, value in request.path_params.items()},
        is_authenticated=identity.authenticated,
        user_roles=identity.roles,
    )


def is_maintenance_mode(request: Request) -> bool:
    gate = get_gate(request)
    return gate.store.is_locked()


def require_admission(request: Request) -> None:
    gate = get_gate(request)
    context = build_admission_context(request, get_identity(request))

    timer = Timer()
    with timer.measure("admission_ms"):
        admission: Admission = gate.evaluator.evaluate(context)
    request.state.admission = admission.reason
    request.state.admission_ms = timer.durations_ms["admission_ms"]

    if admission.allowed:
        return

    request.state.maintenance = True
    log_event(
        logger,
        {
            "event": "maintenance.denied",
            "request_id": getattr(request.state, "request_id", "unknown-request-id"),
            "method": request.method,
            "path": context.path,
            "route": context.route_name,
            "reason": admission.reason,
        },
    )
    raise ServiceUnavailableError(gate.settings.exception_message)
