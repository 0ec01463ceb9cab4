import logging
import os

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Request, Response

from sitelock.api.exception_handlers import install_exception_handlers
from sitelock.auth.ops_key import require_ops_key
from sitelock.config import ConfigurationError, Settings, load_settings
from sitelock.maintenance.mode import MaintenanceGate, get_gate, is_maintenance_mode, require_admission
from sitelock.middleware.observability import install_observability_middleware
from sitelock.middleware.request_id import install_request_id_middleware
from sitelock.middleware.response_annotator import install_response_annotator_middleware
from sitelock.observability.logging import log_event, setup_logging
from sitelock.schemas import (
    HealthResponse,
    LockRequest,
    LockResponse,
    LockStatus,
    PageResponse,
    UnlockResponse,
)
from sitelock.storage.base import LockRecord, LockStore
from sitelock.storage.factory import get_lock_store

logger = logging.getLogger("sitelock.ops")


def _lock_status(gate: MaintenanceGate, record: LockRecord | None) -> LockStatus:
    store = gate.store
    if record is None:
        return LockStatus(locked=False, driver=store.kind, ttl_support=store.has_ttl_support())
    return LockStatus(
        locked=True,
        driver=store.kind,
        ttl_support=store.has_ttl_support(),
        locked_at=record.locked_at,
        ttl=record.ttl_seconds,
        expires_in=store.ttl_policy.remaining(record.locked_at, record.ttl_seconds),
        routes=list(record.allowed_routes),
    )


def build_site_router() -> APIRouter:
    """Routes served to visitors; every one of them passes the maintenance gate."""
    router = APIRouter(dependencies=[Depends(require_admission)])

    @router.get("/", response_model=PageResponse, name="home")
    def home() -> PageResponse:
        return PageResponse(page="home")

    @router.get("/healthcheck", response_model=PageResponse, name="healthcheck")
    def healthcheck() -> PageResponse:
        return PageResponse(page="healthcheck")

    @router.get("/pages/{slug}", response_model=PageResponse, name="page")
    def page(slug: str) -> PageResponse:
        return PageResponse(page=slug)

    @router.get("/_profiler", response_model=PageResponse, name="_profiler")
    def profiler() -> PageResponse:
        return PageResponse(page="_profiler")

    return router


def build_ops_router() -> APIRouter:
    router = APIRouter(prefix="/ops/maintenance", dependencies=[Depends(require_ops_key)])

    @router.get("", response_model=LockStatus)
    def maintenance_status(request: Request) -> LockStatus:
        gate = get_gate(request)
        return _lock_status(gate, gate.controller.status())

    @router.post("/lock", response_model=LockResponse)
    def lock(payload: LockRequest, request: Request, response: Response) -> LockResponse:
        gate = get_gate(request)
        outcome = gate.controller.lock(ttl_override=payload.ttl, routes=payload.routes)
        if outcome.error:
            response.status_code = 500
        log_event(
            logger,
            {
                "event": "ops.lock.completed",
                "request_id": request.state.request_id,
                "success": outcome.success,
            },
        )
        return LockResponse(
            success=outcome.success,
            message=outcome.message,
            notices=list(outcome.notices),
            status=None if outcome.error else _lock_status(gate, outcome.record),
        )

    @router.post("/unlock", response_model=UnlockResponse)
    def unlock(request: Request, response: Response) -> UnlockResponse:
        outcome = get_gate(request).controller.unlock()
        if outcome.error:
            response.status_code = 500
        log_event(
            logger,
            {
                "event": "ops.unlock.completed",
                "request_id": request.state.request_id,
                "success": outcome.success,
            },
        )
        return UnlockResponse(success=outcome.success, message=outcome.message)

    return router


def install_maintenance(app: FastAPI, settings: Settings, store: LockStore | None = None) -> MaintenanceGate:
    """Attach the gate to an app. Routes opt in via ``Depends(require_admission)``."""
    gate = MaintenanceGate(settings, store or get_lock_store(settings))
    app.state.maintenance_gate = gate
    install_response_annotator_middleware(app)
    return gate


def create_app(settings: Settings | None = None, store: LockStore | None = None) -> FastAPI:
    load_dotenv()
    setup_logging()
    settings = settings or load_settings()
    if settings.environment == "prod" and not os.getenv("SITELOCK_OPS_KEY", "").strip():
        raise ConfigurationError("An ops key is required when SITELOCK_ENV=prod.")

    app = FastAPI(
        title="Sitelock",
        version="0.1.0",
        docs_url=None if settings.environment == "prod" else "/docs",
        redoc_url=None if settings.environment == "prod" else "/redoc",
        openapi_url=None if settings.environment == "prod" else "/openapi.json",
    )
    gate = install_maintenance(app, settings, store)
    install_observability_middleware(app)
    install_request_id_middleware(app)
    install_exception_handlers(app)

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        maintenance = is_maintenance_mode(request)
        return HealthResponse(status="ok", driver=gate.store.kind, maintenance=maintenance)

    app.include_router(build_ops_router())
    app.include_router(build_site_router())
    return app


app = create_app()
