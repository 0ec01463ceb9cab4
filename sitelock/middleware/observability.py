import logging
import time

from fastapi import FastAPI, Request

from sitelock.observability.logging import log_event

logger = logging.getLogger("sitelock.observability")

OPTIONAL_STATE_KEYS = ["maintenance", "admission", "admission_ms", "error_code"]


def install_observability_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        request_id = getattr(request.state, "request_id", "unknown-request-id")

        try:
            response = await call_next(request)
        except Exception:
            log_event(
                logger,
                {
                    "event": "request.failed",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": 500,
                    "latency_ms": int(round((time.perf_counter() - start) * 1000)),
                    "error_code": getattr(request.state, "error_code", "INTERNAL_ERROR"),
                },
                level=logging.ERROR,
            )
            raise

        completed_event = {
            "event": "request.completed",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": int(round((time.perf_counter() - start) * 1000)),
        }
        for key in OPTIONAL_STATE_KEYS:
            value = getattr(request.state, key, None)
            if value is not None:
                completed_event[key] = value

        log_event(logger, completed_event)
        return response
