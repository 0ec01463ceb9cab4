from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sitelock.auth.ops_key import UnauthorizedError
from sitelock.maintenance.controller import InvalidInputError
from sitelock.maintenance.mode import ServiceUnavailableError
from sitelock.schemas import ErrorResponse
from sitelock.storage.base import StoreUnavailableError


def _request_id_from_state(request: Request) -> str:
    value = getattr(request.state, "request_id", "")
    return value if isinstance(value, str) and value else "unknown-request-id"


def _error_response(request: Request, *, code: str, message: str, status_code: int) -> JSONResponse:
    request_id = _request_id_from_state(request)
    request.state.error_code = code
    body = ErrorResponse(code=code, message=message, request_id=request_id).model_dump()
    return JSONResponse(status_code=status_code, content=body)


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceUnavailableError)
    async def service_unavailable_handler(request: Request, exc: ServiceUnavailableError):
        return _error_response(
            request,
            code="MAINTENANCE_MODE",
            message=exc.message,
            status_code=503,
        )

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError):  # noqa: ARG001
        return _error_response(
            request,
            code="UNAUTHORIZED",
            message="Authentication required.",
            status_code=401,
        )

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(request: Request, exc: InvalidInputError):
        return _error_response(
            request,
            code="INVALID_INPUT",
            message=str(exc),
            status_code=422,
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):  # noqa: ARG001
        return _error_response(
            request,
            code="STORE_UNAVAILABLE",
            message="Lock store unavailable.",
            status_code=500,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_failed_handler(request: Request, exc: RequestValidationError):  # noqa: ARG001
        return _error_response(
            request,
            code="REQUEST_VALIDATION_FAILED",
            message="Request validation failed.",
            status_code=422,
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):  # noqa: ARG001
        return _error_response(
            request,
            code="INTERNAL_ERROR",
            message="Internal server error.",
            status_code=500,
        )
