from fastapi import FastAPI, Request
from starlette.responses import Response

MAINTENANCE_STATUS_HEADER = "X-Maintenance-Status"


def annotate_response(response: Response, *, status_code: int | None, status_text: str | None) -> Response:
    """Apply the configured status override to a maintenance response.

    The status text only accompanies a configured status code. ASGI has no
    slot for a custom reason phrase, so the text travels in a header.
    """
    if status_code is None:
        return response
    response.status_code = status_code
    if status_text:
        response.headers[MAINTENANCE_STATUS_HEADER] = status_text
    return response


def install_response_annotator_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def response_annotator_middleware(request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        if not getattr(request.state, "maintenance", False):
            return response

        settings = request.app.state.maintenance_gate.settings
        return annotate_response(
            response,
            status_code=settings.response_status_code,
            status_text=settings.response_status_text,
        )
