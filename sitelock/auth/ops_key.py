import hmac
import os

from fastapi import Request

OPS_KEY_HEADER = "X-Sitelock-Ops-Key"


class UnauthorizedError(Exception):
    pass


def require_ops_key(request: Request) -> None:
    expected = os.getenv("SITELOCK_OPS_KEY", "").strip()
    provided = request.headers.get(OPS_KEY_HEADER, "")
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        raise UnauthorizedError("Authentication required.")
