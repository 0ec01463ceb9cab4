import hmac
import os
from dataclasses import dataclass

from fastapi import Request

API_KEY_HEADER = "X-Sitelock-Api-Key"


@dataclass(frozen=True)
class Identity:
    authenticated: bool = False
    roles: frozenset[str] = frozenset()

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls()


def get_api_key_roles() -> dict[str, frozenset[str]]:
    """Parse ``SITELOCK_API_KEYS``: comma separated ``key`` or ``key=ROLE_A|ROLE_B``."""
    keys: dict[str, frozenset[str]] = {}
    for item in os.getenv("SITELOCK_API_KEYS", "").split(","):
        item = item.strip()
        if not item:
            continue
        key, _, raw_roles = item.partition("=")
        key = key.strip()
        if key:
            keys[key] = frozenset(role.strip() for role in raw_roles.split("|") if role.strip())
    return keys


def get_identity(request: Request) -> Identity:
    # An upstream authentication layer may already have resolved the caller.
    resolved = getattr(request.state, "identity", None)
    if isinstance(resolved, Identity):
        return resolved

    provided = request.headers.get(API_KEY_HEADER, "")
    if not provided:
        return Identity.anonymous()

    matched: frozenset[str] | None = None
    for key, roles in get_api_key_roles().items():
        if hmac.compare_digest(provided, key):
            matched = roles
    if matched is None:
        return Identity.anonymous()
    return Identity(authenticated=True, roles=matched)
