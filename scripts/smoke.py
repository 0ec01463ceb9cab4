#!/usr/bin/env python3
"""Lock a deployed site, check that visitors get 503 and allowed routes pass, then unlock."""
import os
import sys
from typing import Any

import httpx


def _required_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise SystemExit(f"Missing required environment variable: {name}")
    return value


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _assert_status(endpoint: str, response: httpx.Response, expected: int) -> dict[str, Any]:
    body = _json_body(response)
    if response.status_code != expected:
        code = body.get("code", "unknown")
        raise SystemExit(f"{endpoint} expected {expected}, got {response.status_code} (code={code})")
    return body


def _print_result(endpoint: str, status_code: int, request_id: str = "", extra: str = "") -> None:
    parts = [f"{endpoint} -> {status_code}"]
    if request_id:
        parts.append(f"request_id={request_id}")
    if extra:
        parts.append(extra)
    print(" ".join(parts))


def main() -> int:
    base_url = _required_env("SMOKE_BASE_URL").rstrip("/")
    ops_key = _required_env("SMOKE_OPS_KEY")
    denied_status = int(os.getenv("SMOKE_DENIED_STATUS", "503"))
    timeout_sec = float(os.getenv("SMOKE_TIMEOUT_SEC", "30"))
    ops_headers = {"X-Sitelock-Ops-Key": ops_key}

    with httpx.Client(timeout=timeout_sec) as client:
        health = client.get(f"{base_url}/health")
        health_body = _assert_status("GET /health", health, 200)
        if health_body.get("maintenance"):
            raise SystemExit("Site is already under maintenance; refusing to run smoke.")
        _print_result("GET /health", health.status_code, request_id=health.headers.get("X-Request-Id", ""))

        no_auth = client.post(f"{base_url}/ops/maintenance/lock", json={})
        _assert_status("POST /ops/maintenance/lock (no key)", no_auth, 401)
        _print_result("POST /ops/maintenance/lock (no key)", no_auth.status_code)

        try:
            lock = client.post(
                f"{base_url}/ops/maintenance/lock",
                headers=ops_headers,
                json={"ttl": 300, "routes": ["healthcheck"]},
            )
            _assert_status("POST /ops/maintenance/lock", lock, 200)
            _print_result("POST /ops/maintenance/lock", lock.status_code, extra="ttl=300")

            home = client.get(f"{base_url}/")
            home_body = _assert_status("GET / (locked)", home, denied_status)
            if home_body.get("code") != "MAINTENANCE_MODE":
                raise SystemExit("GET / (locked) did not return MAINTENANCE_MODE")
            _print_result("GET / (locked)", home.status_code, request_id=str(home_body.get("request_id", "")))

            allowed = client.get(f"{base_url}/healthcheck")
            _assert_status("GET /healthcheck (locked)", allowed, 200)
            _print_result("GET /healthcheck (locked)", allowed.status_code)
        finally:
            unlock = client.post(f"{base_url}/ops/maintenance/unlock", headers=ops_headers)
            _print_result("POST /ops/maintenance/unlock", unlock.status_code)

        home = client.get(f"{base_url}/")
        _assert_status("GET / (unlocked)", home, 200)
        _print_result("GET / (unlocked)", home.status_code)

    print("Smoke completed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
