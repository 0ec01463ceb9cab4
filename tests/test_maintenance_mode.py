import os

import pytest
from fastapi.testclient import TestClient

from sitelock.config import ConfigurationError
from sitelock.main import create_app
from sitelock.storage.local import FileLockStore

OPS_HEADERS = {"X-Sitelock-Ops-Key": "ops-key"}


def _create_client(tmp_path, monkeypatch, *, store=None, base_url="http://testserver", **env):
    monkeypatch.setenv("SITELOCK_DRIVER", "file")
    monkeypatch.setenv("SITELOCK_FILE_PATH", str(tmp_path / "maintenance.lock"))
    monkeypatch.setenv("SITELOCK_OPS_KEY", "ops-key")
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    return TestClient(create_app(store=store), base_url=base_url)


def _lock(client, **payload):
    response = client.post("/ops/maintenance/lock", headers=OPS_HEADERS, json=payload)
    assert response.status_code == 200
    return response.json()


def test_lock_allow_route_then_unlock(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch)
    body = _lock(client, ttl=3600, routes=["healthcheck"])
    assert body["success"] is True
    assert body["status"]["locked"] is True
    assert body["status"]["ttl"] == 3600
    assert body["status"]["routes"] == ["healthcheck"]

    assert client.get("/healthcheck").status_code == 200

    denied = client.get("/")
    assert denied.status_code == 503
    denied_body = denied.json()
    assert denied_body["code"] == "MAINTENANCE_MODE"
    assert denied_body["message"] == "Service temporarily unavailable."
    assert denied_body["request_id"] == denied.headers.get("X-Request-Id")

    unlock = client.post("/ops/maintenance/unlock", headers=OPS_HEADERS)
    assert unlock.status_code == 200
    assert unlock.json() == {"success": True, "message": "Server is back online."}

    home = client.get("/")
    assert home.status_code == 200
    assert home.json() == {"page": "home"}


def test_unlock_without_lock_reports_it(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch)
    response = client.post("/ops/maintenance/unlock", headers=OPS_HEADERS)
    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "Server was not under maintenance."}


def test_health_is_not_gated_and_reports_maintenance(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch)
    assert client.get("/health").json()["maintenance"] is False

    _lock(client)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "driver": "file", "maintenance": True}


def test_lock_file_written_by_operator_blocks_site(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch)
    (tmp_path / "maintenance.lock").write_text('{"routes": [], "ttl": null}', encoding="utf-8")
    assert client.get("/pages/about").status_code == 503


def test_expired_lock_file_is_removed_on_request(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch)
    path = tmp_path / "maintenance.lock"
    path.write_text('{"routes": [], "ttl": 60}', encoding="utf-8")
    past = path.stat().st_mtime - 61
    os.utime(path, (past, past))

    assert client.get("/").status_code == 200
    assert not path.exists()


def test_custom_exception_message_and_status_override(tmp_path, monkeypatch):
    client = _create_client(
        tmp_path,
        monkeypatch,
        SITELOCK_EXCEPTION_MESSAGE="Back at 10:00 UTC.",
        SITELOCK_RESPONSE_CODE="502",
        SITELOCK_RESPONSE_STATUS="Down For Maintenance",
    )
    _lock(client)

    response = client.get("/")
    assert response.status_code == 502
    assert response.headers["X-Maintenance-Status"] == "Down For Maintenance"
    assert response.json()["message"] == "Back at 10:00 UTC."

    health = client.get("/health")
    assert health.status_code == 200
    assert "X-Maintenance-Status" not in health.headers


def test_status_text_without_status_code_is_not_sent(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch, SITELOCK_RESPONSE_STATUS="Down For Maintenance")
    _lock(client)

    response = client.get("/")
    assert response.status_code == 503
    assert "X-Maintenance-Status" not in response.headers
    assert response.json()["code"] == "MAINTENANCE_MODE"


def test_query_and_cookie_bypass(tmp_path, monkeypatch):
    client = _create_client(
        tmp_path,
        monkeypatch,
        SITELOCK_BYPASS_QUERY='{"preview": "^secret$"}',
        SITELOCK_BYPASS_COOKIES='{"maintenance_bypass": "^yes$"}',
    )
    _lock(client)

    assert client.get("/", params={"preview": "secret"}).status_code == 200
    assert client.get("/", params={"preview": "wrong"}).status_code == 503
    assert client.get("/", cookies={"maintenance_bypass": "yes"}).status_code == 200


def test_attribute_bypass_uses_path_params(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch, SITELOCK_BYPASS_ATTRIBUTES='{"slug": "^public-"}')
    _lock(client)
    assert client.get("/pages/public-faq").status_code == 200
    assert client.get("/pages/pricing").status_code == 503


def test_path_bypass_matches_decoded_path(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch, SITELOCK_BYPASS_PATH="^/pages/café$")
    _lock(client)
    assert client.get("/pages/caf%C3%A9").status_code == 200
    assert client.get("/pages/cafe").status_code == 503


def test_host_bypass_is_case_insensitive(tmp_path, monkeypatch):
    client = _create_client(
        tmp_path,
        monkeypatch,
        base_url="http://Preview.Example.com",
        SITELOCK_BYPASS_HOST="^preview\\.example\\.com$",
    )
    _lock(client)
    assert client.get("/").status_code == 200


def test_route_name_and_debug_prefix_bypass(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch, SITELOCK_BYPASS_ROUTE="^page$", SITELOCK_BYPASS_DEBUG="1")
    _lock(client)
    assert client.get("/pages/anything").status_code == 200
    assert client.get("/_profiler").status_code == 200
    assert client.get("/").status_code == 503


def test_role_bypass_with_api_key_identity(tmp_path, monkeypatch):
    client = _create_client(
        tmp_path,
        monkeypatch,
        SITELOCK_API_KEYS="admin-key=ROLE_ADMIN|ROLE_USER,user-key=ROLE_USER",
        SITELOCK_BYPASS_ROLE="ROLE_ADMIN",
    )
    _lock(client)

    assert client.get("/", headers={"X-Sitelock-Api-Key": "admin-key"}).status_code == 200
    assert client.get("/", headers={"X-Sitelock-Api-Key": "user-key"}).status_code == 503
    assert client.get("/", headers={"X-Sitelock-Api-Key": "forged-key"}).status_code == 503
    assert client.get("/").status_code == 503


def test_store_failure_admits_by_default(tmp_path, monkeypatch):
    (tmp_path / "maintenance.lock").mkdir()
    client = _create_client(tmp_path, monkeypatch)
    assert client.get("/").status_code == 200


def test_store_failure_can_lock_site(tmp_path, monkeypatch):
    (tmp_path / "maintenance.lock").mkdir()
    client = _create_client(tmp_path, monkeypatch, SITELOCK_LOCK_ON_STORE_FAILURE="1")
    response = client.get("/")
    assert response.status_code == 503
    assert response.json()["code"] == "MAINTENANCE_MODE"


def test_injected_store_with_clock_expires(tmp_path, monkeypatch, ttl_policy, clock):
    store = FileLockStore(tmp_path / "injected.lock", ttl_policy=ttl_policy)
    client = _create_client(tmp_path, monkeypatch, store=store)
    _lock(client, ttl=60, routes=[])

    clock.advance(59)
    assert client.get("/").status_code == 503
    status = client.get("/ops/maintenance", headers=OPS_HEADERS).json()
    assert status["locked"] is True
    assert status["expires_in"] == 1

    clock.advance(2)
    assert client.get("/").status_code == 200
    assert client.get("/ops/maintenance", headers=OPS_HEADERS).json()["locked"] is False


def test_ops_endpoints_require_ops_key(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch)
    for headers in ({}, {"X-Sitelock-Ops-Key": "wrong"}):
        response = client.post("/ops/maintenance/lock", headers=headers, json={})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"
    assert not (tmp_path / "maintenance.lock").exists()


def test_lock_rejects_non_numeric_ttl(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch)
    response = client.post("/ops/maintenance/lock", headers=OPS_HEADERS, json={"ttl": "tomorrow"})
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "INVALID_INPUT"
    assert body["message"] == "Time must be an integer"
    assert not (tmp_path / "maintenance.lock").exists()


def test_lock_rejects_unknown_fields(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch)
    response = client.post("/ops/maintenance/lock", headers=OPS_HEADERS, json={"minutes": 5})
    assert response.status_code == 422
    assert response.json()["code"] == "REQUEST_VALIDATION_FAILED"


def test_lock_store_failure_returns_500(tmp_path, monkeypatch):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    client = _create_client(tmp_path, monkeypatch, SITELOCK_FILE_PATH=str(blocker / "maintenance.lock"))
    response = client.post("/ops/maintenance/lock", headers=OPS_HEADERS, json={})
    assert response.status_code == 500
    assert response.json()["success"] is False


def test_health_store_failure_error_contract(tmp_path, monkeypatch):
    (tmp_path / "maintenance.lock").mkdir()
    client = _create_client(tmp_path, monkeypatch)
    response = client.get("/health")
    assert response.status_code == 500
    body = response.json()
    assert set(body.keys()) == {"code", "message", "request_id"}
    assert body["code"] == "STORE_UNAVAILABLE"


def test_bad_bypass_regex_fails_startup(tmp_path, monkeypatch):
    monkeypatch.setenv("SITELOCK_BYPASS_ROUTE", "(unclosed")
    with pytest.raises(ConfigurationError):
        create_app()


def test_prod_env_requires_ops_key_on_startup(monkeypatch):
    monkeypatch.setenv("SITELOCK_ENV", "prod")
    with pytest.raises(ConfigurationError, match="ops key"):
        create_app()


def test_docs_disabled_in_prod(tmp_path, monkeypatch):
    client = _create_client(tmp_path, monkeypatch, SITELOCK_ENV="prod")
    assert client.get("/docs").status_code == 404
    assert client.get("/openapi.json").status_code == 404
