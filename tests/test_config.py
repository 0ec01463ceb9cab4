import re

import pytest
from pydantic import ValidationError

from sitelock.config import ConfigurationError, load_settings
from sitelock.maintenance.rules import BypassRuleSet
from sitelock.storage.factory import get_lock_store
from sitelock.storage.local import FileLockStore
from sitelock.storage.memory import MemoryLockStore
from sitelock.storage.sqlite import SqliteLockStore


def test_defaults_without_environment():
    settings = load_settings()
    assert settings.driver == "file"
    assert settings.default_ttl is None
    assert settings.lock_on_store_failure is False
    assert settings.exception_message == "Service temporarily unavailable."
    assert settings.rules == BypassRuleSet()


def test_rules_loaded_from_environment(monkeypatch):
    monkeypatch.setenv("SITELOCK_BYPASS_QUERY", '{"preview": "^secret$", "empty": ""}')
    monkeypatch.setenv("SITELOCK_BYPASS_COOKIES", '{"maintenance_bypass": "^1$"}')
    monkeypatch.setenv("SITELOCK_BYPASS_PATH", "^/static/")
    monkeypatch.setenv("SITELOCK_BYPASS_HOST", "^admin\\.")
    monkeypatch.setenv("SITELOCK_BYPASS_IPS", "127.0.0.1, 192.168.1.0/24,::1")
    monkeypatch.setenv("SITELOCK_BYPASS_ROUTE", "^status_")
    monkeypatch.setenv("SITELOCK_BYPASS_ROLE", "ROLE_ADMIN")
    monkeypatch.setenv("SITELOCK_BYPASS_DEBUG", "true")

    rules = load_settings().rules

    assert set(rules.query_patterns) == {"preview"}
    assert rules.cookie_patterns["maintenance_bypass"].pattern == "^1$"
    assert rules.path_pattern.pattern == "^/static/"
    assert rules.host_pattern.flags & re.IGNORECASE
    assert len(rules.allowed_ips) == 3
    assert rules.required_role == "ROLE_ADMIN"
    assert rules.debug_bypass_prefix is True


def test_malformed_regex_fails_at_load(monkeypatch):
    monkeypatch.setenv("SITELOCK_BYPASS_PATH", "^/static/(")
    with pytest.raises(ConfigurationError, match="bypass rules"):
        load_settings()


def test_malformed_regex_in_mapping_fails_at_load(monkeypatch):
    monkeypatch.setenv("SITELOCK_BYPASS_QUERY", '{"preview": "[unclosed"}')
    with pytest.raises(ConfigurationError):
        load_settings()


def test_mapping_must_be_json_object(monkeypatch):
    monkeypatch.setenv("SITELOCK_BYPASS_COOKIES", '["not", "an", "object"]')
    with pytest.raises(ConfigurationError, match="JSON object"):
        load_settings()


def test_invalid_ip_fails_at_load(monkeypatch):
    monkeypatch.setenv("SITELOCK_BYPASS_IPS", "10.0.0.300")
    with pytest.raises(ConfigurationError):
        load_settings()


def test_non_numeric_ttl_fails_at_load(monkeypatch):
    monkeypatch.setenv("SITELOCK_TTL", "an hour")
    with pytest.raises(ConfigurationError, match="SITELOCK_TTL"):
        load_settings()


def test_response_code_must_be_http_status(monkeypatch):
    monkeypatch.setenv("SITELOCK_RESPONSE_CODE", "42")
    with pytest.raises(ConfigurationError):
        load_settings()


def test_rule_set_rejects_bad_pattern_directly():
    with pytest.raises(ValidationError):
        BypassRuleSet(allowed_route_name="(")


def test_empty_patterns_are_dropped():
    rules = BypassRuleSet(path_pattern="", host_pattern="", allowed_route_name="", required_role="  ")
    assert rules.path_pattern is None
    assert rules.host_pattern is None
    assert rules.allowed_route_name is None
    assert rules.required_role is None


def test_factory_selects_driver(tmp_path, monkeypatch):
    monkeypatch.setenv("SITELOCK_FILE_PATH", str(tmp_path / "maintenance.lock"))
    monkeypatch.setenv("SITELOCK_TTL", "600")
    store = get_lock_store(load_settings())
    assert isinstance(store, FileLockStore)
    assert store.default_ttl == 600

    monkeypatch.setenv("SITELOCK_DRIVER", "memory")
    assert isinstance(get_lock_store(load_settings()), MemoryLockStore)

    monkeypatch.setenv("SITELOCK_DRIVER", "sqlite")
    monkeypatch.setenv("SITELOCK_DB_PATH", str(tmp_path / "sitelock.sqlite3"))
    assert isinstance(get_lock_store(load_settings()), SqliteLockStore)


@pytest.mark.parametrize(
    ("driver", "message"),
    [
        ("sqlite", "SITELOCK_DB_PATH"),
        ("s3", "SITELOCK_S3_BUCKET"),
        ("ftp", "Unknown maintenance driver"),
    ],
)
def test_factory_rejects_incomplete_configuration(monkeypatch, driver, message):
    monkeypatch.setenv("SITELOCK_DRIVER", driver)
    monkeypatch.delenv("SITELOCK_S3_BUCKET", raising=False)
    with pytest.raises(ConfigurationError, match=message):
        get_lock_store(load_settings())


def test_factory_requires_file_path(monkeypatch):
    monkeypatch.setenv("SITELOCK_FILE_PATH", " ")
    with pytest.raises(ConfigurationError, match="SITELOCK_FILE_PATH"):
        get_lock_store(load_settings())
