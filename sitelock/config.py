import json
import os
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from sitelock.maintenance.mode import DEFAULT_EXCEPTION_MESSAGE
from sitelock.maintenance.rules import BypassRuleSet


class ConfigurationError(Exception):
    pass


def _is_enabled(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_str(name: str) -> str | None:
    raw = os.getenv(name, "").strip()
    return raw or None


def _env_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer.") from exc


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_mapping(name: str) -> dict[str, Any]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a JSON object.") from exc
    if not isinstance(value, dict):
        raise ConfigurationError(f"{name} must be a JSON object.")
    return value


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: str = "dev"
    driver: str = "file"
    file_path: str | None = "./data/maintenance.lock"
    db_path: str | None = None
    redis_url: str = "redis://localhost:6379/0"
    redis_key: str = "sitelock:maintenance"
    default_ttl: int | None = None
    lock_on_store_failure: bool = False
    response_status_code: int | None = None
    response_status_text: str | None = None
    exception_message: str = DEFAULT_EXCEPTION_MESSAGE
    rules: BypassRuleSet = BypassRuleSet()


def load_rules() -> BypassRuleSet:
    try:
        return BypassRuleSet(
            query_patterns=_env_mapping("SITELOCK_BYPASS_QUERY"),
            cookie_patterns=_env_mapping("SITELOCK_BYPASS_COOKIES"),
            attribute_patterns=_env_mapping("SITELOCK_BYPASS_ATTRIBUTES"),
            path_pattern=_env_str("SITELOCK_BYPASS_PATH"),
            host_pattern=_env_str("SITELOCK_BYPASS_HOST"),
            allowed_ips=_env_list("SITELOCK_BYPASS_IPS"),
            allowed_route_name=_env_str("SITELOCK_BYPASS_ROUTE"),
            required_role=_env_str("SITELOCK_BYPASS_ROLE"),
            debug_bypass_prefix=_is_enabled(os.getenv("SITELOCK_BYPASS_DEBUG", "0")),
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid maintenance bypass rules: {exc}") from exc


def load_settings() -> Settings:
    default_ttl = _env_int("SITELOCK_TTL")
    if default_ttl is not None and default_ttl <= 0:
        default_ttl = None
    status_code = _env_int("SITELOCK_RESPONSE_CODE")
    if status_code is not None and not 100 <= status_code <= 599:
        raise ConfigurationError("SITELOCK_RESPONSE_CODE must be a valid HTTP status code.")

    return Settings(
        environment=os.getenv("SITELOCK_ENV", "dev").lower(),
        driver=os.getenv("SITELOCK_DRIVER", "file").strip().lower(),
        file_path=os.getenv("SITELOCK_FILE_PATH", "./data/maintenance.lock").strip() or None,
        db_path=_env_str("SITELOCK_DB_PATH"),
        redis_url=os.getenv("SITELOCK_REDIS_URL", "redis://localhost:6379/0"),
        redis_key=os.getenv("SITELOCK_REDIS_KEY", "sitelock:maintenance"),
        default_ttl=default_ttl,
        lock_on_store_failure=_is_enabled(os.getenv("SITELOCK_LOCK_ON_STORE_FAILURE", "0")),
        response_status_code=status_code,
        response_status_text=_env_str("SITELOCK_RESPONSE_STATUS"),
        exception_message=_env_str("SITELOCK_EXCEPTION_MESSAGE") or DEFAULT_EXCEPTION_MESSAGE,
        rules=load_rules(),
    )
