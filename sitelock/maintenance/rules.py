import ipaddress
import re
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

IpNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def _compile(value: Any, flags: int = 0) -> re.Pattern[str] | None:
    if value is None:
        return None
    if isinstance(value, re.Pattern):
        return value
    text = str(value)
    if not text:
        return None
    try:
        return re.compile(text, flags)
    except re.error as exc:
        raise ValueError(f"invalid pattern {text!r}: {exc}") from exc


def _compile_mapping(value: Any) -> dict[str, re.Pattern[str]]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError("pattern mapping must be an object")
    compiled = {}
    for key, pattern in value.items():
        result = _compile(pattern)
        if result is not None:
            compiled[str(key)] = result
    return compiled


class BypassRuleSet(BaseModel):
    """Conditions that let a request through while the site is locked.

    Built once from configuration and shared read-only by every request.
    Empty patterns are dropped at load time so they can never match.
    """

    model_config = ConfigDict(frozen=True)

    query_patterns: dict[str, re.Pattern[str]] = Field(default_factory=dict)
    cookie_patterns: dict[str, re.Pattern[str]] = Field(default_factory=dict)
    attribute_patterns: dict[str, re.Pattern[str]] = Field(default_factory=dict)
    path_pattern: re.Pattern[str] | None = None
    host_pattern: re.Pattern[str] | None = None
    allowed_ips: tuple[IpNetwork, ...] = ()
    allowed_route_name: re.Pattern[str] | None = None
    required_role: str | None = None
    debug_bypass_prefix: bool = False

    @field_validator("query_patterns", "cookie_patterns", "attribute_patterns", mode="before")
    @classmethod
    def compile_mappings(cls, value):
        return _compile_mapping(value)

    @field_validator("path_pattern", "allowed_route_name", mode="before")
    @classmethod
    def compile_pattern(cls, value):
        return _compile(value)

    @field_validator("host_pattern", mode="before")
    @classmethod
    def compile_host_pattern(cls, value):
        return _compile(value, re.IGNORECASE)

    @field_validator("allowed_ips", mode="before")
    @classmethod
    def parse_networks(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        networks = []
        for entry in value:
            if isinstance(entry, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
                networks.append(entry)
                continue
            text = str(entry).strip()
            if not text:
                continue
            try:
                networks.append(ipaddress.ip_network(text, strict=False))
            except ValueError as exc:
                raise ValueError(f"invalid IP or CIDR {text!r}") from exc
        return tuple(networks)

    @field_validator("required_role", mode="before")
    @classmethod
    def blank_role_is_none(cls, value):
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def match_ip(self, client_ip: str | None) -> bool:
        if not self.allowed_ips or not client_ip:
            return False
        try:
            address = ipaddress.ip_address(client_ip)
        except ValueError:
            return False
        return any(address.version == network.version and address in network for network in self.allowed_ips)

    def match_route(self, route_name: str | None) -> bool:
        if not route_name:
            return False
        if self.allowed_route_name is not None and self.allowed_route_name.search(route_name):
            return True
        return self.debug_bypass_prefix and route_name.startswith("_")


def match_mapping(patterns: Mapping[str, re.Pattern[str]], values: Mapping[str, Any]) -> bool:
    """True when any configured key is present and its value matches."""
    for key, pattern in patterns.items():
        value = values.get(key)
        if value is None:
            continue
        if pattern.search(str(value)):
            return True
    return False
