MESSAGES: dict[str, str] = {
    "success_lock": "Server is under maintenance.",
    "success_lock_ttl": "Server is under maintenance for {ttl} seconds.",
    "not_success_lock": "Maintenance could not be enabled.",
    "success_unlock": "Server is back online.",
    "not_success_unlock": "Server was not under maintenance.",
    "unlock_failed": "Maintenance could not be disabled.",
    "ttl_not_supported": "TTL does not work with the {driver} driver; the lock will not expire.",
    "maintenance_cancelled": "Maintenance cancelled!",
    "confirm": "WARNING! Are you sure you wish to continue? (y/n)",
}


def message(key: str, **params) -> str:
    # Unknown keys fall back to the key itself so a missing entry stays visible.
    template = MESSAGES.get(key, key)
    return template.format(**params) if params else template
