from sitelock.config import ConfigurationError, Settings
from sitelock.storage.base import LockStore
from sitelock.storage.local import FileLockStore
from sitelock.storage.memory import MemoryLockStore
from sitelock.storage.redis_cache import RedisLockStore
from sitelock.storage.s3 import s3_from_env
from sitelock.storage.sqlite import SqliteLockStore


def get_lock_store(settings: Settings) -> LockStore:
    driver = settings.driver
    if driver == "file":
        if not settings.file_path:
            raise ConfigurationError("SITELOCK_FILE_PATH is required for the file driver.")
        return FileLockStore(settings.file_path, default_ttl=settings.default_ttl)
    if driver == "memory":
        return MemoryLockStore(default_ttl=settings.default_ttl)
    if driver == "sqlite":
        if not settings.db_path:
            raise ConfigurationError("SITELOCK_DB_PATH is required for the sqlite driver.")
        return SqliteLockStore(settings.db_path, default_ttl=settings.default_ttl)
    if driver == "redis":
        return RedisLockStore(settings.redis_url, settings.redis_key, default_ttl=settings.default_ttl)
    if driver == "s3":
        store = s3_from_env(default_ttl=settings.default_ttl)
        if not store.bucket:
            raise ConfigurationError("SITELOCK_S3_BUCKET is required for the s3 driver.")
        return store
    raise ConfigurationError(f"Unknown maintenance driver: {driver!r}.")
