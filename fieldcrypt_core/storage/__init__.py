# fieldcrypt_core/storage/__init__.py

from .provider import RecordStore
from .providers.memory_provider import InMemoryRecordStore
from .providers.sqlite_provider import SQLiteRecordStore
from fieldcrypt_core.schema import Schema
import os


def load_record_store(schema: Schema, config: dict | None = None) -> RecordStore:
    """
    Factory resolver for the reference persistence host.

        - memory (default)
        - sqlite
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("FIELDCRYPT_STORE", "memory")

    if provider == "memory":
        return InMemoryRecordStore(schema)

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("FIELDCRYPT_DB_PATH", "db/fieldcrypt.db")
        return SQLiteRecordStore(schema, db_path)

    raise ValueError(f"Unknown record store provider: {provider}")


__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "load_record_store",
]
