"""Holdings persistence."""

from folio_watch.storage.store import SqliteStore, StorageProtocol, create_store

__all__ = [
    "SqliteStore",
    "StorageProtocol",
    "create_store",
]
