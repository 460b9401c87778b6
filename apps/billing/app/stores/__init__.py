from .base import BillRecord, BillStore, CatalogStore, MenuRecord, business_clock, WriteGuard
from .document import DocumentStore
from .sql import SqlStore

__all__ = [
    "BillRecord",
    "BillStore",
    "CatalogStore",
    "MenuRecord",
    "business_clock",
    "DocumentStore",
    "SqlStore",
    "WriteGuard",
]
