from typing import Callable

from stampbot.config import Settings, get_settings
from stampbot.services.record_store.base import Cond, RecordStore, RecordStoreError, gte, lt
from stampbot.services.record_store.sql import SqlRecordStore
from stampbot.services.record_store.supabase import SupabaseRecordStore


def build_record_store(settings: Settings) -> RecordStore:
    """Supabase REST when configured, otherwise the SQLAlchemy database."""
    if settings.uses_supabase:
        return SupabaseRecordStore.from_settings(settings)

    from stampbot.database import SessionLocal

    return SqlRecordStore(
        SessionLocal(), media_dir=settings.media_storage_dir, public_base_url=settings.public_base_url
    )


def get_record_store_factory() -> Callable[[], RecordStore]:
    """Store builder for work that may outlive the request, such as threadpool dispatch."""
    settings = get_settings()
    return lambda: build_record_store(settings)


def get_record_store():
    """Request-scoped store for FastAPI dependencies."""
    store = build_record_store(get_settings())
    try:
        yield store
    finally:
        store.close()


__all__ = [
    "Cond",
    "RecordStore",
    "RecordStoreError",
    "SqlRecordStore",
    "SupabaseRecordStore",
    "build_record_store",
    "get_record_store",
    "get_record_store_factory",
    "gte",
    "lt",
]
