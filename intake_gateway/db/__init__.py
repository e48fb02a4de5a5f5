"""
Storage Abstraction Layer

The record writer persists through a StorageSink, so the managed
database can be replaced by the in-memory sink with no other changes.

Usage:
    from intake_gateway.db import create_storage

    storage = create_storage()
    await storage.connect()
"""

from typing import Optional

from intake_gateway.core.config import Settings, settings as default_settings
from intake_gateway.db.base import StorageSink
from intake_gateway.db.adapters import InMemoryStorage, SupabaseStorage
from intake_gateway.db.models import (
    CALLS_TABLE,
    TRANSCRIPTS_TABLE,
    TOOL_CALLS_TABLE,
    NOTIFICATIONS_TABLE,
    CallRecordDB,
    CallTranscriptDB,
    ToolCallDB,
    NotificationOutcomeDB,
)


def create_storage(config: Optional[Settings] = None) -> StorageSink:
    """Supabase when configured, otherwise in-memory"""
    config = config or default_settings
    if config.supabase_configured:
        return SupabaseStorage(
            url=config.supabase_url,
            service_key=config.supabase_service_key,
            timeout=config.downstream_timeout_seconds,
        )
    return InMemoryStorage()


__all__ = [
    "StorageSink",
    "InMemoryStorage",
    "SupabaseStorage",
    "create_storage",
    "CALLS_TABLE",
    "TRANSCRIPTS_TABLE",
    "TOOL_CALLS_TABLE",
    "NOTIFICATIONS_TABLE",
    "CallRecordDB",
    "CallTranscriptDB",
    "ToolCallDB",
    "NotificationOutcomeDB",
]
