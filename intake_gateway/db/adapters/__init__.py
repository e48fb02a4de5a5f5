"""
Storage Adapters

Concrete implementations of the StorageSink interface.
"""

from intake_gateway.db.adapters.memory import InMemoryStorage
from intake_gateway.db.adapters.supabase import SupabaseStorage

__all__ = ["InMemoryStorage", "SupabaseStorage"]
