"""
Storage Sink Base Class

This module defines the abstract interface that all storage adapters
must implement. The record writer only talks to this interface, so the
managed database can be swapped for the in-memory sink in development
and tests.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any


class StorageSink(ABC):
    """
    Abstract base class for storage adapters.

    Rows are plain JSON-compatible dicts. Adapters raise StorageError
    for failed operations.
    """

    @abstractmethod
    async def connect(self) -> bool:
        """
        Prepare the sink for use.
        Returns True if successful, False otherwise.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release connections held by the sink."""
        pass

    @abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it as stored."""
        pass

    @abstractmethod
    async def upsert(self, table: str, row: Dict[str, Any], on_conflict: str) -> Dict[str, Any]:
        """
        Insert a row, or replace the existing row with the same
        value in the `on_conflict` column.
        """
        pass

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows whose columns equal every filter value."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the sink is ready."""
        pass
