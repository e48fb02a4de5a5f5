"""
In-Memory Storage Adapter

Keeps rows in process memory. Used when no managed database is
configured, and in tests.
"""

import copy
from typing import Optional, List, Dict, Any

from intake_gateway.core.logging import get_logger
from intake_gateway.db.base import StorageSink

logger = get_logger(__name__)


class InMemoryStorage(StorageSink):
    """Storage sink backed by per-table lists of dicts"""

    def __init__(self):
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        self._connected = False

    async def connect(self) -> bool:
        self._connected = True
        logger.info("Using in-memory storage")
        return True

    async def disconnect(self) -> None:
        self._connected = False

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        return self._tables.setdefault(table, [])

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(row)
        self._rows(table).append(stored)
        return copy.deepcopy(stored)

    async def upsert(self, table: str, row: Dict[str, Any], on_conflict: str) -> Dict[str, Any]:
        rows = self._rows(table)
        stored = copy.deepcopy(row)
        for index, existing in enumerate(rows):
            if existing.get(on_conflict) == row.get(on_conflict):
                rows[index] = stored
                break
        else:
            rows.append(stored)
        return copy.deepcopy(stored)

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters = filters or {}
        matches = [
            copy.deepcopy(row)
            for row in self._tables.get(table, [])
            if all(row.get(column) == value for column, value in filters.items())
        ]
        return matches[:limit] if limit is not None else matches

    def is_connected(self) -> bool:
        return self._connected

    def count(self, table: str) -> int:
        return len(self._tables.get(table, []))
