"""
Supabase Storage Adapter

Implementation of the StorageSink interface over Supabase's PostgREST API.
"""

from typing import Optional, List, Dict, Any

import httpx

from intake_gateway.core.config import settings
from intake_gateway.core.exceptions import StorageError
from intake_gateway.core.logging import get_logger
from intake_gateway.db.base import StorageSink

logger = get_logger(__name__)


class SupabaseStorage(StorageSink):
    """
    Supabase (PostgREST) storage adapter.

    Uses a shared httpx.AsyncClient. HTTP failures are raised as
    StorageError carrying the upstream status, so 5xx and 429 responses
    are retried by the record writer and 4xx are not.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Supabase adapter.

        Args:
            url: Project URL (defaults to settings.supabase_url)
            service_key: Service role key (defaults to settings.supabase_service_key)
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport, for tests
        """
        self.url = (url or settings.supabase_url or "").rstrip("/")
        self.service_key = service_key or settings.supabase_service_key
        self.timeout = timeout or settings.downstream_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> bool:
        """Create the HTTP client."""
        if not self.url or not self.service_key:
            logger.error("Cannot connect: Missing SUPABASE_URL or SUPABASE_SERVICE_KEY")
            return False

        self._client = httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1",
            headers={
                "apikey": self.service_key,
                "Authorization": f"Bearer {self.service_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.info(f"Connected to Supabase: {self.url}")
        return True

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            try:
                await self._client.aclose()
            finally:
                self._client = None
                logger.info("Disconnected from Supabase")

    def _require_client(self, operation: str) -> httpx.AsyncClient:
        if self._client is None:
            raise StorageError(operation, "storage not connected")
        return self._client

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Any:
        client = self._require_client(operation)
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Supabase {operation} on {path} failed: HTTP {status}")
            raise StorageError(operation, e.response.text[:200] or f"HTTP {status}", upstream_status=status)
        except httpx.TransportError as e:
            logger.error(f"Supabase {operation} on {path} failed: {e}")
            raise StorageError(operation, str(e) or e.__class__.__name__)

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _first(rows: Any, fallback: Dict[str, Any]) -> Dict[str, Any]:
        if isinstance(rows, list) and rows:
            return rows[0]
        return fallback

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self._request(
            "insert", "POST", f"/{table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        return self._first(rows, row)

    async def upsert(self, table: str, row: Dict[str, Any], on_conflict: str) -> Dict[str, Any]:
        rows = await self._request(
            "upsert", "POST", f"/{table}",
            json=row,
            params={"on_conflict": on_conflict},
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return self._first(rows, row)

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"select": "*"}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        if limit is not None:
            params["limit"] = limit
        rows = await self._request("select", "GET", f"/{table}", params=params)
        return rows or []

    def is_connected(self) -> bool:
        return self._client is not None
