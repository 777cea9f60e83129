import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger


class PersistenceError(Exception):
    """The lead table could not be read or written."""


class LeadNotFound(Exception):
    """No lead exists with the requested id."""


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabaseLeadStore:
    """Lead table in Supabase, accessed through the PostgREST API."""

    backend = "supabase"

    def __init__(self, url: str, key: str, table: str, timeout: float = 20.0):
        self.base_url = f"{url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, params: Optional[Dict[str, Any]] = None,
                 json_data: Optional[Any] = None, prefer: Optional[str] = None) -> Any:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = httpx.request(
                method,
                self.base_url,
                headers=headers,
                params=params,
                json=json_data,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceError(
                f"Supabase {method} failed with {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"Supabase {method} failed: {e}") from e

        if not response.content:
            return None
        return response.json()

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one lead row and return it as stored (with generated id)."""
        data = self._request("POST", json_data=row, prefer="return=representation")
        if not data:
            raise PersistenceError("Supabase insert returned no row")
        record = data[0] if isinstance(data, list) else data
        logger.info(f"Lead stored in Supabase: {record.get('id')}")
        return record

    def get(self, lead_id: str) -> Dict[str, Any]:
        data = self._request("GET", params={"select": "*", "id": f"eq.{lead_id}"})
        if not data:
            raise LeadNotFound(lead_id)
        return data[0]

    def list(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent leads first."""
        return self._request(
            "GET",
            params={"select": "*", "order": "created_at.desc", "limit": limit},
        ) or []

    def update_status(self, lead_id: str, status: str) -> Dict[str, Any]:
        data = self._request(
            "PATCH",
            params={"id": f"eq.{lead_id}"},
            json_data={"status": status},
            prefer="return=representation",
        )
        if not data:
            raise LeadNotFound(lead_id)
        return data[0]

    def delete(self, lead_id: str) -> None:
        data = self._request("DELETE", params={"id": f"eq.{lead_id}"}, prefer="return=representation")
        if not data:
            raise LeadNotFound(lead_id)


class MemoryLeadStore:
    """In-process lead table used when Supabase is not configured."""

    backend = "memory"

    def __init__(self):
        self._rows: Dict[str, Dict[str, Any]] = {}

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(row)
        record["id"] = str(uuid.uuid4())
        record["created_at"] = _utcnow_iso()
        self._rows[record["id"]] = record
        logger.info(f"Mock mode: lead stored in memory: {record['id']}")
        return dict(record)

    def get(self, lead_id: str) -> Dict[str, Any]:
        if lead_id not in self._rows:
            raise LeadNotFound(lead_id)
        return dict(self._rows[lead_id])

    def list(self, limit: int = 100) -> List[Dict[str, Any]]:
        rows = sorted(self._rows.values(), key=lambda r: r["created_at"], reverse=True)
        return [dict(r) for r in rows[:limit]]

    def update_status(self, lead_id: str, status: str) -> Dict[str, Any]:
        if lead_id not in self._rows:
            raise LeadNotFound(lead_id)
        self._rows[lead_id]["status"] = status
        return dict(self._rows[lead_id])

    def delete(self, lead_id: str) -> None:
        if self._rows.pop(lead_id, None) is None:
            raise LeadNotFound(lead_id)


def create_lead_store(settings):
    """Use Supabase when credentials are configured, otherwise an in-memory table."""
    if settings.supabase_url and settings.supabase_key:
        return SupabaseLeadStore(
            settings.supabase_url,
            settings.supabase_key,
            settings.leads_table,
            timeout=settings.http_timeout_seconds,
        )
    logger.warning("No Supabase credentials provided, using mock mode")
    return MemoryLeadStore()
