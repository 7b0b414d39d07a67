from typing import Optional, Sequence
from urllib.parse import quote

import httpx

from stampbot.config import ConfigurationError, Settings
from stampbot.logging_config import get_logger
from stampbot.services.record_store.base import RecordStore, RecordStoreError, iter_conditions, to_json_row, to_json_value

logger = get_logger("record_store.supabase")


def _format_value(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(to_json_value(value))


class SupabaseRecordStore(RecordStore):
    """PostgREST + Storage backend over a single bounded httpx client."""

    def __init__(self, url: str, key: str, timeout_seconds: float = 10.0, client: Optional[httpx.Client] = None):
        if not url or not key:
            raise ConfigurationError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY/KEY")
        self.base_url = url.rstrip("/")
        self.key = key
        self.client = client or httpx.Client(timeout=timeout_seconds)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseRecordStore":
        return cls(settings.supabase_url, settings.supabase_service_role_key, settings.http_timeout_seconds)

    def _headers(self, prefer: Optional[str] = None, extra: Optional[dict] = None) -> dict:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        if extra:
            headers.update(extra)
        return headers

    def _params(self, filters: Optional[dict]) -> list[tuple[str, str]]:
        return [(column, f"{op}.{_format_value(value)}") for column, op, value in iter_conditions(filters)]

    def _request(self, method: str, table: str, *, params=None, json=None, prefer: Optional[str] = None):
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            response = self.client.request(method, url, params=params, json=json, headers=self._headers(prefer))
        except httpx.HTTPError as e:
            logger.error(f"[SB {method}] {table} transport error: {e}")
            raise RecordStoreError(f"Supabase {method} {table} failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                f"[SB {method}] {table} {response.status_code}",
                extra={"context": {"body": response.text[:300]}},
            )
            raise RecordStoreError(f"Supabase {method} {table} failed with {response.status_code}")

        if not response.content:
            return []
        try:
            return response.json()
        except ValueError:
            return []

    def get_one(self, table: str, filters: dict, columns: str = "*") -> Optional[dict]:
        rows = self.select(table, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    def select(self, table, filters=None, columns="*", order_by=None, limit=None) -> list[dict]:
        params = self._params(filters)
        params.append(("select", columns))
        if order_by:
            params.append(("order", order_by))
        if limit is not None:
            params.append(("limit", str(limit)))
        return self._request("GET", table, params=params) or []

    def insert(self, table: str, row: dict) -> dict:
        rows = self._request("POST", table, json=[to_json_row(row)], prefer="return=representation")
        return rows[0] if rows else to_json_row(row)

    def insert_if_absent(self, table: str, row: dict, conflict: Sequence[str]) -> bool:
        rows = self._request(
            "POST",
            table,
            params=[("on_conflict", ",".join(conflict))],
            json=[to_json_row(row)],
            prefer="resolution=ignore-duplicates,return=representation",
        )
        return bool(rows)

    def upsert(self, table: str, row: dict, conflict: Sequence[str]) -> Optional[dict]:
        rows = self._request(
            "POST",
            table,
            params=[("on_conflict", ",".join(conflict))],
            json=[to_json_row(row)],
            prefer="resolution=merge-duplicates,return=representation",
        )
        return rows[0] if rows else None

    def update(self, table: str, filters: dict, patch: dict) -> int:
        rows = self._request(
            "PATCH", table, params=self._params(filters), json=to_json_row(patch), prefer="return=representation"
        )
        return len(rows)

    def delete(self, table: str, filters: dict) -> int:
        rows = self._request("DELETE", table, params=self._params(filters), prefer="return=representation")
        return len(rows)

    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        object_path = quote(path.lstrip("/"), safe="/")
        url = f"{self.base_url}/storage/v1/object/{bucket}/{object_path}"
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "true",
        }
        try:
            response = self.client.post(url, content=content, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[SB UPLOAD] {bucket}/{path} transport error: {e}")
            raise RecordStoreError(f"Supabase upload failed: {e}") from e
        if response.status_code >= 400:
            logger.error(f"[SB UPLOAD] {bucket}/{path} {response.status_code}: {response.text[:200]}")
            raise RecordStoreError(f"Supabase upload failed with {response.status_code}")
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{object_path}"

    def close(self) -> None:
        self.client.close()
