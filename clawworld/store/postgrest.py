"""Supabase / PostgREST record store over httpx"""
import logging
from typing import Any, Optional, Sequence

import httpx

from ..errors import RecordStoreError
from .base import Filter, RecordStore, validate_filters

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_params(
    filters: Sequence[Filter] = (),
    columns: Optional[Sequence[str]] = None,
    order: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[tuple[str, str]]:
    """Translate a query into PostgREST query-string parameters."""
    validate_filters(filters)
    params = [(column, f"{op}.{_format_value(value)}") for column, op, value in filters]
    if columns:
        params.append(("select", ",".join(columns)))
    if order:
        params.append(("order", order))
    if limit is not None:
        params.append(("limit", str(limit)))
    return params


class PostgrestRecordStore(RecordStore):
    """
    Record store backed by a Supabase project's REST endpoint.

    Reads use the anon key unless ``privileged``; writes use the service
    key. Sequence reservation calls the ``reserve_sequence`` SQL function
    (an upsert on the ``sequences`` table, see schema.sql), which
    Postgres runs atomically.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        service_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.service_key = service_key
        self.timeout = timeout
        self.http_client = http_client

    async def connect(self):
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                timeout=self.timeout,
            )
        logger.info(f"Record store: {self.base_url}")

    async def disconnect(self):
        if self.http_client:
            await self.http_client.aclose()

    def _headers(self, privileged: bool, prefer: Optional[str] = None) -> dict:
        key = self.service_key if privileged else self.anon_key
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.http_client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RecordStoreError(f"{method} {path} failed: {e}") from e
        if response.status_code >= 400:
            raise RecordStoreError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}"
            )
        return response

    async def select(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: Optional[Sequence[str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        privileged: bool = False,
    ) -> list[dict]:
        params = build_params(filters, columns or ["*"], order, limit)
        response = await self._request(
            "GET", f"/{collection}", params=params, headers=self._headers(privileged)
        )
        return response.json()

    async def insert(self, collection: str, row: dict, privileged: bool = True) -> dict:
        response = await self._request(
            "POST",
            f"/{collection}",
            json=row,
            headers=self._headers(privileged, prefer="return=representation"),
        )
        rows = response.json()
        if not rows:
            raise RecordStoreError(f"Insert into {collection} returned no row")
        return rows[0]

    async def patch(
        self,
        collection: str,
        filters: Sequence[Filter],
        values: dict,
        privileged: bool = True,
    ) -> list[dict]:
        if not filters:
            raise ValueError("Refusing to patch a whole collection")
        response = await self._request(
            "PATCH",
            f"/{collection}",
            params=build_params(filters),
            json=values,
            headers=self._headers(privileged, prefer="return=representation"),
        )
        return response.json()

    async def count(self, collection: str) -> int:
        response = await self._request(
            "GET",
            f"/{collection}",
            params=[("select", "id"), ("limit", "1")],
            headers=self._headers(False, prefer="count=exact"),
        )
        # Content-Range: 0-0/123 (or */0 when empty)
        content_range = response.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1]
        if not total.isdigit():
            raise RecordStoreError(f"Unexpected Content-Range for {collection}: {content_range!r}")
        return int(total)

    async def reserve_sequence(self, name: str) -> int:
        response = await self._request(
            "POST",
            "/rpc/reserve_sequence",
            json={"sequence_name": name},
            headers=self._headers(True),
        )
        return int(response.json())
