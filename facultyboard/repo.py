from __future__ import annotations

import logging
import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import asyncpg
import httpx

from .config import AppSettings, settings
from .schemas import FetchResult


logger = logging.getLogger("facultyboard.repo")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Filter(NamedTuple):
    column: str
    op: str
    value: Any


class RecordSourceError(RuntimeError):
    def __init__(self, result: FetchResult) -> None:
        super().__init__(f"{result.table}: {result.error}")
        self.result = result

    @property
    def table(self) -> str:
        return self.result.table


def require(result: FetchResult) -> FetchResult:
    if result.failed:
        raise RecordSourceError(result)
    return result


def _plain(value: Any) -> Any:
    # Rows look the same whichever backend produced them
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class RecordSource:
    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    async def fetch_collection(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> FetchResult:
        raise NotImplementedError

    async def count_rows(self, table: str, *, filters: Sequence[Filter] = ()) -> FetchResult:
        raise NotImplementedError


# -----------------------------
# Supabase (PostgREST over httpx)
# -----------------------------

def _postgrest_literal(value: Any) -> str:
    text = str(_plain(value))
    if any(ch in text for ch in ',()" '):
        text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


def _postgrest_filter(f: Filter) -> str:
    if f.op == "in":
        return "in.(" + ",".join(_postgrest_literal(v) for v in f.value) + ")"
    if f.op in ("eq", "gte", "lt", "lte"):
        return f"{f.op}.{_plain(f.value)}"
    raise ValueError(f"Unsupported filter operator: {f.op}")


def _parse_content_range(header: Optional[str]) -> Optional[int]:
    # "0-24/3573" or "*/0"
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class SupabaseRecordSource(RecordSource):
    def __init__(
        self,
        url: Optional[str],
        key: Optional[str],
        *,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = (url or "").rstrip("/")
        self._key = key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self._url:
            raise RuntimeError("SUPABASE_URL is not set")
        if not self._key:
            raise RuntimeError("SUPABASE_SERVICE_KEY or SUPABASE_ANON_KEY must be set")
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Accept": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    @staticmethod
    def _params(filters: Sequence[Filter]) -> List[tuple]:
        return [(f.column, _postgrest_filter(f)) for f in filters]

    async def fetch_collection(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> FetchResult:
        params = [("select", select)] + self._params(filters)
        if order_by:
            params.append(("order", f"{order_by}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        try:
            headers = self._headers()
            async with self._client() as client:
                r = await client.get(f"{self._url}/rest/v1/{table}", headers=headers, params=params)
        except (httpx.HTTPError, RuntimeError) as exc:
            logger.error("Supabase fetch %s failed: %s", table, exc)
            return FetchResult.failure(table, str(exc))
        if r.status_code >= 400:
            logger.error("Supabase error %s on %s: %s", r.status_code, table, r.text)
            return FetchResult.failure(table, f"HTTP {r.status_code}: {r.text}")
        rows = r.json() or []
        return FetchResult.success(table, rows)

    async def count_rows(self, table: str, *, filters: Sequence[Filter] = ()) -> FetchResult:
        params = [("select", "id")] + self._params(filters)
        try:
            headers = {**self._headers(), "Prefer": "count=exact"}
            async with self._client() as client:
                r = await client.head(f"{self._url}/rest/v1/{table}", headers=headers, params=params)
        except (httpx.HTTPError, RuntimeError) as exc:
            logger.error("Supabase count %s failed: %s", table, exc)
            return FetchResult.failure(table, str(exc))
        if r.status_code >= 400:
            logger.error("Supabase error %s on count %s", r.status_code, table)
            return FetchResult.failure(table, f"HTTP {r.status_code}")
        count = _parse_content_range(r.headers.get("content-range"))
        if count is None:
            return FetchResult.failure(table, "missing Content-Range count")
        return FetchResult.success(table, [], count=count)


# -----------------------------
# Direct Postgres (asyncpg)
# -----------------------------

def _quote_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return f'"{name}"'


def _select_list(select: str) -> str:
    if select.strip() == "*":
        return "*"
    return ", ".join(_quote_identifier(c.strip()) for c in select.split(",") if c.strip())


def _where_clause(filters: Sequence[Filter], args: List[Any]) -> str:
    clauses = []
    for f in filters:
        column = _quote_identifier(f.column)
        if f.op == "in":
            args.append([str(_plain(v)) for v in f.value])
            clauses.append(f"{column}::text = ANY(${len(args)}::text[])")
            continue
        sql_op = {"eq": "=", "gte": ">=", "lt": "<", "lte": "<="}.get(f.op)
        if sql_op is None:
            raise ValueError(f"Unsupported filter operator: {f.op}")
        args.append(str(_plain(f.value)))
        clauses.append(f"{column}::text {sql_op} ${len(args)}")
    return (" WHERE " + " AND ".join(clauses)) if clauses else ""


class PostgresRecordSource(RecordSource):
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        if self._dsn and self._pool is None:
            self._pool = await asyncpg.create_pool(dsn=self._dsn, min_size=1, max_size=10)

    async def disconnect(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def _fetch(self, sql: str, args: List[Any]) -> List[asyncpg.Record]:
        await self.connect()
        if self._pool is None:
            raise RuntimeError("Database pool not configured. Set DATABASE_URL.")
        async with self._pool.acquire() as conn:
            return await conn.fetch(sql, *args)

    async def fetch_collection(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> FetchResult:
        args: List[Any] = []
        try:
            sql = f"SELECT {_select_list(select)} FROM {_quote_identifier(table)}"
            sql += _where_clause(filters, args)
            if order_by:
                sql += f" ORDER BY {_quote_identifier(order_by)} {'DESC' if descending else 'ASC'}"
            if limit is not None:
                args.append(int(limit))
                sql += f" LIMIT ${len(args)}"
            records = await self._fetch(sql, args)
        except (asyncpg.PostgresError, OSError, RuntimeError, ValueError) as exc:
            logger.error("Postgres fetch %s failed: %s", table, exc)
            return FetchResult.failure(table, str(exc))
        rows = [{k: _plain(v) for k, v in dict(r).items()} for r in records]
        return FetchResult.success(table, rows)

    async def count_rows(self, table: str, *, filters: Sequence[Filter] = ()) -> FetchResult:
        args: List[Any] = []
        try:
            sql = f"SELECT COUNT(*) AS c FROM {_quote_identifier(table)}" + _where_clause(filters, args)
            records = await self._fetch(sql, args)
        except (asyncpg.PostgresError, OSError, RuntimeError, ValueError) as exc:
            logger.error("Postgres count %s failed: %s", table, exc)
            return FetchResult.failure(table, str(exc))
        count = int(records[0]["c"]) if records else 0
        return FetchResult.success(table, [], count=count)


def build_record_source(cfg: AppSettings = settings) -> RecordSource:
    if cfg.database_url:
        return PostgresRecordSource(cfg.database_url)
    return SupabaseRecordSource(cfg.supabase_url, cfg.supabase_key, timeout=cfg.request_timeout_seconds)
