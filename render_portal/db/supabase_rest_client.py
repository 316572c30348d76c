"""
Minimal PostgREST client for the hosted Supabase database.

Mirrors the slice of the supabase-py query builder that ``SupabaseDB`` calls,
so either client can be passed to it:

    client.table("projects").select("*").eq("id", pid).limit(1).execute().data
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"


class PostgrestError(RuntimeError):
    def __init__(self, status_code: int, message: str, code: Optional[str] = None) -> None:
        super().__init__(f"PostgREST {status_code}: {message}")
        self.status_code = status_code
        self.code = code


@dataclass
class QueryResult:
    data: Any = None


def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    text = str(value)
    # Reserved characters inside in.(...) lists must be double-quoted.
    if any(ch in text for ch in ',()"'):
        return '"' + text.replace('"', '\\"') + '"'
    return text


class TableQuery:
    def __init__(self, client: "SupabaseRestClient", table: str) -> None:
        self.client = client
        self.table = table
        self.method = "GET"
        self.params: List[Tuple[str, str]] = []
        self.prefer: List[str] = []
        self.body: Any = None

    def _write(self, method: str, body: Any, *prefer: str) -> "TableQuery":
        self.method = method
        self.body = body
        self.prefer = ["return=representation", *prefer]
        return self

    def select(self, columns: str = "*") -> "TableQuery":
        self.params.append(("select", columns))
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        self.params.append((column, f"eq.{_literal(value)}"))
        return self

    def in_(self, column: str, values: List[Any]) -> "TableQuery":
        self.params.append((column, "in.(" + ",".join(_literal(v) for v in values) + ")"))
        return self

    def order(self, column: str, desc: bool = False) -> "TableQuery":
        self.params.append(("order", f"{column}.{'desc' if desc else 'asc'}"))
        return self

    def limit(self, n: int) -> "TableQuery":
        self.params.append(("limit", str(int(n))))
        return self

    def insert(self, row: Any) -> "TableQuery":
        return self._write("POST", row)

    def upsert(self, row: Any, on_conflict: Optional[str] = None) -> "TableQuery":
        if on_conflict:
            self.params.append(("on_conflict", on_conflict))
        return self._write("POST", row, "resolution=merge-duplicates")

    def update(self, fields: Dict[str, Any]) -> "TableQuery":
        return self._write("PATCH", fields)

    def delete(self) -> "TableQuery":
        return self._write("DELETE", None)

    def execute(self) -> QueryResult:
        headers = {"Prefer": ", ".join(self.prefer)} if self.prefer else {}
        response = self.client.send(self.method, f"{REST_PREFIX}/{self.table}", self.params, headers, self.body)
        return QueryResult(data=response.json() if response.content else None)


class SupabaseRestClient:
    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        *,
        timeout_s: float = 25.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout_s,
            transport=transport,
            headers={
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
                "Content-Type": "application/json",
            },
        )

    def send(
        self,
        method: str,
        path: str,
        params: List[Tuple[str, str]],
        headers: Dict[str, str],
        body: Any,
    ) -> httpx.Response:
        response = self._http.request(method, path, params=params, headers=headers, json=body)
        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            message = payload.get("message") if isinstance(payload, dict) else None
            code = payload.get("code") if isinstance(payload, dict) else None
            logger.warning("%s %s failed: %s %s", method, path, response.status_code, message or response.text[:200])
            raise PostgrestError(response.status_code, message or response.reason_phrase, code)
        return response

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    def close(self) -> None:
        self._http.close()


def create_client(url: str, key: str, **kwargs: Any) -> SupabaseRestClient:
    return SupabaseRestClient(url, key, **kwargs)
