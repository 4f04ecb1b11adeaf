# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Backend HTTP Client — SchemaGate side interface to the Supabase-compatible backend.

One httpx.AsyncClient serves every component: the tenant validator's RPC,
the schema-scoped record store (PostgREST), the object store and the auth
delegate (GoTrue). Tenant scoping is expressed with PostgREST's
Accept-Profile / Content-Profile headers, never with table-name prefixes.

Every call returns a Result; no httpx exception escapes this module.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from schema_gate.core.errors import (
    UNDEFINED_PROCEDURE_CODES,
    UNIQUE_VIOLATION,
    AuthError,
    BackendError,
    ConflictError,
    GateError,
    NetworkError,
    NotFoundError,
    Result,
)
from schema_gate.core.metrics import gate_metrics
from schema_gate.runtime.auth import AuthDelegate
from schema_gate.runtime.session_store import MemorySessionStore, SessionStore

logger = logging.getLogger("gate.backend")


def error_from_response(resp: httpx.Response) -> GateError:
    """Map an HTTP error response onto the client error taxonomy."""
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = (
        body.get("message")
        or body.get("msg")
        or body.get("error_description")
        or body.get("error")
        or resp.text
        or resp.reason_phrase
    )
    code = str(body.get("error_code") or body.get("code") or resp.status_code)
    details = {k: body[k] for k in ("details", "hint") if body.get(k)}
    status = resp.status_code

    if code == UNIQUE_VIOLATION or status == 409:
        return ConflictError(message, code=code, details=details)
    if code in UNDEFINED_PROCEDURE_CODES:
        return BackendError(code=code, message=message, status_code=status, details=details)
    if status in (401, 403):
        return AuthError(message, code=code, status_code=status, details=details)
    if status == 404 or status == 406:
        return NotFoundError(message, code=code, details=details)
    return BackendError(code=code, message=message, status_code=status, details=details)


def _decode(resp: httpx.Response) -> Any:
    if resp.status_code == 204 or not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _eq_filters(filters: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    return {column: f"eq.{value}" for column, value in (filters or {}).items()}


class BackendClient:
    """
    Supabase-compatible backend client.

    Usage:
        async with BackendClient("https://xyz.supabase.co", anon_key) as backend:
            data, error = await backend.rpc("validate_schema", {"schema_name": "s22"})
            rows, error = await backend.table("profiles", schema="s22").select()
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        session_store: Optional[SessionStore] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._client = httpx.AsyncClient(
            base_url=self._url,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": anon_key,
                "X-Client-Info": "schema-gate-python",
            },
        )
        self._auth = AuthDelegate(self, session_store or MemorySessionStore())

    @property
    def url(self) -> str:
        return self._url

    @property
    def anon_key(self) -> str:
        return self._anon_key

    @property
    def auth(self) -> AuthDelegate:
        """Identity-provider delegate, shared by every gateway built on this client."""
        return self._auth

    # ── Transport ─────────────────────────────────────────────

    async def request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        content: Optional[bytes] = None,
    ) -> Result:
        """
        Issue one HTTP call and normalize the outcome into a Result.

        Unless the caller supplies Authorization, the signed-in user's access
        token is sent (falling back to the anon key), so row level security
        sees the real identity.
        """
        req_headers = dict(headers or {})
        if "Authorization" not in req_headers:
            token = await self._auth.access_token()
            req_headers["Authorization"] = f"Bearer {token or self._anon_key}"

        gate_metrics.inc(f"backend_request:{operation}")
        try:
            with gate_metrics.timer(f"backend_latency:{operation}"):
                resp = await self._client.request(
                    method,
                    path,
                    json=json,
                    params=params,
                    headers=req_headers,
                    content=content,
                )
        except httpx.TransportError as exc:
            gate_metrics.inc("backend_error:NETWORK_ERROR")
            logger.warning(
                "Network failure on %s %s: %s", method, path, exc,
                extra={"operation": operation},
            )
            return Result.failure(NetworkError(f"Network request failed: {exc}"))
        except httpx.RequestError as exc:
            # Undecodable body, redirect loop and the like: the backend answered badly
            gate_metrics.inc("backend_error:REQUEST_ERROR")
            logger.warning(
                "Request failed on %s %s: %s", method, path, exc,
                extra={"operation": operation},
            )
            return Result.failure(BackendError(
                code="REQUEST_ERROR",
                message=f"Request failed: {exc}",
                details={"exception": type(exc).__name__},
            ))

        if resp.is_error:
            error = error_from_response(resp)
            gate_metrics.inc(f"backend_error:{error.code}")
            logger.info(
                "Backend rejected %s %s: %s %s", method, path, error.code, error.message,
                extra={"operation": operation},
            )
            return Result.failure(error)
        return Result.success(_decode(resp))

    # ── RPC ───────────────────────────────────────────────────

    async def rpc(self, fn: str, params: Optional[Dict[str, Any]] = None) -> Result:
        """Call a Postgres function exposed by PostgREST."""
        return await self.request(
            "POST", f"/rest/v1/rpc/{fn}", operation=f"rpc:{fn}", json=params or {},
        )

    # ── Records ───────────────────────────────────────────────

    def table(self, name: str, schema: str) -> ScopedTable:
        """Return a handle on one table inside one tenant schema."""
        return ScopedTable(self, name, schema)

    # ── Object Storage ────────────────────────────────────────

    async def upload_object(
        self,
        bucket: str,
        name: str,
        content: bytes,
        content_type: str,
    ) -> Result:
        """Upload bytes to the object store. Never overwrites an existing name."""
        return await self.request(
            "POST",
            f"/storage/v1/object/{bucket}/{quote(name)}",
            operation="storage:upload",
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self._url}/storage/v1/object/public/{bucket}/{quote(name)}"

    # ── Lifecycle ─────────────────────────────────────────────

    async def health_check(self) -> bool:
        """Check if the backend is reachable."""
        try:
            resp = await self._client.get("/auth/v1/health")
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class ScopedTable:
    """
    One table addressed through one tenant schema.

    The schema travels in Accept-Profile (reads) and Content-Profile (writes);
    the same table name in two schemas is two disjoint record sets.
    """

    def __init__(self, backend: BackendClient, name: str, schema: str) -> None:
        self._backend = backend
        self._name = name
        self._schema = schema

    @property
    def schema(self) -> str:
        return self._schema

    @property
    def path(self) -> str:
        return f"/rest/v1/{self._name}"

    def _read_headers(self) -> Dict[str, str]:
        return {"Accept-Profile": self._schema}

    def _write_headers(self) -> Dict[str, str]:
        return {
            "Content-Profile": self._schema,
            "Accept-Profile": self._schema,
            "Prefer": "return=representation",
        }

    async def select(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Result:
        """Rows matching equality filters. order uses PostgREST syntax, e.g. 'created_at.desc'."""
        params: Dict[str, Any] = {"select": "*", **_eq_filters(filters)}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        return await self._backend.request(
            "GET", self.path, operation=f"select:{self._name}",
            params=params, headers=self._read_headers(),
        )

    async def insert(self, rows: Sequence[Dict[str, Any]]) -> Result:
        return await self._backend.request(
            "POST", self.path, operation=f"insert:{self._name}",
            json=list(rows), headers=self._write_headers(),
        )

    async def update(self, values: Dict[str, Any], filters: Mapping[str, Any]) -> Result:
        if not filters:
            raise ValueError("Refusing an unfiltered update")
        return await self._backend.request(
            "PATCH", self.path, operation=f"update:{self._name}",
            json=values, params=_eq_filters(filters), headers=self._write_headers(),
        )

    async def delete(self, filters: Mapping[str, Any]) -> Result:
        if not filters:
            raise ValueError("Refusing an unfiltered delete")
        return await self._backend.request(
            "DELETE", self.path, operation=f"delete:{self._name}",
            params=_eq_filters(filters), headers=self._write_headers(),
        )

    def __repr__(self) -> str:
        return f"ScopedTable({self._schema}.{self._name})"


def rows_of(data: Any) -> List[Dict[str, Any]]:
    """PostgREST returns a list for representation responses; tolerate a single object."""
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)
