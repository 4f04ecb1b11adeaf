# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Shared test fixtures for all SchemaGate tests.

FakeSupabase is an in-memory stand-in for the backend, mounted into the
real BackendClient through httpx.MockTransport. It keeps one profile table
per schema, routed by the Accept-Profile / Content-Profile headers, plus a
minimal GoTrue and Storage surface.
"""

import json
import uuid
from datetime import datetime, timezone

import fakeredis.aioredis
import httpx
import pytest

from schema_gate.core.metrics import gate_metrics
from schema_gate.core.tenant import TenantContext
from schema_gate.gateway.schema_gateway import SchemaGateway
from schema_gate.runtime.backend import BackendClient
from schema_gate.runtime.session_store import MemorySessionStore, RedisSessionStore

FAKE_URL = "http://supabase.test"
FAKE_ANON_KEY = "anon.test.key"


def _json(status, body):
    return httpx.Response(status, json=body)


class FakeSupabase:
    """In-memory Supabase-like backend."""

    UNIQUE_COLUMNS = ("email", "user_id")

    def __init__(self, schemas=("s22", "big7"), autoconfirm=True):
        self.tables = {s: [] for s in schemas}
        self.users = {}
        self.tokens = {}
        self.refresh_tokens = {}
        self.objects = {}
        self.requests = []
        self.autoconfirm = autoconfirm
        self.offline = False
        self.fail_uploads = False
        self.functions = {}

    # ── Helpers for tests ─────────────────────────────────────

    def transport(self):
        return httpx.MockTransport(self.handle)

    def calls(self, method=None, path_prefix=""):
        return [
            r for r in self.requests
            if (method is None or r.method == method) and r.url.path.startswith(path_prefix)
        ]

    def seed(self, schema, **row):
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("role", "User")
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        row.setdefault("updated_at", row["created_at"])
        self.tables[schema].append(row)
        return row

    # ── Dispatcher ────────────────────────────────────────────

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("Network request failed", request=request)
        path = request.url.path
        if path.startswith("/rest/v1/rpc/"):
            return self._rpc(request, path.rsplit("/", 1)[-1])
        if path.startswith("/rest/v1/"):
            return self._table(request, path[len("/rest/v1/"):])
        if path.startswith("/auth/v1/"):
            return self._auth(request, path[len("/auth/v1/"):])
        if path.startswith("/storage/v1/object/"):
            return self._storage(request, path[len("/storage/v1/object/"):])
        return _json(404, {"message": "route not found"})

    # ── PostgREST ─────────────────────────────────────────────

    def _rpc(self, request, fn):
        if fn not in self.functions:
            return _json(404, {
                "code": "PGRST202",
                "message": f"Could not find the function public.{fn} in the schema cache",
            })
        return _json(200, self.functions[fn](json.loads(request.content or b"{}")))

    def _table(self, request, name):
        header = "Accept-Profile" if request.method == "GET" else "Content-Profile"
        schema = request.headers.get(header, "public")
        if schema not in self.tables or name != "profiles":
            return _json(406, {"code": "PGRST106", "message": f"The schema must be one of {sorted(self.tables)}"})
        rows = self.tables[schema]
        params = request.url.params
        filters = {
            k: v[len("eq."):]
            for k, v in params.items()
            if k not in ("select", "order", "limit") and v.startswith("eq.")
        }

        def matches(row):
            return all(str(row.get(k)) == v for k, v in filters.items())

        if request.method == "GET":
            found = [r for r in rows if matches(r)]
            order = params.get("order")
            if order:
                column, _, direction = order.partition(".")
                found.sort(key=lambda r: r.get(column) or "", reverse=direction == "desc")
            if params.get("limit"):
                found = found[: int(params["limit"])]
            return _json(200, found)

        if request.method == "POST":
            created = []
            for incoming in json.loads(request.content):
                for column in self.UNIQUE_COLUMNS:
                    value = incoming.get(column)
                    if value is not None and any(r.get(column) == value for r in rows):
                        return _json(409, {
                            "code": "23505",
                            "message": f'duplicate key value violates unique constraint "profiles_{column}_key"',
                            "details": f"Key ({column})=({value}) already exists.",
                        })
                row = dict(incoming)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
                rows.append(row)
                created.append(row)
            return _json(201, created)

        if request.method == "PATCH":
            values = json.loads(request.content)
            updated = []
            for row in rows:
                if matches(row):
                    row.update(values)
                    updated.append(row)
            return _json(200, updated)

        if request.method == "DELETE":
            deleted = [r for r in rows if matches(r)]
            self.tables[schema] = [r for r in rows if not matches(r)]
            return _json(200, deleted)

        return _json(405, {"message": "method not allowed"})

    # ── GoTrue ────────────────────────────────────────────────

    def _session_for(self, user):
        access, refresh = uuid.uuid4().hex, uuid.uuid4().hex
        self.tokens[access] = user
        self.refresh_tokens[refresh] = user
        return {
            "access_token": access,
            "refresh_token": refresh,
            "token_type": "bearer",
            "expires_in": 3600,
            "user": {"id": user["id"], "email": user["email"]},
        }

    def _bearer_user(self, request):
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        return self.tokens.get(token)

    def _auth(self, request, route):
        if route == "health":
            return _json(200, {"name": "GoTrue"})
        if route == "signup":
            body = json.loads(request.content)
            if body["email"] in self.users:
                return _json(422, {"code": 422, "error_code": "user_already_exists", "msg": "User already registered"})
            user = {"id": str(uuid.uuid4()), "email": body["email"], "password": body["password"]}
            self.users[body["email"]] = user
            if self.autoconfirm:
                return _json(200, self._session_for(user))
            return _json(200, {"id": user["id"], "email": user["email"]})
        if route == "token":
            grant = request.url.params.get("grant_type", "")
            body = json.loads(request.content)
            if grant == "password":
                user = self.users.get(body["email"])
                if user is None or user["password"] != body["password"]:
                    return _json(400, {"error": "invalid_grant", "error_description": "Invalid login credentials"})
                return _json(200, self._session_for(user))
            if grant == "refresh_token":
                user = self.refresh_tokens.pop(body["refresh_token"], None)
                if user is None:
                    return _json(400, {"error": "invalid_grant", "error_description": "Invalid Refresh Token"})
                return _json(200, self._session_for(user))
        if route == "user":
            user = self._bearer_user(request)
            if user is None:
                return _json(401, {"code": 401, "msg": "invalid JWT"})
            return _json(200, {"id": user["id"], "email": user["email"]})
        if route == "logout":
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            self.tokens.pop(token, None)
            return httpx.Response(204)
        return _json(404, {"msg": "not found"})

    # ── Storage ───────────────────────────────────────────────

    def _storage(self, request, key):
        if self.fail_uploads:
            return _json(413, {"statusCode": "413", "error": "Payload too large",
                               "message": "The object exceeded the maximum allowed size"})
        if key in self.objects:
            return _json(400, {"statusCode": "409", "error": "Duplicate", "message": "The resource already exists"})
        self.objects[key] = (request.headers.get("Content-Type"), request.content)
        return _json(200, {"Key": key, "Id": str(uuid.uuid4())})


@pytest.fixture(autouse=True)
def reset_metrics():
    gate_metrics.reset()
    yield


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def mock_redis():
    """Provide a FakeRedis async instance."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def session_store(mock_redis) -> RedisSessionStore:
    return RedisSessionStore(mock_redis, "test:auth:session")


@pytest.fixture
def backend(fake_supabase, session_store) -> BackendClient:
    return BackendClient(
        FAKE_URL,
        FAKE_ANON_KEY,
        session_store=session_store,
        transport=fake_supabase.transport(),
    )


@pytest.fixture
def memory_backend(fake_supabase) -> BackendClient:
    return BackendClient(
        FAKE_URL,
        FAKE_ANON_KEY,
        session_store=MemorySessionStore(),
        transport=fake_supabase.transport(),
    )


@pytest.fixture
def gateway_s22(backend) -> SchemaGateway:
    return SchemaGateway(backend, TenantContext("s22"))


@pytest.fixture
def gateway_big7(backend) -> SchemaGateway:
    return SchemaGateway(backend, TenantContext("big7"))
